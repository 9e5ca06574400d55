# -*- coding: utf-8 -*-
"""
Monotonic request sequencing.

A loader takes a ticket before it calls the backend and checks it again when
the answer arrives. If a newer ticket was issued in the meantime, the answer
is stale and gets dropped, so a slow earlier response can never overwrite a
fresher one.
"""
from __future__ import annotations

import threading
from typing import Hashable


class RequestSequence:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, ticket: int) -> bool:
        with self._lock:
            return ticket == self._latest


class SequenceRegistry:
    """One sequence per key, e.g. (operator, "rates-audit")."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seqs: dict[Hashable, RequestSequence] = {}

    def get(self, key: Hashable) -> RequestSequence:
        with self._lock:
            seq = self._seqs.get(key)
            if seq is None:
                seq = self._seqs[key] = RequestSequence()
            return seq

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._seqs.pop(key, None)
