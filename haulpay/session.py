# -*- coding: utf-8 -*-
"""
Operator session context.

The backend hands out a bearer token at login. Everything the UI needs to
know about the signed-in operator (token, role, display name, permissions)
lives in one ``SessionContext`` kept in the signed Flask session cookie.
It is populated at login and cleared at logout or on a backend 401.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from typing import Any

from flask import session
from flask_login import UserMixin
from jose import jwt
from jose.exceptions import JOSEError

from .errors import NotLoggedIn
from .extensions import login_manager

log = logging.getLogger(__name__)

_SESSION_KEY = "gc_session"


@dataclass
class SessionContext:
    username: str
    token: str
    role: str = ""
    first_name: str = ""
    last_name: str = ""
    permissions: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username

    def has_permission(self, perm: str) -> bool:
        return perm in self.permissions

    @classmethod
    def from_login(cls, username: str, data: dict[str, Any]) -> "SessionContext":
        token = str(data.get("token") or "")
        if not token:
            raise NotLoggedIn("Login response carried no token.")
        return cls(
            username=username,
            token=token,
            role=str(data.get("role") or ""),
            first_name=str(data.get("firstName") or ""),
            last_name=str(data.get("lastName") or ""),
            permissions=token_permissions(token),
        )


def token_permissions(token: str) -> list[str]:
    """Read the ``perm`` claim without verifying; the backend verifies."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JOSEError:
        log.warning("session token is not a readable JWT; no permissions")
        return []
    perm = claims.get("perm") or []
    if isinstance(perm, str):
        return [perm]
    return [str(p) for p in perm]


# --- lifecycle -------------------------------------------------------------
def store(ctx: SessionContext) -> None:
    session[_SESSION_KEY] = asdict(ctx)


def clear() -> None:
    session.pop(_SESSION_KEY, None)


def current() -> SessionContext | None:
    raw = session.get(_SESSION_KEY)
    if not raw:
        return None
    try:
        return SessionContext(**raw)
    except TypeError:
        log.warning("discarding malformed session context")
        clear()
        return None


def require() -> SessionContext:
    ctx = current()
    if ctx is None or not ctx.token:
        raise NotLoggedIn()
    return ctx


# --- flask_login glue ------------------------------------------------------
class Operator(UserMixin):
    def __init__(self, ctx: SessionContext):
        self.ctx = ctx
        self.id = ctx.username

    @property
    def role(self) -> str:
        return self.ctx.role

    @property
    def display_name(self) -> str:
        return self.ctx.display_name

    def has_permission(self, perm: str) -> bool:
        return self.ctx.has_permission(perm)


@login_manager.user_loader
def load_operator(user_id):
    ctx = current()
    if ctx is None or ctx.username != user_id:
        return None
    return Operator(ctx)
