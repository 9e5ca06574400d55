# -*- coding: utf-8 -*-
"""
Trip weight resolution and payable aggregation.

Pure functions over ``TripLine`` records: nothing here talks to the backend
or keeps state between calls, so every total shown on the payroll detail
page can be re-derived from the current trip lines at any time.
"""
from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any

_CENT = Decimal("0.01")
# enough digits for any finite float (max ~1.8e308) plus two decimals
_PREC = 400


# ------------ numbers ---------------------------------------------------------
def to_number(value: Any) -> float:
    """Finite float from any backend value; anything else counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def round2(value: Any) -> float:
    """Round to cents, half away from zero.

    Works from the shortest decimal repr of the float, so 42.345 rounds to
    42.35 even though its binary value sits just below the midpoint.
    """
    n = to_number(value)
    with localcontext() as ctx:
        ctx.prec = _PREC
        d = Decimal(repr(n)).quantize(_CENT, rounding=ROUND_HALF_UP)
    out = float(d)
    return 0.0 if out == 0 else out


def effective_weight(original: Any, edited: Any = None) -> float:
    w = round2(edited if edited is not None else original)
    return w if w > 0 else 0.0


# ------------ records ---------------------------------------------------------
@dataclass(frozen=True)
class TripLine:
    hauling_trip_id: int
    client_name: str = ""
    client_rate_per_kg: float = 0.0
    waste_type: str = ""
    time_done: str = ""
    original_weight_kg: float = 0.0
    edited_weight_kg: float | None = None
    receipt_number: str | None = None
    status: str = ""

    @property
    def effective_weight_kg(self) -> float:
        return effective_weight(self.original_weight_kg, self.edited_weight_kg)

    @property
    def is_edited(self) -> bool:
        return self.edited_weight_kg is not None

    @property
    def payable(self) -> float:
        return round2(self.effective_weight_kg * to_number(self.client_rate_per_kg))

    def with_weight(self, weight: Any) -> "TripLine":
        return replace(self, edited_weight_kg=round2(weight))


@dataclass
class ClientSubtotal:
    client_name: str
    client_rate_per_kg: float
    trips: int = 0
    total_weight_kg: float = 0.0
    subtotal_payable: float = 0.0


@dataclass
class PayableSummary:
    trip_count: int = 0
    total_weight_kg: float = 0.0
    computed_payable: float = 0.0
    client_subtotals: list[ClientSubtotal] = field(default_factory=list)


# ------------ operations ------------------------------------------------------
def apply_weight_edits(trips: Iterable[TripLine], edits: Mapping[int, Any]) -> list[TripLine]:
    """Return trips with the given per-trip weights applied.

    Only trips named in ``edits`` change; the rest are passed through as-is.
    Ids that match no trip are ignored.
    """
    out = []
    for t in trips:
        if t.hauling_trip_id in edits:
            t = t.with_weight(edits[t.hauling_trip_id])
        out.append(t)
    return out


def aggregate(trips: Iterable[TripLine]) -> PayableSummary:
    trips = list(trips)
    if not trips:
        return PayableSummary()

    weight_sum = 0.0
    payable_sum = 0.0
    groups: dict[tuple[str, float], list[float]] = {}  # key -> [trips, weight, payable]
    for t in trips:
        w = t.effective_weight_kg
        rate = to_number(t.client_rate_per_kg)
        weight_sum += w
        payable_sum += w * rate
        g = groups.setdefault((t.client_name or "", rate), [0, 0.0, 0.0])
        g[0] += 1
        g[1] += w
        g[2] += w * rate

    subtotals = [
        ClientSubtotal(
            client_name=name,
            client_rate_per_kg=rate,
            trips=int(g[0]),
            total_weight_kg=round2(g[1]),
            subtotal_payable=round2(g[2]),
        )
        for (name, rate), g in groups.items()
    ]
    subtotals.sort(key=lambda s: (s.client_name.casefold(), s.client_name, s.client_rate_per_kg))

    return PayableSummary(
        trip_count=len(trips),
        total_weight_kg=round2(weight_sum),
        computed_payable=round2(payable_sum),
        client_subtotals=subtotals,
    )
