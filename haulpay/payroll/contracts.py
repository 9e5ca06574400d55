# -*- coding: utf-8 -*-
"""
Response contracts for the payroll endpoints.

The backend serializes with either PascalCase or camelCase depending on the
endpoint. Each response goes through exactly one normalization step
(``normalize_keys``: first letter lowered) and is then read by canonical
camelCase field names into a typed record. Fields outside the contract are
logged and ignored; items that are not JSON objects are rejected.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from ..errors import BackendError
from .calc import TripLine, round2, to_number
from .status import PayrollStatus, normalize_status

log = logging.getLogger(__name__)

CONTRACT_VERSION = 1

OVERVIEW_FIELDS = frozenset({
    "driverId", "driverName", "payrollId", "tripCount",
    "computedTotalWeightKg", "computedRatePerKg", "computedPayableAmount",
    "totalWeightKg", "ratePerKg", "payableAmount",
    "paidAmount", "status", "generatedAt", "discrepancyNote",
    "periodStart", "periodEnd",
})

PREVIEW_TRIP_FIELDS = frozenset({
    "id", "clientName", "clientRatePerKg", "wasteType", "timeDone",
    "weightHauledKg", "receiptNumber", "status",
})

PAYROLL_TRIP_FIELDS = frozenset({
    "id", "haulingTripId", "clientName", "clientRatePerKg", "wasteType", "timeDone",
    "originalWeightKg", "editedWeightKg", "effectiveWeightKg", "receiptNumber", "status",
})

BATCH_FIELDS = frozenset({"generated", "skippedExisting", "failed"})


# ---------- records ----------
@dataclass
class PayrollRow:
    driver_id: int
    driver_name: str
    period_start: date
    period_end: date
    payroll_id: int | None = None
    trip_count: int = 0
    computed_total_weight_kg: float = 0.0
    computed_rate_per_kg: float = 0.0
    computed_payable_amount: float = 0.0
    total_weight_kg: float = 0.0
    rate_per_kg: float = 0.0
    payable_amount: float = 0.0
    paid_amount: float = 0.0
    status: PayrollStatus = PayrollStatus.PREVIEW
    generated_at: str = ""
    discrepancy_note: str = ""

    @property
    def balance(self) -> float:
        return round2(max(self.payable_amount - self.paid_amount, 0))


@dataclass
class BatchReport:
    generated: Any = 0
    skipped_existing: Any = 0
    failed: Any = 0

    @property
    def failed_text(self) -> str:
        if isinstance(self.failed, (list, tuple)):
            return "; ".join(str(x) for x in self.failed) or "0"
        return str(self.failed)


# ---------- normalization ----------
def normalize_keys(obj: Any, what: str, known: frozenset[str]) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise BackendError(f"Unexpected {what} shape from backend: {type(obj).__name__}")
    out: dict[str, Any] = {}
    for k, v in obj.items():
        key = str(k)
        key = key[:1].lower() + key[1:]
        out[key] = v
    unknown = set(out) - known
    if unknown:
        log.debug("%s: ignoring fields outside contract v%s: %s", what, CONTRACT_VERSION, sorted(unknown))
    return out


def _list(data: Any, what: str) -> list:
    if data is None:
        return []
    if not isinstance(data, list):
        raise BackendError(f"Unexpected {what} response from backend: expected a list")
    return data


def _int_or_none(v: Any) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _text(v: Any) -> str:
    return "" if v is None else str(v)


def _first(o: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if o.get(k) is not None:
            return o[k]
    return None


# ---------- parsers ----------
def parse_overview(data: Any, period_start: date, period_end: date) -> list[PayrollRow]:
    rows = []
    for item in _list(data, "payroll overview"):
        o = normalize_keys(item, "payroll overview row", OVERVIEW_FIELDS)
        status = normalize_status(o.get("status"))
        payroll_id = _int_or_none(o.get("payrollId"))

        if status is PayrollStatus.PREVIEW and payroll_id is not None:
            log.warning("overview row for driver %s is PREVIEW but carries payroll %s; ignoring id",
                        o.get("driverId"), payroll_id)
            payroll_id = None
        elif status is not PayrollStatus.PREVIEW and payroll_id is None:
            log.warning("overview row for driver %s is %s without a payroll id; treating as PREVIEW",
                        o.get("driverId"), status.value)
            status = PayrollStatus.PREVIEW

        c_weight = to_number(o.get("computedTotalWeightKg"))
        c_rate = to_number(o.get("computedRatePerKg"))
        c_payable = _first(o, "computedPayableAmount", "payableAmount")
        c_payable = to_number(c_payable) if c_payable is not None else round2(c_weight * c_rate)

        weight = _first(o, "totalWeightKg")
        payable = _first(o, "payableAmount")
        rate = _first(o, "ratePerKg")

        rows.append(PayrollRow(
            driver_id=int(to_number(o.get("driverId"))),
            driver_name=_text(o.get("driverName")),
            period_start=period_start,
            period_end=period_end,
            payroll_id=payroll_id,
            trip_count=int(to_number(o.get("tripCount"))),
            computed_total_weight_kg=c_weight,
            computed_rate_per_kg=c_rate,
            computed_payable_amount=c_payable,
            total_weight_kg=to_number(weight) if weight is not None else c_weight,
            rate_per_kg=to_number(rate) if rate is not None else c_rate,
            payable_amount=to_number(payable) if payable is not None else c_payable,
            paid_amount=to_number(o.get("paidAmount")),
            status=status,
            generated_at="" if status is PayrollStatus.PREVIEW else _text(o.get("generatedAt")),
            discrepancy_note=_text(o.get("discrepancyNote")),
        ))
    return rows


def parse_preview_trips(data: Any) -> list[TripLine]:
    trips = []
    for item in _list(data, "driver trip details"):
        o = normalize_keys(item, "preview trip", PREVIEW_TRIP_FIELDS)
        trips.append(TripLine(
            hauling_trip_id=int(to_number(o.get("id"))),
            client_name=_text(o.get("clientName")),
            client_rate_per_kg=to_number(o.get("clientRatePerKg")),
            waste_type=_text(o.get("wasteType")),
            time_done=_text(o.get("timeDone")),
            original_weight_kg=to_number(o.get("weightHauledKg")),
            edited_weight_kg=None,
            receipt_number=o.get("receiptNumber"),
            status=_text(o.get("status")),
        ))
    return trips


def parse_payroll_trips(data: Any) -> list[TripLine]:
    trips = []
    for item in _list(data, "payroll trips"):
        o = normalize_keys(item, "payroll trip", PAYROLL_TRIP_FIELDS)
        edited = o.get("editedWeightKg")
        trips.append(TripLine(
            hauling_trip_id=int(to_number(_first(o, "haulingTripId", "id"))),
            client_name=_text(o.get("clientName")),
            client_rate_per_kg=to_number(o.get("clientRatePerKg")),
            waste_type=_text(o.get("wasteType")),
            time_done=_text(o.get("timeDone")),
            original_weight_kg=to_number(o.get("originalWeightKg")),
            edited_weight_kg=None if edited is None else to_number(edited),
            receipt_number=o.get("receiptNumber"),
            status=_text(o.get("status")),
        ))
    return trips


def parse_batch_report(data: Any) -> BatchReport:
    o = normalize_keys(data or {}, "batch report", BATCH_FIELDS)
    return BatchReport(
        generated=o.get("generated", 0),
        skipped_existing=o.get("skippedExisting", 0),
        failed=o.get("failed", 0),
    )
