# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from ..errors import PreconditionError
from .calc import round2
from .contracts import PayrollRow
from .status import PayrollStatus

CSV_HEADER = [
    "Driver",
    "Driver ID",
    "Period Start",
    "Period End",
    "Run Count",
    "Total Weight (kg)",
    "Payable",
    "Status",
    "Paid Amount",
]


@dataclass
class TableSummary:
    drivers: int = 0
    runs: int = 0
    total_weight_kg: float = 0.0
    total_payable: float = 0.0


def filter_rows(
    rows: Iterable[PayrollRow],
    search: str = "",
    status: str = "ALL",
    period: tuple[date, date] | None = None,
) -> list[PayrollRow]:
    q = (search or "").strip().lower()
    try:
        want = PayrollStatus((status or "").strip().upper())
    except ValueError:
        want = None  # ALL
    out = []
    for r in rows:
        if q and q not in r.driver_name.lower() and q not in str(r.driver_id):
            continue
        if want is not None and r.status is not want:
            continue
        if period is not None and (r.period_start, r.period_end) != period:
            continue
        out.append(r)
    return out


def summarize(rows: Iterable[PayrollRow]) -> TableSummary:
    s = TableSummary()
    for r in rows:
        s.drivers += 1
        s.runs += r.trip_count
        s.total_weight_kg += r.total_weight_kg
        s.total_payable += r.payable_amount
    s.total_weight_kg = round2(s.total_weight_kg)
    s.total_payable = round2(s.total_payable)
    return s


def _num(v: float) -> str:
    # integral values print without the trailing .0
    return str(int(v)) if float(v).is_integer() else str(v)


# No quoting: a comma inside a driver name shifts that row's columns.
def export_csv(rows: Iterable[PayrollRow]) -> str:
    rows = list(rows)
    if not rows:
        raise PreconditionError("No data to export")
    lines = [",".join(CSV_HEADER)]
    for r in rows:
        lines.append(",".join([
            r.driver_name,
            str(r.driver_id),
            r.period_start.isoformat(),
            r.period_end.isoformat(),
            str(r.trip_count),
            _num(r.total_weight_kg),
            _num(r.payable_amount),
            r.status.value,
            _num(r.paid_amount),
        ]))
    return "\n".join(lines)


def export_filename(period_start: date, period_end: date) -> str:
    return f"driver-payroll-{period_start.isoformat()}-to-{period_end.isoformat()}.csv"
