# -*- coding: utf-8 -*-
"""
Payroll desk: the page-level view-model behind the driver payroll screens.

Each operation is a single backend round trip, gated by the status table in
``status.py`` before anything is sent. Mutations never patch rows locally:
the caller re-reads the overview from the backend after every success.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable

from ..backend import BackendClient
from ..errors import ConflictError, PreconditionError
from .calc import TripLine, round2, to_number
from .contracts import (
    BatchReport,
    PayrollRow,
    normalize_keys,
    parse_batch_report,
    parse_overview,
    parse_payroll_trips,
    parse_preview_trips,
)
from .status import PayrollAction, PayrollStatus, ensure_allowed, normalize_status

log = logging.getLogger(__name__)

BASE = "/Accounting/payroll"


@dataclass
class ActionOutcome:
    message: str
    category: str = "success"
    already_exists: bool = False
    status: PayrollStatus | None = None


def proof_data_url(content: bytes, mimetype: str | None) -> str:
    mime = mimetype or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


class PayrollDesk:
    def __init__(self, client: BackendClient):
        self.client = client

    # ---------- reads ----------
    def overview(self, period_start: date, period_end: date) -> list[PayrollRow]:
        data = self.client.get(
            f"{BASE}/overview",
            params={"from": period_start.isoformat(), "to": period_end.isoformat()},
            fallback="Failed to load payroll",
        )
        return parse_overview(data, period_start, period_end)

    def find(self, driver_id: int, period_start: date, period_end: date) -> PayrollRow | None:
        for r in self.overview(period_start, period_end):
            if r.driver_id == driver_id:
                return r
        return None

    def trips_for(self, row: PayrollRow) -> list[TripLine]:
        if row.payroll_id:
            data = self.client.get(f"{BASE}/{row.payroll_id}/trips", fallback="Failed to load trips")
            return parse_payroll_trips(data)
        data = self.client.get(
            "/Accounting/reports/payroll/drivers/details",
            params={
                "driverId": row.driver_id,
                "from": row.period_start.isoformat(),
                "to": row.period_end.isoformat(),
            },
            fallback="Failed to load trips",
        )
        return parse_preview_trips(data)

    # ---------- mutations ----------
    def generate(self, row: PayrollRow) -> ActionOutcome:
        ensure_allowed(row.status, PayrollAction.GENERATE, row.payroll_id)
        try:
            self.client.post(
                f"{BASE}/generate",
                json={
                    "driverId": row.driver_id,
                    "periodStart": row.period_start.isoformat(),
                    "periodEnd": row.period_end.isoformat(),
                },
                fallback="Failed to generate payroll",
            )
        except ConflictError:
            log.info("payroll for driver %s %s..%s already exists",
                     row.driver_id, row.period_start, row.period_end)
            return ActionOutcome(
                "Payroll already generated for this driver and period.",
                category="info",
                already_exists=True,
            )
        log.info("generated payroll for driver %s %s..%s", row.driver_id, row.period_start, row.period_end)
        return ActionOutcome("Payroll generated successfully.")

    def generate_batch(self, period_start: date, period_end: date) -> BatchReport:
        data = self.client.post(
            f"{BASE}/generate/batch",
            json={
                "periodStart": period_start.isoformat(),
                "periodEnd": period_end.isoformat(),
                "skipExisting": True,
            },
            fallback="Failed to generate batch payroll",
        )
        report = parse_batch_report(data)
        log.info("batch payroll %s..%s: generated=%s skipped=%s failed=%s",
                 period_start, period_end, report.generated, report.skipped_existing, report.failed_text)
        return report

    def save(self, row: PayrollRow, note: str, trips: Iterable[TripLine]) -> ActionOutcome:
        ensure_allowed(row.status, PayrollAction.SAVE, row.payroll_id)
        trips = list(trips)
        self.client.put(
            f"{BASE}/{row.payroll_id}",
            json={"discrepancyNote": note or ""},
            fallback="Failed to save note",
        )
        self.client.put(
            f"{BASE}/{row.payroll_id}/trips",
            json={"trips": [
                {"haulingTripId": t.hauling_trip_id, "weightKg": t.effective_weight_kg}
                for t in trips
            ]},
            fallback="Failed to save per-trip weights",
        )
        return ActionOutcome("Payroll updated.")

    def approve(self, row: PayrollRow) -> ActionOutcome:
        ensure_allowed(row.status, PayrollAction.APPROVE, row.payroll_id)
        self.client.post(f"{BASE}/{row.payroll_id}/approve", fallback="Failed to approve payroll")
        return ActionOutcome("Payroll approved.", status=PayrollStatus.APPROVED)

    def pay(
        self,
        row: PayrollRow,
        amount: Any,
        proof: bytes | None,
        mimetype: str | None = None,
        reference_no: str | None = None,
    ) -> ActionOutcome:
        ensure_allowed(row.status, PayrollAction.PAY, row.payroll_id)
        amt = round2(amount)
        if amt <= 0:
            raise PreconditionError("Amount must be > 0.")
        if not proof:
            raise PreconditionError("Proof image is required.")

        body: dict[str, Any] = {"amount": amt, "base64Image": proof_data_url(proof, mimetype)}
        if reference_no:
            body["referenceNo"] = reference_no
        data = self.client.post(f"{BASE}/{row.payroll_id}/pay", json=body, fallback="Failed to record payment")

        status = None
        if isinstance(data, dict):
            o = normalize_keys(data, "payment result", frozenset({"status", "paidAmount", "payrollId"}))
            if o.get("status") is not None:
                status = normalize_status(o.get("status"))
            log.info("payment on payroll %s: %.2f, paid so far %.2f",
                     row.payroll_id, amt, to_number(o.get("paidAmount")))
        msg = "Payment recorded."
        if status is not None:
            msg = f"Payment recorded. Status: {status.value}."
        return ActionOutcome(msg, status=status)
