# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from datetime import date
from functools import wraps
from typing import Any

from flask import Blueprint, Response, render_template, request, redirect, url_for, flash
from flask_login import login_required

from ...backend import session_client
from ...errors import ACTION_ERRORS, PreconditionError, flash_category
from ...payroll import PayrollAction, PayrollDesk, PayrollRow, PayrollStatus, aggregate, apply_weight_edits, can
from ...payroll.calc import TripLine, to_number
from ...payroll.export import export_csv, export_filename, filter_rows, summarize

log = logging.getLogger(__name__)

bp = Blueprint(
    "payroll",
    __name__,
    url_prefix="/accounting/driverpayroll",
    template_folder="../../templates/payroll",
)

STATUS_OPTIONS = ["ALL"] + [s.value for s in PayrollStatus]


# ------------ helpers ---------------------------------------------------------
def _parse_day(raw: str | None) -> date:
    if raw:
        try:
            return date.fromisoformat(raw.strip()[:10])
        except ValueError:
            pass
    return date.today()


def _read_period() -> tuple[date, date]:
    src = request.form if request.method == "POST" else request.args
    return _parse_day(src.get("from")), _parse_day(src.get("to"))


def _period() -> tuple[date, date]:
    """Period for page views; an inverted range collapses to its start day."""
    start, end = _read_period()
    if end < start:
        flash("Period end is before period start; using a single day.", "warning")
        end = start
    return start, end


def _valid_period(f):
    """Mutating actions refuse an inverted period instead of rewriting it."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        start, end = _read_period()
        if end < start:
            log.info("refused %s: period %s..%s is inverted", request.endpoint, start, end)
            flash("Period end is before period start. Nothing was changed.", "warning")
            return _back()
        return f(*args, **kwargs)
    return wrapper


def _filters() -> dict[str, str]:
    src = request.form if request.method == "POST" else request.args
    return {
        "q": (src.get("q") or "").strip(),
        "status": (src.get("status") or "ALL").strip().upper(),
    }


def _back(endpoint: str = "payroll.index", **kw):
    start, end = _read_period()
    end = max(start, end)
    return redirect(url_for(endpoint, **{"from": start.isoformat(), "to": end.isoformat()}, **_filters(), **kw))


def _notify(e: Exception) -> None:
    flash(str(e), flash_category(e))


def _row_or_none(desk: PayrollDesk, driver_id: int, start: date, end: date) -> PayrollRow | None:
    row = desk.find(driver_id, start, end)
    if row is None:
        flash(f"No payroll row for driver #{driver_id} in {start} to {end}.", "warning")
    return row


def _weight_edits(trips: list[TripLine]) -> dict[int, Any]:
    """Per-trip weights typed by the operator; unchanged fields are left out."""
    edits: dict[int, Any] = {}
    for t in trips:
        raw = request.form.get(f"weight_{t.hauling_trip_id}")
        if raw is None or raw.strip() == "":
            continue
        if to_number(raw) != t.effective_weight_kg:
            edits[t.hauling_trip_id] = to_number(raw)
    return edits


def _render_detail(row: PayrollRow, trips: list[TripLine], note: str | None = None, pay_form: dict | None = None, status: int = 200):
    summary = aggregate(trips)
    ctx = {
        "row": row,
        "trips": trips,
        "summary": summary,
        "note": row.discrepancy_note if note is None else note,
        "pay_form": pay_form or {"amount": "", "reference_no": ""},
        "can_generate": can(row.status, PayrollAction.GENERATE, row.payroll_id),
        "can_save": can(row.status, PayrollAction.SAVE, row.payroll_id),
        "can_approve": can(row.status, PayrollAction.APPROVE, row.payroll_id),
        "can_pay": can(row.status, PayrollAction.PAY, row.payroll_id),
        "period_from": row.period_start.isoformat(),
        "period_to": row.period_end.isoformat(),
        "filters": _filters(),
    }
    return render_template("payroll/detail.html", **ctx), status


# ------------ list ------------------------------------------------------------
@bp.route("/", methods=["GET"])
@login_required
def index():
    start, end = _period()
    filters = _filters()
    rows: list[PayrollRow] = []
    try:
        with session_client() as api:
            rows = PayrollDesk(api).overview(start, end)
    except ACTION_ERRORS as e:
        _notify(e)

    shown = filter_rows(rows, filters["q"], filters["status"], (start, end))
    return render_template(
        "payroll/index.html",
        rows=shown,
        summary=summarize(shown),
        period_from=start.isoformat(),
        period_to=end.isoformat(),
        filters=filters,
        has_filters=bool(filters["q"]) or filters["status"] != "ALL",
        status_options=STATUS_OPTIONS,
    )


@bp.route("/export.csv", methods=["GET"])
@login_required
def export():
    start, end = _period()
    filters = _filters()
    try:
        with session_client() as api:
            rows = PayrollDesk(api).overview(start, end)
        csv_text = export_csv(filter_rows(rows, filters["q"], filters["status"], (start, end)))
    except ACTION_ERRORS as e:
        _notify(e)
        return _back()
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(start, end)}"'},
    )


# ------------ generate --------------------------------------------------------
@bp.post("/generate/<int:driver_id>")
@login_required
@_valid_period
def generate(driver_id: int):
    start, end = _period()
    try:
        with session_client() as api:
            desk = PayrollDesk(api)
            row = _row_or_none(desk, driver_id, start, end)
            if row is not None:
                outcome = desk.generate(row)
                flash(outcome.message, outcome.category)
    except ACTION_ERRORS as e:
        _notify(e)
    return _back()


@bp.post("/generate/batch")
@login_required
@_valid_period
def generate_batch():
    start, end = _period()
    try:
        with session_client() as api:
            report = PayrollDesk(api).generate_batch(start, end)
    except ACTION_ERRORS as e:
        _notify(e)
        return _back()
    flash(
        f"Batch result: Generated: {report.generated}; "
        f"Skipped existing: {report.skipped_existing}; "
        f"Notes/Failures: {report.failed_text}",
        "success",
    )
    return _back()


# ------------ detail ----------------------------------------------------------
@bp.route("/<int:driver_id>", methods=["GET"])
@login_required
def detail(driver_id: int):
    start, end = _period()
    try:
        with session_client() as api:
            desk = PayrollDesk(api)
            row = _row_or_none(desk, driver_id, start, end)
            if row is None:
                return _back()
            trips = desk.trips_for(row)
    except ACTION_ERRORS as e:
        _notify(e)
        return _back()
    return _render_detail(row, trips)


@bp.post("/<int:driver_id>/recalc")
@login_required
def recalc(driver_id: int):
    """Re-render the detail page with the operator's unsaved weights."""
    start, end = _period()
    try:
        with session_client() as api:
            desk = PayrollDesk(api)
            row = _row_or_none(desk, driver_id, start, end)
            if row is None:
                return _back()
            trips = desk.trips_for(row)
    except ACTION_ERRORS as e:
        _notify(e)
        return _back()
    if can(row.status, PayrollAction.SAVE, row.payroll_id):
        trips = apply_weight_edits(trips, _weight_edits(trips))
    return _render_detail(row, trips, note=request.form.get("note"))


@bp.post("/<int:driver_id>/save")
@login_required
@_valid_period
def save(driver_id: int):
    start, end = _period()
    note = request.form.get("note") or ""
    row = None
    trips: list[TripLine] = []
    try:
        with session_client() as api:
            desk = PayrollDesk(api)
            row = _row_or_none(desk, driver_id, start, end)
            if row is None:
                return _back()
            trips = desk.trips_for(row)
            trips = apply_weight_edits(trips, _weight_edits(trips))
            outcome = desk.save(row, note, trips)
    except ACTION_ERRORS as e:
        _notify(e)
        if row is None:
            return _back()
        return _render_detail(row, trips, note=note, status=400 if isinstance(e, PreconditionError) else 502)
    flash(outcome.message, outcome.category)
    return _back("payroll.detail", driver_id=driver_id)


@bp.post("/<int:driver_id>/approve")
@login_required
@_valid_period
def approve(driver_id: int):
    start, end = _period()
    try:
        with session_client() as api:
            desk = PayrollDesk(api)
            row = _row_or_none(desk, driver_id, start, end)
            if row is None:
                return _back()
            outcome = desk.approve(row)
    except ACTION_ERRORS as e:
        _notify(e)
        return _back("payroll.detail", driver_id=driver_id)
    flash(outcome.message, outcome.category)
    return _back()


@bp.post("/<int:driver_id>/pay")
@login_required
@_valid_period
def pay(driver_id: int):
    start, end = _period()
    amount = (request.form.get("amount") or "").strip()
    reference_no = (request.form.get("reference_no") or "").strip()
    upload = request.files.get("proof")
    proof = upload.read() if upload and upload.filename else None
    mimetype = upload.mimetype if upload else None

    row = None
    try:
        with session_client() as api:
            desk = PayrollDesk(api)
            row = _row_or_none(desk, driver_id, start, end)
            if row is None:
                return _back()
            outcome = desk.pay(row, to_number(amount), proof, mimetype, reference_no or None)
    except ACTION_ERRORS as e:
        _notify(e)
        if row is None:
            return _back()
        try:
            with session_client() as api:
                trips = PayrollDesk(api).trips_for(row)
        except ACTION_ERRORS as e2:
            _notify(e2)
            trips = []
        pay_form = {"amount": amount, "reference_no": reference_no}
        return _render_detail(row, trips, pay_form=pay_form, status=400 if isinstance(e, PreconditionError) else 502)
    flash(outcome.message, outcome.category)
    return _back()
