# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, current_app, render_template, request, redirect, url_for, flash
from flask_login import current_user, login_required

from ...backend import session_client
from ...errors import ACTION_ERRORS, flash_category
from ...payroll.calc import to_number
from ...rates import RateDesk, filter_audit, filter_rates, paginate
from ...security import PERM_UPDATE_RATES, permission_required
from ...sequence import SequenceRegistry

bp = Blueprint(
    "rates",
    __name__,
    url_prefix="/accounting/rates",
    template_folder="../../templates/rates",
)

# one audit-log sequence per operator, shared across request threads
audit_sequences = SequenceRegistry()
AUDIT_CHANNEL = "rates-audit"


def _desk(api) -> RateDesk:
    return RateDesk(api, audit_sequences.get((current_user.get_id(), AUDIT_CHANNEL)))


def _int_arg(name: str, default: int = 0) -> int:
    try:
        return int(request.args.get(name) or default)
    except ValueError:
        return default


@bp.get("/")
@login_required
@permission_required(PERM_UPDATE_RATES)
def index():
    cfg = current_app.config
    client_id = _int_arg("client_id") or None
    f_client_id = (request.args.get("f_client_id") or "").strip()
    f_client_name = (request.args.get("f_client_name") or "").strip()
    f_type = (request.args.get("f_type") or "").strip()
    audit_q = (request.args.get("audit_q") or "").strip()

    rates, clients, audit = [], [], []
    audit_stale = False
    try:
        with session_client() as api:
            desk = _desk(api)
            rates = desk.rates()
            clients = desk.clients()
            logs = desk.audit_logs(client_id, clients, take=cfg.get("AUDIT_TAKE", 50))
            if logs is None:
                audit_stale = True
            else:
                audit = filter_audit(logs, audit_q, client_id)
    except ACTION_ERRORS as e:
        flash(str(e), flash_category(e))

    selected = next((c for c in clients if c.id == client_id), None)
    page = paginate(
        filter_rates(rates, f_client_id, f_client_name, f_type),
        _int_arg("page", 1),
        cfg.get("RATES_PAGE_SIZE", 10),
    )
    return render_template(
        "rates/index.html",
        page=page,
        clients=clients,
        selected=selected,
        client_id=client_id,
        audit=audit,
        audit_stale=audit_stale,
        audit_q=audit_q,
        filters={"f_client_id": f_client_id, "f_client_name": f_client_name, "f_type": f_type},
    )


@bp.post("/")
@login_required
@permission_required(PERM_UPDATE_RATES)
def save():
    f = request.form
    client_id = int(to_number(f.get("client_id")))
    try:
        with session_client() as api:
            _desk(api).save(client_id, f.get("service_type") or "", f.get("rate_per_kg"), f.get("payment_terms") or "")
    except ACTION_ERRORS as e:
        flash(str(e), flash_category(e))
        return redirect(url_for("rates.index", client_id=client_id or None))
    flash("Rate saved successfully!", "success")
    return redirect(url_for("rates.index", client_id=client_id or None))


@bp.post("/<int:rate_id>/deactivate")
@login_required
@permission_required(PERM_UPDATE_RATES)
def deactivate(rate_id: int):
    client_id = int(to_number(request.form.get("client_id"))) or None
    try:
        with session_client() as api:
            _desk(api).deactivate(rate_id)
    except ACTION_ERRORS as e:
        flash(str(e), flash_category(e))
    else:
        flash("Rate deactivated.", "success")
    return redirect(url_for("rates.index", client_id=client_id))
