# -*- coding: utf-8 -*-
"""
Client service rates and their audit trail.

Rates are the per-kilogram prices the payroll trip lines carry as
``clientRatePerKg``. The audit-log loader is sequence-guarded: when the
operator changes the client filter quickly, only the answer to the latest
request is kept.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from .backend import BackendClient, parse_timestamp
from .errors import BackendError, PreconditionError
from .payroll.calc import to_number
from .payroll.contracts import normalize_keys
from .sequence import RequestSequence

log = logging.getLogger(__name__)

AUDIT_ACTIONS = ("CREATE", "DEACTIVATE", "UPDATE")

_RATE_FIELDS = frozenset({"id", "clientId", "clientName", "serviceType", "ratePerKg", "paymentTerms", "createdAt", "isActive"})
_CLIENT_FIELDS = frozenset({"id", "registeredCompanyName", "serviceRate"})
_AUDIT_FIELDS = frozenset({"id", "performedAt", "performedBy", "action", "afterJson", "beforeJson", "summary", "entityId", "entityType"})
_SNAPSHOT_FIELDS = frozenset({"id", "clientId", "clientName", "serviceType", "ratePerKg", "paymentTerms", "isActive", "createdAt"})


@dataclass
class ServiceRate:
    id: int
    client_id: int
    client_name: str
    service_type: str
    rate_per_kg: str
    payment_terms: str
    created_at: str = ""


@dataclass
class RateSnapshot:
    service_type: str = ""
    rate_per_kg: str = ""
    payment_terms: str = ""


@dataclass
class ClientOption:
    id: int
    name: str
    service_rate: RateSnapshot | None = None


@dataclass
class RateAuditEntry:
    id: int
    performed_at: datetime
    performed_by: str
    action: str
    client_id: int
    client_name: str
    service_type: str
    rate_per_kg: str
    payment_terms: str
    notes: str = ""


@dataclass
class Page:
    items: list = field(default_factory=list)
    page: int = 1
    pages: int = 1
    total: int = 0


# ---------- helpers ----------
def _safe_json(raw: Any) -> dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        v = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return v if isinstance(v, dict) else {}


def _parse_when(raw: Any) -> datetime:
    if raw:
        try:
            dt = parse_timestamp(raw)
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        except ValueError:
            log.debug("unparseable audit timestamp %r", raw)
    return datetime.now(timezone.utc)


def parse_rates(data: Any) -> list[ServiceRate]:
    out = []
    for item in data or []:
        o = normalize_keys(item, "service rate", _RATE_FIELDS)
        out.append(ServiceRate(
            id=int(to_number(o.get("id"))),
            client_id=int(to_number(o.get("clientId"))),
            client_name=str(o.get("clientName") or ""),
            service_type=str(o.get("serviceType") or ""),
            rate_per_kg=str(o.get("ratePerKg") or ""),
            payment_terms=str(o.get("paymentTerms") or ""),
            created_at=str(o.get("createdAt") or ""),
        ))
    return out


def parse_clients(data: Any) -> list[ClientOption]:
    out = []
    for item in data or []:
        o = normalize_keys(item, "client", _CLIENT_FIELDS)
        snap = None
        if isinstance(o.get("serviceRate"), dict):
            s = normalize_keys(o["serviceRate"], "client service rate", _SNAPSHOT_FIELDS)
            snap = RateSnapshot(
                service_type=str(s.get("serviceType") or ""),
                rate_per_kg=str(s.get("ratePerKg") or ""),
                payment_terms=str(s.get("paymentTerms") or ""),
            )
        out.append(ClientOption(
            id=int(to_number(o.get("id"))),
            name=str(o.get("registeredCompanyName") or "(Unknown Client)"),
            service_rate=snap,
        ))
    return out


def parse_audit(data: Any, clients: Iterable[ClientOption] = ()) -> list[RateAuditEntry]:
    names = {c.id: c.name for c in clients}
    out = []
    for item in data or []:
        o = normalize_keys(item, "rate audit log", _AUDIT_FIELDS)
        after = _safe_json(o.get("afterJson"))
        before = _safe_json(o.get("beforeJson"))
        snap = normalize_keys(after or before, "rate audit snapshot", _SNAPSHOT_FIELDS)

        cid = int(to_number(snap.get("clientId")))
        client_name = snap.get("clientName") or names.get(cid) or (f"Client #{cid}" if cid else "—")
        action = str(o.get("action") or "UPDATE").upper()
        if action not in AUDIT_ACTIONS:
            action = "UPDATE"

        out.append(RateAuditEntry(
            id=int(to_number(o.get("id"))),
            performed_at=_parse_when(o.get("performedAt")),
            performed_by=str(o.get("performedBy") or "Unknown"),
            action=action,
            client_id=cid,
            client_name=str(client_name),
            service_type=str(snap.get("serviceType") or "—"),
            rate_per_kg=str(snap.get("ratePerKg") if snap.get("ratePerKg") is not None else "0"),
            payment_terms=str(snap.get("paymentTerms") or "—"),
            notes=str(o.get("summary") or ""),
        ))
    # newest first
    out.sort(key=lambda a: a.performed_at, reverse=True)
    return out


def filter_rates(rates: Iterable[ServiceRate], client_id: str = "", client_name: str = "", service_type: str = "") -> list[ServiceRate]:
    cid = (client_id or "").strip()
    name = (client_name or "").strip().lower()
    stype = (service_type or "").strip().lower()
    return [
        r for r in rates
        if (not cid or cid in str(r.client_id))
        and (not name or name in r.client_name.lower())
        and (not stype or stype in r.service_type.lower())
    ]


def filter_audit(entries: Iterable[RateAuditEntry], query: str = "", client_id: int | None = None) -> list[RateAuditEntry]:
    q = (query or "").strip().lower()
    out = []
    for a in entries:
        if client_id and a.client_id != client_id:
            continue
        if q and not any(q in v.lower() for v in (
            a.performed_by, a.client_name, a.service_type, a.payment_terms, a.action, a.notes,
        )):
            continue
        out.append(a)
    return out


def paginate(items: list, page: int, per_page: int) -> Page:
    total = len(items)
    pages = max(1, -(-total // per_page))
    page = min(max(page, 1), pages)
    start = (page - 1) * per_page
    return Page(items=items[start:start + per_page], page=page, pages=pages, total=total)


# ---------- backend ----------
class RateDesk:
    def __init__(self, client: BackendClient, audit_seq: RequestSequence | None = None):
        self.client = client
        self.audit_seq = audit_seq or RequestSequence()

    def rates(self) -> list[ServiceRate]:
        data = self.client.get("/Accounting/rates", params={"activeOnly": "true"}, fallback="Failed to load rates")
        return parse_rates(data)

    def clients(self) -> list[ClientOption]:
        return parse_clients(self.client.get("/Admin/client", fallback="Failed to load clients"))

    def save(self, client_id: Any, service_type: str, rate: Any, terms: str) -> None:
        cid = int(to_number(client_id))
        service_type = (service_type or "").strip()
        if not cid or not service_type:
            raise PreconditionError("Client and Service Type are required.")
        try:
            rate_num = float(rate)
        except (TypeError, ValueError):
            rate_num = math.nan
        if not math.isfinite(rate_num) or rate_num <= 0:
            raise PreconditionError("Rate must be a valid number greater than 0.")
        self.client.post(
            "/Accounting/rates",
            json={
                "clientId": cid,
                "serviceType": service_type,
                "ratePerKg": str(rate).strip(),
                "paymentTerms": (terms or "").strip(),
            },
            fallback="Failed to save rate",
        )
        log.info("rate saved for client %s (%s)", cid, service_type)

    def deactivate(self, rate_id: int) -> None:
        self.client.delete(f"/Accounting/rates/{int(rate_id)}", fallback="Failed to deactivate rate")
        log.info("rate %s deactivated", rate_id)

    def audit_logs(
        self,
        client_id: int | None = None,
        clients: Iterable[ClientOption] = (),
        take: int = 50,
    ) -> list[RateAuditEntry] | None:
        """Latest audit entries, or ``None`` if a newer load superseded this one."""
        ticket = self.audit_seq.issue()
        try:
            data = self.client.get(
                "/Accounting/rates/audit",
                params={"clientId": client_id or None, "take": take},
                fallback="Failed to load audit logs",
            )
        except BackendError:
            if not self.audit_seq.is_current(ticket):
                log.info("dropping failed stale audit-log request #%s", ticket)
                return None
            raise
        if not self.audit_seq.is_current(ticket):
            log.info("dropping stale audit-log response #%s (latest #%s)", ticket, self.audit_seq.latest)
            return None
        return parse_audit(data, clients)
