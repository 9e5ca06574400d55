# -*- coding: utf-8 -*-
from __future__ import annotations

from enum import Enum
from typing import Any

from ..errors import ActionNotAllowed


class PayrollStatus(str, Enum):
    PREVIEW = "PREVIEW"
    GENERATED = "GENERATED"
    APPROVED = "APPROVED"
    PARTIAL = "PARTIAL"
    PAID = "PAID"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class PayrollAction(str, Enum):
    GENERATE = "generate"
    SAVE = "save"
    APPROVE = "approve"
    PAY = "pay"


# Backend is the authority on transitions; this only mirrors what the
# page lets the operator attempt in each state.
ALLOWED_ACTIONS: dict[PayrollStatus, frozenset[PayrollAction]] = {
    PayrollStatus.PREVIEW: frozenset({PayrollAction.GENERATE}),
    PayrollStatus.GENERATED: frozenset({PayrollAction.SAVE, PayrollAction.APPROVE, PayrollAction.PAY}),
    PayrollStatus.APPROVED: frozenset({PayrollAction.PAY}),
    PayrollStatus.PARTIAL: frozenset({PayrollAction.PAY}),
    PayrollStatus.PAID: frozenset(),
}

# actions that operate on a persisted payroll record
_NEEDS_PAYROLL_ID = {PayrollAction.SAVE, PayrollAction.APPROVE, PayrollAction.PAY}

_REJECTIONS = {
    PayrollAction.GENERATE: "Payroll already generated for this driver and period.",
    PayrollAction.SAVE: "Only GENERATED payrolls can be edited.",
    PayrollAction.APPROVE: "Only GENERATED payrolls can be approved.",
    PayrollAction.PAY: "Payroll is already fully paid.",
}


def normalize_status(raw: Any) -> PayrollStatus:
    v = str(raw if raw is not None else "").strip().upper()
    if v == "PENDING":
        return PayrollStatus.GENERATED
    try:
        return PayrollStatus(v)
    except ValueError:
        return PayrollStatus.PREVIEW


def can(status: PayrollStatus, action: PayrollAction, payroll_id: int | None = None) -> bool:
    if action in _NEEDS_PAYROLL_ID and not payroll_id:
        return False
    return action in ALLOWED_ACTIONS[status]


def ensure_allowed(status: PayrollStatus, action: PayrollAction, payroll_id: int | None = None) -> None:
    if action in _NEEDS_PAYROLL_ID and not payroll_id:
        raise ActionNotAllowed("Generate payroll first.")
    if action not in ALLOWED_ACTIONS[status]:
        raise ActionNotAllowed(_REJECTIONS[action])
