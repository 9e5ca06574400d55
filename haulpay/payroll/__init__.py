from .calc import TripLine, ClientSubtotal, PayableSummary, aggregate, apply_weight_edits, round2
from .contracts import BatchReport, PayrollRow, parse_overview, parse_payroll_trips, parse_preview_trips
from .service import ActionOutcome, PayrollDesk
from .status import PayrollAction, PayrollStatus, can, ensure_allowed, normalize_status

__all__ = [
    "ActionOutcome",
    "BatchReport",
    "ClientSubtotal",
    "PayableSummary",
    "PayrollAction",
    "PayrollDesk",
    "PayrollRow",
    "PayrollStatus",
    "TripLine",
    "aggregate",
    "apply_weight_edits",
    "can",
    "ensure_allowed",
    "normalize_status",
    "parse_overview",
    "parse_payroll_trips",
    "parse_preview_trips",
    "round2",
]
