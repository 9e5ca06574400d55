# -*- coding: utf-8 -*-
from __future__ import annotations


class HaulpayError(Exception):
    """Base for every error an action can surface to the operator."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# --- client-side, raised before any request goes out ---
class PreconditionError(HaulpayError):
    pass


class NotLoggedIn(PreconditionError):
    def __init__(self, message: str = "Not logged in. Please login first."):
        super().__init__(message)


class ActionNotAllowed(PreconditionError):
    pass


# --- backend / transport ---
class BackendError(HaulpayError):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ConflictError(BackendError):
    """HTTP 409: the backend already holds the record being created."""


# Kept outside BackendError: it ends the session instead of being shown
# at the action that hit it.
class Unauthorized(HaulpayError):
    """HTTP 401: the session token is no longer accepted."""

    def __init__(self, message: str = "Session expired. Please login again.", status: int = 401):
        super().__init__(message)
        self.status = status


# what an action handler reports back to the operator
ACTION_ERRORS = (PreconditionError, BackendError)


def flash_category(e: HaulpayError) -> str:
    if isinstance(e, PreconditionError):
        return "warning"
    if isinstance(e, ConflictError):
        return "info"
    return "danger"
