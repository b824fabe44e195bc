"""
Application errors.

Every failure the lifecycle engine reports is an ``AppError`` carrying an
HTTP-style status, a stable machine-readable ``code`` and a human-readable
message.  The API layer renders them as ``{"detail": ..., "code": ...}``.
"""

from __future__ import annotations


class AppError(Exception):
    status_code: int = 400
    code: str = "APP_ERROR"
    message: str = "Unable to process your request"
    retryable: bool = False

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


# ── Lookup / validation ───────────────────────────────────────────────


class NotFound(AppError):
    code = "NOT_FOUND"
    message = "Invalid ride id"


class InvalidStatus(AppError):
    code = "INVALID_STATUS"
    message = "Invalid status"


class InvalidTarget(AppError):
    code = "INVALID_TARGET"
    message = "Sorry! you can not update this status"


class NoOpTransition(AppError):
    code = "NO_OP_TRANSITION"
    message = "Please set different status"


class TerminalState(AppError):
    code = "TERMINAL_STATE"
    message = "Sorry! you can not update the status of this request anymore"


# ── Role / assignment ─────────────────────────────────────────────────


class Forbidden(AppError):
    code = "FORBIDDEN"
    message = "Sorry! you are not allowed to perform this action"


class AlreadyAssigned(AppError):
    code = "ALREADY_ASSIGNED"
    message = "Sorry! this request already assigned to other"


class ResponderBusy(AppError):
    code = "RESPONDER_BUSY"
    message = (
        "Sorry! you can not update this status as you already have active request"
    )


class ActiveRequestExists(AppError):
    code = "ACTIVE_REQUEST_EXISTS"
    message = "You already have an active request"


class Unauthenticated(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Caller identity could not be resolved"


# ── Concurrency / infrastructure ──────────────────────────────────────


class RaceLost(AppError):
    """The record changed between validation and the conditional write."""

    status_code = 409
    code = "RACE_LOST"
    message = "The request was modified concurrently, please retry"
    retryable = True


class StoreTimeout(AppError):
    status_code = 503
    code = "STORE_TIMEOUT"
    message = "Storage did not respond in time, please retry"
    retryable = True


class InternalError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Unable to process your request"
