"""
Error taxonomy for the booking core.

Every business failure is a ``BookingError`` carrying the HTTP status the
API layer should answer with.  Anything that is *not* a ``BookingError``
is treated as an internal failure and never shown to the caller verbatim.
"""

from __future__ import annotations


class BookingError(Exception):
    status_code: int = 400
    code: str = "booking_error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# ── 4xx: caller can correct ───────────────────────────────────────────


class ValidationError(BookingError):
    status_code = 400
    code = "validation_error"


class NotFound(BookingError):
    status_code = 404
    code = "not_found"


class AuthorizationError(BookingError):
    status_code = 403
    code = "unauthorized"


class Unauthenticated(AuthorizationError):
    status_code = 401
    code = "unauthenticated"


# ── 409: state moved on, re-fetch ─────────────────────────────────────


class ConflictError(BookingError):
    status_code = 409
    code = "conflict"


class InvalidTransition(ConflictError):
    code = "invalid_transition"


class BookingNotPending(ConflictError):
    code = "booking_not_pending"


class AlreadyAssigned(ConflictError):
    code = "already_assigned"


class AlreadyRated(ConflictError):
    code = "already_rated"


# ── 429: throttled / nothing to hand out ──────────────────────────────


class ResourceExhausted(BookingError):
    status_code = 429
    code = "resource_exhausted"


class NoDriverAvailable(ResourceExhausted):
    status_code = 409
    code = "no_driver_available"

    def __init__(self, message: str = "Cannot assign driver: no driver available"):
        super().__init__(message)


# ── 5xx ───────────────────────────────────────────────────────────────


class InternalError(BookingError):
    status_code = 500
    code = "internal_error"
