"""Typed failures of the scheduling core.

Every error carries a stable ``code`` and an HTTP status so the API layer can
render it without inspecting messages. ``retryable`` errors are transient and
safe to resend with the same idempotency key.
"""


class SchedulingError(Exception):
    code = "scheduling_error"
    status_code = 400
    retryable = False

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(SchedulingError):
    code = "validation_error"
    status_code = 422


class NotFound(SchedulingError):
    code = "not_found"
    status_code = 404


class CapacityExceeded(SchedulingError):
    code = "capacity_exceeded"
    status_code = 409


class DuplicateBooking(SchedulingError):
    code = "duplicate_booking"
    status_code = 409


class InvalidTransition(SchedulingError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, detail: str, current: str | None = None, target: str | None = None) -> None:
        super().__init__(detail)
        self.current = current
        self.target = target


class Timeout(SchedulingError):
    code = "timeout"
    status_code = 504
    retryable = True


class Unavailable(SchedulingError):
    code = "unavailable"
    status_code = 503
    retryable = True
