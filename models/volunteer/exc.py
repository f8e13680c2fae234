import enum

__all__ = [
    "SignupErrorKind",
    "SignupError",
    "NotFound",
    "Conflict",
    "Forbidden",
    "ValidationFailed",
]


class SignupErrorKind(enum.StrEnum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    SHIFT_IN_PAST = "shift_in_past"
    SHIFT_FULL = "shift_full"
    SHIFT_HAS_CAPACITY = "shift_has_capacity"
    ALREADY_SIGNED = "already_signed"
    ALREADY_WAITLISTED = "already_waitlisted"
    TOO_LATE = "too_late"
    ALREADY_APPLIED = "already_applied"
    ALREADY_DECIDED = "already_decided"


class SignupError(Exception):
    """Base class for refusals from the signup engine. `kind` is stable and
    machine-readable, `message` is for people."""

    status_code = 400
    default_kind = SignupErrorKind.VALIDATION

    def __init__(self, message: str, kind: SignupErrorKind | None = None):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind

    def to_dict(self):
        return {"error": str(self.kind), "message": self.message}


class NotFound(SignupError):
    status_code = 404
    default_kind = SignupErrorKind.NOT_FOUND


class Conflict(SignupError):
    status_code = 409
    default_kind = SignupErrorKind.ALREADY_SIGNED


class Forbidden(SignupError):
    status_code = 403
    default_kind = SignupErrorKind.FORBIDDEN


class ValidationFailed(SignupError):
    status_code = 400
    default_kind = SignupErrorKind.VALIDATION
