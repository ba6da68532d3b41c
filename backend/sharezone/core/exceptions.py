"""
Typed failures raised by the zone services.

Every operation either returns a value or raises exactly one ``ZoneError``
subclass. The API layer renders them with ``status_code`` and ``code``; the
optional ``extra`` dict is merged into the response body.
"""

from typing import Any, Dict, Optional


class ZoneError(Exception):
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"message": self.message, "code": self.code}
        body.update(self.extra)
        return body


# --- Validation: bad input shape/range ---

class ValidationFailed(ZoneError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class MissingField(ValidationFailed):
    code = "missing_field"
    default_message = "A required field is missing"


class InvalidDuration(ValidationFailed):
    code = "invalid_duration"
    default_message = "Invalid duration"


class InvalidFile(ValidationFailed):
    status_code = 415
    code = "invalid_file"
    default_message = "File type not allowed"


class TooLarge(ValidationFailed):
    status_code = 413
    code = "too_large"
    default_message = "File is too large"


# --- Zone-state preconditions ---

class NotFound(ZoneError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ZoneNotFound(NotFound):
    default_message = "Zone not found"


class FileNotFound(NotFound):
    default_message = "File not found in this zone"


class SessionNotFound(NotFound):
    code = "session_not_found"
    default_message = "User session not found in this zone."


class Expired(ZoneError):
    status_code = 410
    code = "expired"
    default_message = "Zone has expired"


class Locked(ZoneError):
    status_code = 423
    code = "locked"
    default_message = "Uploads are locked in this zone"


# --- Authorization ---

class Unauthorized(ZoneError):
    status_code = 401
    code = "unauthorized"
    default_message = "Invalid password"


class Forbidden(ZoneError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class NotOwner(Forbidden):
    code = "not_owner"
    default_message = "Not authorized (owner only)"


class UserKicked(Forbidden):
    code = "kicked"
    default_message = "You have been removed from this zone by the owner."


class CannotKickOwner(ZoneError):
    status_code = 400
    code = "cannot_kick_owner"
    default_message = "Owner cannot be kicked."


class LifetimeLimitExceeded(ZoneError):
    status_code = 400
    code = "lifetime_limit_exceeded"

    def __init__(self, remaining_hours: float, max_total_hours: int):
        if remaining_hours <= 0:
            message = (
                f"This zone has already reached its maximum lifetime of {max_total_hours} hours "
                "and cannot be extended further."
            )
        else:
            message = (
                f"You can only extend this zone by up to {remaining_hours:g} more hour(s) "
                f"(maximum total {max_total_hours} hours)."
            )
        super().__init__(message, remaining_hours=remaining_hours)
        self.remaining_hours = remaining_hours


class InternalError(ZoneError):
    pass
