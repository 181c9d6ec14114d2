"""
Error taxonomy shared by the REST routers and the realtime session manager.

REST maps every DomainError to its ``status_code``; realtime handlers turn it
into a typed error event for the originating connection.
"""
from __future__ import annotations


class DomainError(Exception):
    status_code = 500
    code = "SERVER_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, code: str | None = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"message": self.message, "code": self.code}


class AuthError(DomainError):
    status_code = 401
    code = "AUTH_ERROR"
    default_message = "Invalid authentication credentials"


class ValidationError(DomainError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class Forbidden(DomainError):
    status_code = 403
    code = "ACCESS_DENIED"
    default_message = "Access denied"


class NotFound(DomainError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class Conflict(DomainError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class RateLimited(DomainError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests"


class RecipientOffline(DomainError):
    status_code = 409
    code = "RECIPIENT_OFFLINE"
    default_message = "Recipient is not online"


class ServerError(DomainError):
    pass


def parse_id(value, field_name: str = "id") -> int:
    """Coerce a client supplied identifier to a positive int or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} is invalid", code="INVALID_ID")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        if value is None or value == "":
            raise ValidationError(f"{field_name} is required", code="MISSING_FIELD")
        raise ValidationError(f"{field_name} is invalid", code="INVALID_ID")
    if parsed < 1:
        raise ValidationError(f"{field_name} is invalid", code="INVALID_ID")
    return parsed
