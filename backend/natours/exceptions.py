"""
Natours Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the error scenarios of the API.
Why:   Services raise meaningful errors without knowing about HTTP; the
       global handlers in main.py turn them into JSend error bodies.
How:   Every class declares the HTTP status it maps to and a default
       message. Callers may override the message and attach a context
       dict, which is only echoed back to clients in development.

Exception Hierarchy:
    NatoursError (base)                    500
    ├── ValidationError                    400  client can fix the input
    ├── DuplicateFieldError                400  unique constraint
    ├── AuthenticationError                401
    ├── PermissionDeniedError              403
    ├── NotFoundError                      404
    ├── RateLimitExceededError             429  plus Retry-After
    ├── FileStorageError                   500
    ├── EmailDeliveryError                 500
    └── DatabaseError                      500

JSend status:
    4xx responses carry "status": "fail", 5xx carry "status": "error".
"""

from typing import Any, Dict, Optional


class NatoursError(Exception):
    """
    Base exception for all Natours application errors.

    Attributes:
        message:      User-facing error description (safe to return in API response)
        context:      Additional debug info (only returned in development)
        status_code:  HTTP status the global handler responds with
    """

    status_code: int = 500
    default_message: str = "Something went very wrong!"

    def __init__(self, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.context = dict(context or {})
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(NatoursError):
    """
    Bad query filters, mismatched passwords, priceDiscount >= price,
    a non-image upload, malformed "lat,lng" strings.

    `field` names the offending input and is copied into the context.
    """

    status_code = 400
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.field = field
        if field:
            self.context["field"] = field


class DuplicateFieldError(NatoursError):
    """A taken email, a second tour with the same name, a second review of a tour."""

    status_code = 400
    default_message = "Duplicate field value. Please use another value."

    def __init__(self, value: Any = None, context: Optional[Dict[str, Any]] = None):
        message = None
        if value is not None:
            message = f'Duplicate field value: "{value}". Please use another value.'
        super().__init__(message, context)


class AuthenticationError(NatoursError):
    """Missing, expired or invalid JWT; deleted user; stale password; bad login."""

    status_code = 401
    default_message = "You are not logged in. Please log in to get access."


class PermissionDeniedError(NatoursError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(NatoursError):
    """
    A requested row does not exist (or is hidden, like a secret tour).

    SQLAlchemy returns None for missing rows; services convert that into
    this exception so routes never deal with None.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "document",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or f"No {resource} found with that ID", context)
        self.context["resource"] = resource
        if resource_id:
            self.context["resource_id"] = resource_id


class RateLimitExceededError(NatoursError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again in an hour!"

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        super().__init__(None, context)
        self.retry_after = retry_after
        self.context["retry_after"] = retry_after


class FileStorageError(NatoursError):
    """Resizing or writing an uploaded image failed."""

    default_message = "Could not store the uploaded image. Please try again."


class EmailDeliveryError(NatoursError):
    """An email could not be delivered after all retries."""

    default_message = "There was an error sending the email. Try again later."


class DatabaseError(NatoursError):
    """
    Unexpected database failure.

    The message returned to the client is always generic; SQL and
    constraint names are logged server-side only.
    """

    default_message = "A database error occurred. Please try again later."
