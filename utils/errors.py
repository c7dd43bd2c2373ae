"""
Application error types mapped to HTTP responses by the handlers in main.py
"""

from typing import Any, List, Optional


class AppError(Exception):
    """Base error carrying a client-facing message, HTTP status and machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class FormNotFoundError(NotFoundError):
    code = "FORM_NOT_FOUND"

    def __init__(self, message: str = "Form not found or inactive"):
        super().__init__(message)


class ResponseValidationError(AppError):
    """Field-level rule violations; carries every collected message."""

    status_code = 400
    code = "FORM_VALIDATION_ERROR"

    def __init__(self, errors: List[str], message: str = "Form validation failed"):
        super().__init__(message)
        self.errors = list(errors)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "validationErrors": self.errors}


class ConfigurationError(AppError):
    """The payload or the form configuration cannot satisfy a declared rule."""

    status_code = 400
    code = "BAD_REQUEST"


class DuplicateSubmissionError(AppError):
    status_code = 409
    code = "DUPLICATE_SUBMISSION"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class AccessDeniedError(AppError):
    status_code = 403
    code = "ACCESS_DENIED"
