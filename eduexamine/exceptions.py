"""Domain errors raised by the service layer.

Routers do not translate these by hand; ``main.create_app`` registers a
handler that maps each class to its HTTP status code.
"""

from typing import Optional


class ExamPortalError(Exception):
    status_code = 500

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationFailed(ExamPortalError):
    status_code = 400


class AuthenticationFailed(ExamPortalError):
    status_code = 401


class Forbidden(ExamPortalError):
    status_code = 403


class NotFound(ExamPortalError):
    status_code = 404


class Conflict(ExamPortalError):
    status_code = 409
