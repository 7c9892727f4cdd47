# SPDX-License-Identifier: Apache-2.0

"""
Application exception hierarchy.

Every error raised by the domain and service layers derives from
CustomException so the Flask error handlers and the live views can turn it
into a problem document or a user-visible notice.
"""

from typing import Any, Dict, List, Optional


class CustomException(Exception):
    """Base class for custom application exceptions."""

    def __init__(self, message: str, status_code: int = 500, error_type: str = "application-error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class ValidationException(CustomException):
    """Malformed or missing input. ``field`` names the first offending field."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(message, 400, "validation-error")
        self.field = field
        self.validation_errors = validation_errors or []
        if field and not self.validation_errors:
            self.validation_errors = [{"field": field, "message": message}]


class AuthenticationException(CustomException):
    """Bad credentials, or no live session."""

    def __init__(self, message: str, redirect_to: Optional[str] = None):
        super().__init__(message, 401, "authentication-required")
        self.redirect_to = redirect_to


class AuthorizationException(CustomException):
    """Authenticated, but not allowed. The session is signed out before raising."""

    def __init__(self, message: str, redirect_to: Optional[str] = None):
        super().__init__(message, 403, "insufficient-permissions")
        self.redirect_to = redirect_to


class NotFoundException(CustomException):
    """Exception for resource not found errors."""

    def __init__(self, message: str):
        super().__init__(message, 404, "resource-not-found")


class StateException(CustomException):
    """Transition attempted on a record whose status does not allow it."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message, 409, "invalid-state-transition")
        self.current_status = current_status


class ConflictException(CustomException):
    """Guarded write lost a race with another writer."""

    def __init__(self, message: str):
        super().__init__(message, 409, "resource-conflict")


class ServiceUnavailableException(CustomException):
    """Store, cache or broker unreachable."""

    def __init__(self, message: str):
        super().__init__(message, 503, "service-unavailable")
