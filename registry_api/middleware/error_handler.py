# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured HAL responses.
Turns application exceptions and HTTP errors into RFC 7807 problem documents.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from typing import Any, Dict, Tuple
from opentelemetry import trace
import logging

from ..exceptions import (
    AuthenticationException,
    AuthorizationException,
    CustomException,
    StateException,
    ValidationException,
)
from ..services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


ERROR_TITLES = {
    "validation-error": "Validation Error",
    "authentication-required": "Authentication Required",
    "insufficient-permissions": "Insufficient Permissions",
    "resource-not-found": "Resource Not Found",
    "invalid-state-transition": "Invalid State Transition",
    "resource-conflict": "Resource Conflict",
    "service-unavailable": "Service Unavailable",
    "application-error": "Application Error",
}

HTTP_ERROR_TYPES = {
    400: "bad-request",
    401: "authentication-required",
    403: "insufficient-permissions",
    404: "resource-not-found",
    405: "method-not-allowed",
    409: "resource-conflict",
    415: "unsupported-media-type",
    422: "validation-error",
    429: "rate-limit-exceeded",
    503: "service-unavailable",
}


class ErrorHandlerMiddleware:
    """Centralized error handling middleware with HAL response formatting."""

    def __init__(self, app: Flask, hal_formatter: HalFormatter):
        self.app = app
        self.hal_formatter = hal_formatter
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(CustomException)
        def handle_custom_exception(error: CustomException):
            return self.handle_custom_exception(error)

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            return self.handle_http_error(error)

        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            return self.handle_unexpected_error(error)

    def _problem(self, error_type: str, title: str, status: int, detail: str, **kwargs) -> Dict[str, Any]:
        return self.hal_formatter.build_error_response(
            error_type, title, status, detail, request.path, **kwargs
        )

    def handle_custom_exception(self, error: CustomException) -> Tuple[Any, int]:
        """
        Render an application exception.

        Args:
            error: Exception raised by a domain or service call

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.custom_exception") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"Custom exception: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "error_message": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            kwargs = {}
            if isinstance(error, ValidationException):
                kwargs["validation_errors"] = error.validation_errors
            if isinstance(error, (AuthenticationException, AuthorizationException)):
                kwargs["redirect_to"] = error.redirect_to

            response = self._problem(
                error.error_type,
                ERROR_TITLES.get(error.error_type, "Application Error"),
                error.status_code,
                error.message,
                **kwargs
            )
            if isinstance(error, StateException) and error.current_status:
                response["current_status"] = error.current_status

            return jsonify(response), error.status_code

    def handle_http_error(self, error: HTTPException) -> Tuple[Any, int]:
        """Render werkzeug HTTP errors (routing misses, bad methods, bad JSON)."""
        status = error.code or 500
        error_type = HTTP_ERROR_TYPES.get(status, "http-error")
        title = error.name

        with tracer.start_as_current_span("error_handler.http_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": status,
                "http.method": request.method,
                "http.path": request.path
            })

            detail = str(error.description) if error.description else title
            logger.warning(
                f"Client error: {title}",
                extra={
                    "error_type": error_type,
                    "status_code": status,
                    "detail": detail,
                    "path": request.path,
                    "method": request.method,
                    "user_agent": request.headers.get('User-Agent'),
                    "ip_address": request.remote_addr
                }
            )

            return jsonify(self._problem(error_type, title, status, detail)), status

    def handle_unexpected_error(self, error: Exception) -> Tuple[Any, int]:
        """
        Handle unexpected exceptions not caught by specific handlers.

        Args:
            error: Unexpected exception

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_type": "unexpected-error",
                    "error_class": error.__class__.__name__,
                    "error_message": str(error),
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            # Internal details stay out of production responses
            detail = "An unexpected error occurred"
            if self.app.config.get('ENVIRONMENT') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            response = self._problem("internal-server-error", "Internal Server Error", 500, detail)
            return jsonify(response), 500
