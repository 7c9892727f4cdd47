# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for the citizen and admin surfaces.

Resolves the bearer token of each request to a live SessionContext and
applies the access control gate before the route runs.
"""

from functools import wraps
from flask import current_app, request, g
from typing import Optional, Callable
from opentelemetry import trace
import logging

from ..domain.authorization import evaluate_gate
from ..exceptions import AuthenticationException, AuthorizationException
from ..models.entities import SessionContext
from ..models.enums import SessionEventType, Surface
from ..utils.request import get_request_info

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    Bearer token authentication for Flask routes.

    Handles token extraction, session resolution and the gate decision for
    protected endpoints.
    """

    def __init__(self, session_service, citizen_entry_point: str, admin_entry_point: str):
        """
        Initialize the authentication middleware.

        Args:
            session_service: SessionService resolving tokens to sessions
            citizen_entry_point: Sign-in location for the citizen surface
            admin_entry_point: Sign-in location for the admin surface
        """
        self.session_service = session_service
        self.citizen_entry_point = citizen_entry_point
        self.admin_entry_point = admin_entry_point

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract the access token from the Authorization header.

        Returns:
            Token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def resolve_session(self, surface: Surface) -> SessionContext:
        """
        Session of the current request.

        Raises:
            AuthenticationException: no live session; redirects to the
                surface's entry point
        """
        entry_point = self.admin_entry_point if surface == Surface.ADMIN else self.citizen_entry_point
        request_info = get_request_info()
        try:
            return self.session_service.current_session(
                self.extract_token_from_request(),
                ip_address=request_info["ip_address"],
                user_agent=request_info["user_agent"]
            )
        except AuthenticationException as e:
            raise AuthenticationException(e.message, redirect_to=e.redirect_to or entry_point) from e

    def authorize(self, surface: Surface) -> SessionContext:
        """
        Run the gate for ``surface`` and return the admitted session.

        A session with the wrong role for the admin surface is revoked
        before the request is refused.

        Raises:
            AuthenticationException: no live session
            AuthorizationException: session not admitted to the surface
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            span.set_attributes({"auth.operation": "validate_request", "auth.surface": surface.value})

            try:
                session = self.resolve_session(surface)
            except AuthenticationException as e:
                span.set_attribute("auth.result", "unauthenticated")
                logger.warning(f"Authentication failed: {e.message}", extra={"path": request.path})
                raise

            decision = evaluate_gate(surface, session, self.citizen_entry_point, self.admin_entry_point)
            if not decision.allowed:
                span.set_attribute("auth.result", "denied")
                if decision.sign_out:
                    self.session_service.sign_out(session, SessionEventType.SESSION_REVOKED)
                logger.warning(
                    "Authorization failed",
                    extra={
                        "user_id": session.user_id,
                        "role": session.role,
                        "surface": surface.value,
                        "reason": decision.reason
                    }
                )
                raise AuthorizationException(decision.reason, redirect_to=decision.redirect_to)

            g.session_context = session
            span.set_attributes({
                "auth.result": "success",
                "user.id": session.user_id,
                "user.role": session.role
            })
            return session


def _guard(surface: Surface) -> Callable:
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            session = current_app.auth_middleware.authorize(surface)
            return f(session, *args, **kwargs)
        return decorated_function
    return decorator


def require_auth(f: Callable) -> Callable:
    """Require a live session; the route receives it as its first argument."""
    return _guard(Surface.CITIZEN)(f)


def require_admin(f: Callable) -> Callable:
    """Require a live administrator session."""
    return _guard(Surface.ADMIN)(f)
