# SPDX-License-Identifier: Apache-2.0

"""
Session lifecycle for citizens and administrators.

Sign-up, sign-in, sign-out, token refresh and session lookup. Every session
change is published on the ``auth.sessions`` topic of the change feed so the
access control gate can re-evaluate.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from opentelemetry import trace

from .auth import AuthService
from .audit import AuditService
from .mongodb import MongoDBService
from .redis import RedisService
from .roles import RoleService
from ..exceptions import (
    AuthenticationException,
    AuthorizationException,
    ConflictException,
    ServiceUnavailableException,
    ValidationException,
)
from ..models.base import utc_now
from ..models.entities import Profile, SessionContext, SessionEvent, UserAccount
from ..models.enums import AppRole, SessionEventType
from ..realtime.feed import SESSIONS_TOPIC, ChangeFeed, Subscription

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
ADMIN_ONLY = "Unauthorized: Admin access only"
REVOKED_SESSIONS = "revoked_sessions"


class SessionService:
    """In-process auth provider over the users, user_roles and profiles collections."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        auth_service: AuthService,
        role_service: RoleService,
        feed: ChangeFeed,
        redis_service: Optional[RedisService] = None,
        audit_service: Optional[AuditService] = None,
        admin_entry_point: str = "/admin-auth"
    ):
        self.mongodb_service = mongodb_service
        self.auth_service = auth_service
        self.role_service = role_service
        self.feed = feed
        self.redis_service = redis_service
        self.audit_service = audit_service
        self.admin_entry_point = admin_entry_point

    def _emit(self, event_type: SessionEventType, session: Optional[SessionContext] = None,
              user_id: Optional[str] = None, session_id: Optional[str] = None) -> None:
        event = SessionEvent(
            event_type=event_type,
            session=session,
            user_id=user_id or (session.user_id if session else None),
            session_id=session_id or (session.session_id if session else None)
        )
        self.feed.publish(SESSIONS_TOPIC, event)

    def _audit(self, user_id: str, action: str, session: Optional[SessionContext] = None) -> None:
        if self.audit_service is not None:
            self.audit_service.log_action(
                user_id=user_id,
                entity="session",
                entity_id=session.session_id if session else user_id,
                action=action,
                session=session
            )

    def _session_from_tokens(self, tokens: Dict[str, Any], email: str,
                             request_info: Optional[Dict[str, Any]] = None) -> SessionContext:
        request_info = request_info or {}
        return SessionContext(
            user_id=tokens["user_id"],
            role=tokens["role"],
            session_id=tokens["session_id"],
            email=email,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None,
                request_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a citizen account, its role and its profile, and sign it in.

        Args:
            email: Account email, stored lower-cased
            password: Plain text password
            full_name: Optional name for the profile
            request_info: Client IP and user agent

        Returns:
            Token dictionary for the new session

        Raises:
            ValidationException: malformed email
            ConflictException: email already registered
        """
        with tracer.start_as_current_span("sessions.sign_up") as span:
            try:
                account = UserAccount(
                    email=email,
                    password_hash=self.auth_service.hash_password(password)
                )
            except ValueError as e:
                raise ValidationException("Invalid email format", field="email") from e

            if self.mongodb_service.find_one("users", {"email": account.email}):
                raise ConflictException("An account with this email already exists")

            user_id = self.mongodb_service.insert("users", account.to_document())
            span.set_attribute("user.id", user_id)

            # Self-service sign-up always yields a citizen
            self.role_service.assign_role(user_id, AppRole.CITIZEN)
            self.mongodb_service.insert("profiles", Profile(id=user_id, full_name=full_name).to_document())

            tokens = self.auth_service.generate_tokens(user_id, account.email, AppRole.CITIZEN.value)
            session = self._session_from_tokens(tokens, account.email, request_info)

            logger.info("Citizen account created", extra={"user_id": user_id})
            self._audit(user_id, "create", session)
            self._emit(SessionEventType.SIGNED_IN, session)
            return tokens

    def sign_in(self, email: str, password: str,
                request_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Verify credentials and open a session.

        Raises:
            AuthenticationException: unknown email or wrong password
        """
        with tracer.start_as_current_span("sessions.sign_in") as span:
            email = email.strip().lower()
            document = self.mongodb_service.find_one("users", {"email": email})

            if document is None:
                logger.warning("Login attempt with non-existent email", extra={"email": email})
                raise AuthenticationException(INVALID_CREDENTIALS)

            account = UserAccount.from_document(document)
            if not self.auth_service.verify_password(password, account.password_hash):
                logger.warning("Login attempt with invalid password", extra={"user_id": account.id})
                raise AuthenticationException(INVALID_CREDENTIALS)

            role = self.role_service.get_role(account.id) or AppRole.CITIZEN
            span.set_attributes({"user.id": account.id, "user.role": role.value})

            self.mongodb_service.update_where(
                "users", account.id, {}, {"last_sign_in_at": utc_now()}
            )

            tokens = self.auth_service.generate_tokens(account.id, account.email, role.value)
            session = self._session_from_tokens(tokens, account.email, request_info)

            logger.info("User signed in", extra={"user_id": account.id, "role": role.value})
            self._audit(account.id, "login", session)
            self._emit(SessionEventType.SIGNED_IN, session)
            return tokens

    def admin_sign_in(self, email: str, password: str,
                      request_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Sign in on the admin surface.

        A valid non-admin account is signed out again before failing.

        Raises:
            AuthenticationException: bad credentials
            AuthorizationException: account is not an administrator
        """
        tokens = self.sign_in(email, password, request_info)
        if tokens["role"] != AppRole.ADMIN.value:
            session = self._session_from_tokens(tokens, email.strip().lower(), request_info)
            self.sign_out(session, SessionEventType.SESSION_REVOKED)
            logger.warning("Non-admin attempted admin sign-in", extra={"user_id": tokens["user_id"]})
            raise AuthorizationException(ADMIN_ONLY, redirect_to=self.admin_entry_point)
        return tokens

    def _record_revocation(self, session: SessionContext) -> bool:
        now = utc_now()
        try:
            self.mongodb_service.upsert(
                REVOKED_SESSIONS,
                {"session_id": session.session_id},
                {"user_id": session.user_id, "revoked_at": now},
                on_insert={
                    "expires_at": now + timedelta(seconds=self.auth_service.refresh_token_expires)
                }
            )
            return True
        except ServiceUnavailableException as e:
            logger.error(
                "Could not store session revocation",
                extra={"session_id": session.session_id, "error": str(e)}
            )
            return False

    def _is_revoked(self, session_id: str) -> bool:
        if self.redis_service is not None and self.redis_service.is_session_blocked(session_id):
            return True
        return self.mongodb_service.find_one(REVOKED_SESSIONS, {"session_id": session_id}) is not None

    def sign_out(self, session: SessionContext,
                 event_type: SessionEventType = SessionEventType.SIGNED_OUT) -> bool:
        """
        Revoke every token of the session.

        The revocation is stored in the record store and, when configured,
        in the Redis blocklist.

        Returns:
            True once the revocation is recorded

        Raises:
            ServiceUnavailableException: neither store accepted the revocation
        """
        with tracer.start_as_current_span("sessions.sign_out") as span:
            span.set_attributes({"user.id": session.user_id, "auth.session_id": session.session_id})

            stored = self._record_revocation(session)
            cached = False
            if self.redis_service is not None:
                cached = self.redis_service.block_session(
                    session.session_id, self.auth_service.refresh_token_expires
                )
            revoked = stored or cached

            logger.info(
                "Session signed out",
                extra={
                    "user_id": session.user_id,
                    "session_id": session.session_id,
                    "reason": SessionEventType(event_type).value,
                    "stored": stored,
                    "cached": cached
                }
            )
            self._emit(event_type, session=None, user_id=session.user_id, session_id=session.session_id)

            if not revoked:
                span.set_attribute("auth.revoked", False)
                raise ServiceUnavailableException("Session could not be revoked")

            self._audit(session.user_id, "logout", session)
            return True

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """
        Issue a new access token carrying the user's current role.

        Raises:
            AuthenticationException: invalid or revoked refresh token
        """
        payload = self.auth_service.validate_token(refresh_token, "refresh")
        if self._is_revoked(payload["sid"]):
            raise AuthenticationException("Session has been revoked")

        role = self.role_service.get_role(payload["sub"]) or AppRole.CITIZEN
        result = self.auth_service.issue_access_token(payload, role.value)

        session = SessionContext(
            user_id=payload["sub"],
            role=role,
            session_id=payload["sid"],
            email=payload.get("email"),
            token_payload=payload
        )
        self._emit(SessionEventType.TOKEN_REFRESHED, session)
        return result

    def current_session(self, token: Optional[str], ip_address: Optional[str] = None,
                        user_agent: Optional[str] = None) -> SessionContext:
        """
        Resolve an access token to a live session.

        The role comes from the role store, not from the token, so a role
        change takes effect on the next request.

        Raises:
            AuthenticationException: missing, invalid, expired or revoked token
        """
        if not token:
            raise AuthenticationException("Authentication required")

        payload = self.auth_service.validate_token(token, "access")

        if self._is_revoked(payload["sid"]):
            raise AuthenticationException("Session has been revoked")

        role = self.role_service.get_role(payload["sub"]) or AppRole.CITIZEN

        return SessionContext(
            user_id=payload["sub"],
            role=role,
            session_id=payload["sid"],
            email=payload.get("email"),
            token_payload=payload,
            ip_address=ip_address,
            user_agent=user_agent
        )

    def on_session_change(self, callback: Callable[[SessionEvent], None]) -> Subscription:
        """Subscribe to session events."""
        return self.feed.subscribe(SESSIONS_TOPIC, callback)
