# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for tokens, sessions, roles and the session-following gate.
"""

import pytest
from unittest.mock import MagicMock, patch

from registry_api.exceptions import (
    AuthenticationException,
    AuthorizationException,
    ConflictException,
    ServiceUnavailableException,
    ValidationException,
)
from registry_api.models.enums import AppRole, Surface
from registry_api.realtime.gate import SessionGate
from registry_api.scripts.assign_role import assign_role
from registry_api.services.audit import AuditService
from registry_api.services.auth import AuthService, TokenValidationError
from registry_api.services.roles import RoleService
from registry_api.services.sessions import SessionService


@pytest.fixture
def role_service(store, redis_service):
    return RoleService(store, redis_service)


@pytest.fixture
def session_service(store, auth_service, role_service, feed, redis_service):
    return SessionService(
        store, auth_service, role_service, feed,
        redis_service=redis_service,
        audit_service=AuditService(store)
    )


@pytest.fixture
def session_events(feed):
    events = []
    subscription = feed.subscribe("auth.sessions", events.append)
    yield events
    subscription.unsubscribe()


class TestAuthService:
    """Test password hashing and RS256 tokens."""

    def test_password_hashing(self, auth_service):
        hashed = auth_service.hash_password("correct-horse")

        assert hashed != "correct-horse"
        assert auth_service.verify_password("correct-horse", hashed)
        assert not auth_service.verify_password("wrong", hashed)

    def test_token_claims(self, auth_service):
        tokens = auth_service.generate_tokens("user-1", "ada@example.org", "citizen")
        payload = auth_service.validate_token(tokens["access_token"], "access")

        assert payload["sub"] == "user-1"
        assert payload["role"] == "citizen"
        assert payload["sid"] == tokens["session_id"]

    def test_token_type_enforced(self, auth_service):
        tokens = auth_service.generate_tokens("user-1", "ada@example.org", "citizen")

        with pytest.raises(TokenValidationError):
            auth_service.validate_token(tokens["refresh_token"], "access")

    def test_foreign_key_rejected(self, auth_service):
        stranger = AuthService(bcrypt_rounds=4)
        tokens = stranger.generate_tokens("user-1", "ada@example.org", "citizen")

        with pytest.raises(TokenValidationError):
            auth_service.validate_token(tokens["access_token"])

    def test_expired_token(self, rsa_keys):
        service = AuthService(*rsa_keys, access_token_expires=-1)
        tokens = service.generate_tokens("user-1", "ada@example.org", "citizen")

        with pytest.raises(TokenValidationError, match="expired"):
            service.validate_token(tokens["access_token"])


class TestRoleService:
    """Test role lookup and the role cache."""

    def test_unknown_user_has_no_role(self, role_service):
        assert role_service.get_role("nobody") is None

    def test_assign_replaces_and_invalidates_cache(self, role_service, redis_service):
        role_service.assign_role("user-1", AppRole.CITIZEN)
        assert role_service.get_role("user-1") == AppRole.CITIZEN
        assert redis_service.get_cached_role("user-1") == "citizen"

        role_service.assign_role("user-1", AppRole.ADMIN)

        assert redis_service.get_cached_role("user-1") is None
        assert role_service.has_role("user-1", AppRole.ADMIN)


class TestSessionService:
    """Test the sign-up, sign-in, sign-out and refresh flows."""

    def test_sign_up_creates_citizen(self, session_service, role_service, store, session_events):
        tokens = session_service.sign_up("Ada@Example.org", "correct-horse", "Ada Lovelace")

        assert tokens["role"] == "citizen"
        assert role_service.get_role(tokens["user_id"]) == AppRole.CITIZEN
        assert store.find_by_id("profiles", tokens["user_id"])["full_name"] == "Ada Lovelace"
        assert store.find_one("users", {"email": "ada@example.org"}) is not None
        assert [e.event_type for e in session_events] == ["SIGNED_IN"]

    def test_duplicate_email(self, session_service):
        session_service.sign_up("ada@example.org", "correct-horse")

        with pytest.raises(ConflictException):
            session_service.sign_up("ADA@example.org", "another-pass")

    def test_malformed_email(self, session_service):
        with pytest.raises(ValidationException) as exc_info:
            session_service.sign_up("not-an-email", "correct-horse")
        assert exc_info.value.field == "email"

    def test_sign_in(self, session_service):
        created = session_service.sign_up("ada@example.org", "correct-horse")
        tokens = session_service.sign_in(" ADA@example.org ", "correct-horse")

        assert tokens["user_id"] == created["user_id"]
        assert tokens["session_id"] != created["session_id"]

    @pytest.mark.parametrize("email,password", [
        ("ada@example.org", "wrong-password"),
        ("nobody@example.org", "correct-horse"),
    ])
    def test_bad_credentials(self, session_service, email, password):
        session_service.sign_up("ada@example.org", "correct-horse")

        with pytest.raises(AuthenticationException, match="Invalid email or password"):
            session_service.sign_in(email, password)

    def test_current_session_resolves_current_role(self, session_service, role_service):
        tokens = session_service.sign_up("ada@example.org", "correct-horse")
        role_service.assign_role(tokens["user_id"], AppRole.ADMIN)

        session = session_service.current_session(tokens["access_token"])

        assert session.user_id == tokens["user_id"]
        assert session.is_admin

    def test_missing_token(self, session_service):
        with pytest.raises(AuthenticationException):
            session_service.current_session(None)

    def test_sign_out_revokes_session(self, session_service, session_events):
        tokens = session_service.sign_up("ada@example.org", "correct-horse")
        session = session_service.current_session(tokens["access_token"])

        assert session_service.sign_out(session)

        with pytest.raises(AuthenticationException, match="revoked"):
            session_service.current_session(tokens["access_token"])
        with pytest.raises(AuthenticationException, match="revoked"):
            session_service.refresh(tokens["refresh_token"])

        signed_out = session_events[-1]
        assert signed_out.event_type == "SIGNED_OUT"
        assert signed_out.session_id == session.session_id

    def test_sign_out_without_redis_is_stored(self, store, auth_service, feed):
        service = SessionService(store, auth_service, RoleService(store), feed)
        tokens = service.sign_up("ada@example.org", "correct-horse")
        session = service.current_session(tokens["access_token"])

        assert service.sign_out(session)

        revocation = store.find_one("revoked_sessions", {"session_id": session.session_id})
        assert revocation["user_id"] == session.user_id
        assert revocation["expires_at"] > revocation["revoked_at"]
        with pytest.raises(AuthenticationException, match="revoked"):
            service.current_session(tokens["access_token"])
        with pytest.raises(AuthenticationException, match="revoked"):
            service.refresh(tokens["refresh_token"])

    def test_sign_out_fails_when_nothing_recorded(self, store, auth_service, feed, session_events):
        service = SessionService(store, auth_service, RoleService(store), feed)
        tokens = service.sign_up("ada@example.org", "correct-horse")
        session = service.current_session(tokens["access_token"])

        with patch.object(store, "upsert", side_effect=ServiceUnavailableException("Record store is unavailable")):
            with pytest.raises(ServiceUnavailableException):
                service.sign_out(session)

        assert session_events[-1].event_type == "SIGNED_OUT"

    def test_redis_outage_still_stores_revocation(self, session_service, redis_service, store):
        tokens = session_service.sign_up("ada@example.org", "correct-horse")
        session = session_service.current_session(tokens["access_token"])
        redis_service.block_session = MagicMock(return_value=False)

        assert session_service.sign_out(session)

        with pytest.raises(AuthenticationException, match="revoked"):
            session_service.current_session(tokens["access_token"])

    def test_refresh_carries_current_role(self, session_service, role_service, auth_service, session_events):
        tokens = session_service.sign_up("ada@example.org", "correct-horse")
        role_service.assign_role(tokens["user_id"], AppRole.ADMIN)

        refreshed = session_service.refresh(tokens["refresh_token"])
        payload = auth_service.validate_token(refreshed["access_token"])

        assert payload["role"] == "admin"
        assert payload["sid"] == tokens["session_id"]
        assert session_events[-1].event_type == "TOKEN_REFRESHED"

    def test_admin_sign_in_refuses_citizen(self, session_service, redis_service, session_events):
        tokens = session_service.sign_up("ada@example.org", "correct-horse")

        with pytest.raises(AuthorizationException) as exc_info:
            session_service.admin_sign_in("ada@example.org", "correct-horse")

        assert exc_info.value.redirect_to == "/admin-auth"
        assert session_events[-1].event_type == "SESSION_REVOKED"
        assert len(redis_service.blocked) == 1
        assert tokens["session_id"] not in redis_service.blocked

    def test_admin_sign_in(self, session_service, role_service):
        tokens = session_service.sign_up("registrar@example.org", "correct-horse")
        role_service.assign_role(tokens["user_id"], AppRole.ADMIN)

        assert session_service.admin_sign_in("registrar@example.org", "correct-horse")["role"] == "admin"


class TestSessionGate:
    """Test gate re-evaluation on session changes."""

    def test_signed_out_client_is_redirected(self, session_service):
        redirect = MagicMock()
        with SessionGate(session_service, Surface.CITIZEN, redirect) as gate:
            assert not gate.allowed

        redirect.assert_called_once_with("/auth")

    def test_sign_in_admits_and_sign_out_redirects(self, session_service):
        redirect = MagicMock()
        with SessionGate(session_service, Surface.CITIZEN, redirect) as gate:
            redirect.reset_mock()
            tokens = session_service.sign_up("ada@example.org", "correct-horse")
            assert gate.allowed
            assert gate.session.user_id == tokens["user_id"]

            session_service.sign_out(gate.session)

            assert not gate.allowed
            assert gate.session is None
            redirect.assert_called_once_with("/auth")

    def test_citizen_on_admin_surface_is_signed_out(self, session_service, redis_service):
        tokens = session_service.sign_up("ada@example.org", "correct-horse")
        session = session_service.current_session(tokens["access_token"])
        redirect = MagicMock()

        gate = SessionGate(session_service, Surface.ADMIN, redirect, session=session)
        decision = gate.open()
        gate.close()

        assert decision.sign_out
        assert gate.session is None
        assert session.session_id in redis_service.blocked
        redirect.assert_called_once_with("/admin-auth")

    def test_role_change_applies_on_refresh(self, session_service, role_service):
        tokens = session_service.sign_up("registrar@example.org", "correct-horse")
        role_service.assign_role(tokens["user_id"], AppRole.ADMIN)
        session = session_service.current_session(tokens["access_token"])
        redirect = MagicMock()

        with SessionGate(session_service, Surface.ADMIN, redirect, session=session) as gate:
            assert gate.allowed

            role_service.assign_role(tokens["user_id"], AppRole.CITIZEN)
            session_service.refresh(tokens["refresh_token"])

            assert not gate.allowed
            assert gate.session is None

        redirect.assert_called_once_with("/admin-auth")

    def test_other_clients_events_are_ignored(self, session_service):
        mine = session_service.sign_up("ada@example.org", "correct-horse")
        session = session_service.current_session(mine["access_token"])
        redirect = MagicMock()

        with SessionGate(session_service, Surface.CITIZEN, redirect, session=session) as gate:
            other = session_service.sign_up("ben@example.org", "correct-horse")
            session_service.sign_out(session_service.current_session(other["access_token"]))

            assert gate.allowed
            assert gate.session.user_id == mine["user_id"]

        redirect.assert_not_called()


class TestAssignRoleScript:
    """Test operator promotion of accounts."""

    def test_promotes_existing_account(self, session_service, role_service, store):
        tokens = session_service.sign_up("registrar@example.org", "correct-horse")

        assert assign_role(role_service, store, " Registrar@Example.org", AppRole.ADMIN)
        assert role_service.get_role(tokens["user_id"]) == AppRole.ADMIN

    def test_unknown_account(self, role_service, store):
        assert not assign_role(role_service, store, "nobody@example.org", AppRole.ADMIN)
