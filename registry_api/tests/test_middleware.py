# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for middleware functionality.
"""

import pytest
from unittest.mock import Mock
from flask import Flask, g

from registry_api.exceptions import (
    AuthenticationException,
    ConflictException,
    StateException,
    ValidationException,
)
from registry_api.middleware.auth import AuthMiddleware, require_admin, require_auth
from registry_api.middleware.error_handler import ErrorHandlerMiddleware
from registry_api.models.enums import SessionEventType
from registry_api.models.requests import LoginRequest
from registry_api.services.hal import HalFormatter
from registry_api.utils.request import get_json_body, parse_model


@pytest.fixture
def flask_app():
    app = Flask(__name__)
    app.config["ENVIRONMENT"] = "test"
    ErrorHandlerMiddleware(app, HalFormatter("https://api.example.com"))
    return app


class TestErrorHandlerMiddleware:
    """Test problem document rendering."""

    def test_validation_exception(self, flask_app):
        @flask_app.route("/submit")
        def submit():
            raise ValidationException("Full name is required", field="person_full_name")

        response = flask_app.test_client().get("/submit")

        assert response.status_code == 400
        data = response.get_json()
        assert data["title"] == "Validation Error"
        assert data["detail"] == "Full name is required"
        assert data["instance"] == "/submit"
        assert data["errors"] == [{"field": "person_full_name", "message": "Full name is required"}]

    def test_state_exception_carries_current_status(self, flask_app):
        @flask_app.route("/approve")
        def approve():
            raise StateException("Registration cannot be approved from status 'rejected'", current_status="rejected")

        response = flask_app.test_client().get("/approve")

        assert response.status_code == 409
        assert response.get_json()["current_status"] == "rejected"

    def test_conflict_exception(self, flask_app):
        @flask_app.route("/race")
        def race():
            raise ConflictException("Registration already processed")

        data = flask_app.test_client().get("/race").get_json()

        assert data["status"] == 409
        assert data["type"] == "https://api.example.com/problems/resource-conflict"

    def test_authentication_exception_links_login_and_redirect(self, flask_app):
        @flask_app.route("/private")
        def private():
            raise AuthenticationException("Authentication required", redirect_to="/auth")

        data = flask_app.test_client().get("/private").get_json()

        assert data["_links"]["login"]["method"] == "POST"
        assert data["_links"]["redirect"]["href"] == "https://api.example.com/auth"

    def test_http_error(self, flask_app):
        response = flask_app.test_client().get("/missing")

        assert response.status_code == 404
        assert response.get_json()["type"] == "https://api.example.com/problems/resource-not-found"

    @pytest.mark.parametrize("environment,exposed", [("development", True), ("production", False)])
    def test_unexpected_error_detail(self, flask_app, environment, exposed):
        flask_app.config["ENVIRONMENT"] = environment

        @flask_app.route("/boom")
        def boom():
            raise RuntimeError("database password is hunter2")

        response = flask_app.test_client().get("/boom")

        assert response.status_code == 500
        assert ("hunter2" in response.get_json()["detail"]) is exposed


class TestAuthMiddleware:
    """Test the route guards."""

    @pytest.fixture
    def session_service(self):
        return Mock()

    @pytest.fixture
    def guarded_app(self, flask_app, session_service):
        flask_app.auth_middleware = AuthMiddleware(session_service, "/auth", "/admin-auth")

        @flask_app.route("/mine")
        @require_auth
        def mine(session):
            return {"user_id": session.user_id, "same": g.session_context is session}

        @flask_app.route("/queue")
        @require_admin
        def queue(session):
            return {"user_id": session.user_id}

        return flask_app

    def test_token_is_passed_to_session_service(self, guarded_app, session_service, citizen_session):
        session_service.current_session.return_value = citizen_session

        response = guarded_app.test_client().get("/mine", headers={"Authorization": "Bearer abc.def"})

        assert response.get_json() == {"user_id": citizen_session.user_id, "same": True}
        assert session_service.current_session.call_args.args[0] == "abc.def"

    def test_missing_session_redirects_to_surface_entry_point(self, guarded_app, session_service):
        session_service.current_session.side_effect = AuthenticationException("Authentication required")
        client = guarded_app.test_client()

        citizen = client.get("/mine").get_json()
        admin = client.get("/queue").get_json()

        assert citizen["_links"]["redirect"]["href"] == "https://api.example.com/auth"
        assert admin["_links"]["redirect"]["href"] == "https://api.example.com/admin-auth"

    def test_session_error_is_not_rewritten(self, guarded_app, session_service):
        error = AuthenticationException("Session has been revoked")
        session_service.current_session.side_effect = error

        for _ in range(2):
            guarded_app.test_client().get("/queue")

        assert error.redirect_to is None

    def test_explicit_redirect_is_kept(self, guarded_app, session_service):
        session_service.current_session.side_effect = AuthenticationException("Expired", redirect_to="/welcome")

        data = guarded_app.test_client().get("/queue").get_json()

        assert data["detail"] == "Expired"
        assert data["_links"]["redirect"]["href"] == "https://api.example.com/welcome"

    def test_citizen_on_admin_route_is_signed_out(self, guarded_app, session_service, citizen_session):
        session_service.current_session.return_value = citizen_session

        response = guarded_app.test_client().get("/queue", headers={"Authorization": "Bearer abc.def"})

        assert response.status_code == 403
        session_service.sign_out.assert_called_once_with(citizen_session, SessionEventType.SESSION_REVOKED)

    def test_admin_on_both_surfaces(self, guarded_app, session_service, admin_session):
        session_service.current_session.return_value = admin_session
        client = guarded_app.test_client()

        assert client.get("/queue").status_code == 200
        assert client.get("/mine").status_code == 200
        session_service.sign_out.assert_not_called()


class TestRequestUtilities:
    """Test body parsing helpers."""

    def test_get_json_body_requires_object(self, flask_app):
        with flask_app.test_request_context("/", method="POST", json=["not", "an", "object"]):
            with pytest.raises(ValidationException) as exc_info:
                get_json_body()
        assert exc_info.value.field == "body"

    def test_parse_model_reports_first_field(self):
        with pytest.raises(ValidationException) as exc_info:
            parse_model(LoginRequest, {"email": "ada@example.org"})

        assert exc_info.value.field == "password"
        assert exc_info.value.validation_errors[0]["field"] == "password"
