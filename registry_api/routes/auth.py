# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Authentication endpoints for sign-up, login, logout, token refresh and
session lookup.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging
from typing import Any, Dict

from ..middleware.auth import require_auth
from ..models.entities import SessionContext
from ..models.requests import LoginRequest, RefreshTokenRequest, SignUpRequest
from ..utils.request import get_json_body, get_request_info, parse_model

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
auth_tag = Tag(name="Authentication", description="Sessions for citizens and administrators")
auth_bp = APIBlueprint(
    'auth',
    __name__,
    url_prefix='/api/auth',
    abp_tags=[auth_tag]
)


def _token_response(tokens: Dict[str, Any]) -> Dict[str, Any]:
    base_url = current_app.config['BASE_URL']
    response = dict(tokens)
    response["_links"] = {
        "self": {"href": f"{base_url}/api/auth/session"},
        "refresh": {"href": f"{base_url}/api/auth/refresh", "method": "POST"},
        "logout": {"href": f"{base_url}/api/auth/logout", "method": "POST"}
    }
    if tokens["role"] == "admin":
        response["_links"]["review_queue"] = {"href": f"{base_url}/api/admin/registrations"}
    else:
        response["_links"]["registrations"] = {"href": f"{base_url}/api/registrations"}
    return response


@auth_bp.post('/signup')
def signup():
    """
    Create a citizen account and sign it in.

    New accounts always receive the citizen role.
    """
    with tracer.start_as_current_span("auth.signup", attributes={"ip_address": request.remote_addr}):
        signup_request = parse_model(SignUpRequest, get_json_body())
        tokens = current_app.session_service.sign_up(
            signup_request.email,
            signup_request.password,
            full_name=signup_request.full_name,
            request_info=get_request_info()
        )
        return jsonify(_token_response(tokens)), 201


@auth_bp.post('/login')
def login():
    """
    Authenticate a user and return access and refresh tokens.
    """
    with tracer.start_as_current_span("auth.login", attributes={"ip_address": request.remote_addr}):
        login_request = parse_model(LoginRequest, get_json_body())
        tokens = current_app.session_service.sign_in(
            login_request.email,
            login_request.password,
            request_info=get_request_info()
        )
        return jsonify(_token_response(tokens)), 200


@auth_bp.post('/admin/login')
def admin_login():
    """
    Authenticate on the admin console.

    Accounts without the admin role are signed out again and refused with a
    redirect to the admin entry point.
    """
    with tracer.start_as_current_span("auth.admin_login", attributes={"ip_address": request.remote_addr}):
        login_request = parse_model(LoginRequest, get_json_body())
        tokens = current_app.session_service.admin_sign_in(
            login_request.email,
            login_request.password,
            request_info=get_request_info()
        )
        return jsonify(_token_response(tokens)), 200


@auth_bp.post('/logout')
@require_auth
def logout(session: SessionContext):
    """
    Sign out the current session, revoking its access and refresh tokens.
    """
    revoked = current_app.session_service.sign_out(session)
    return jsonify({
        "message": "Successfully logged out",
        "revoked": revoked,
        "_links": {
            "login": {
                "href": f"{current_app.config['BASE_URL']}/api/auth/login",
                "method": "POST"
            }
        }
    }), 200


@auth_bp.post('/refresh')
def refresh_token():
    """
    Exchange a refresh token for a new access token carrying the current role.
    """
    with tracer.start_as_current_span("auth.refresh"):
        refresh_request = parse_model(RefreshTokenRequest, get_json_body())
        result = current_app.session_service.refresh(refresh_request.refresh_token)
        result["_links"] = {
            "self": {"href": f"{current_app.config['BASE_URL']}/api/auth/session"}
        }
        return jsonify(result), 200


@auth_bp.get('/session')
@require_auth
def get_session(session: SessionContext):
    """
    Describe the current session, with the role resolved from the role store.
    """
    base_url = current_app.config['BASE_URL']
    links = {
        "self": {"href": f"{base_url}/api/auth/session"},
        "profile": {"href": f"{base_url}/api/profile"},
        "logout": {"href": f"{base_url}/api/auth/logout", "method": "POST"}
    }
    if session.is_admin:
        links["review_queue"] = {"href": f"{base_url}/api/admin/registrations"}
    else:
        links["registrations"] = {"href": f"{base_url}/api/registrations"}

    return jsonify({
        "user_id": session.user_id,
        "email": session.email,
        "role": session.role,
        "session_id": session.session_id,
        "_links": links
    }), 200
