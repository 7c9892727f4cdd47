# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Profile endpoints. Every user reads and edits only their own profile.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..middleware.auth import require_auth
from ..models.entities import SessionContext
from ..models.requests import UpdateProfileRequest
from ..utils.request import get_json_body, parse_model

profile_tag = Tag(name="Profile", description="The caller's own profile")
profile_bp = APIBlueprint(
    'profile',
    __name__,
    url_prefix='/api/profile',
    abp_tags=[profile_tag]
)


@profile_bp.get('')
@require_auth
def get_profile(session: SessionContext):
    """Get the caller's profile."""
    profile = current_app.profile_service.get(session)
    return jsonify(current_app.hal_formatter.format_profile(profile)), 200


@profile_bp.put('')
@require_auth
def update_profile(session: SessionContext):
    """Update the caller's full name, national ID or phone."""
    changes = parse_model(UpdateProfileRequest, get_json_body())
    profile = current_app.profile_service.update(session, changes.model_dump(exclude_unset=True))
    return jsonify(current_app.hal_formatter.format_profile(profile)), 200
