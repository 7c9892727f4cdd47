# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Admin review console endpoints: the review queue, counters and the
approve, reject and start-review actions.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..middleware.auth import require_admin
from ..models.entities import SessionContext
from ..models.requests import RegistrationPath, RegistrationSearchQuery, RejectRegistrationRequest
from ..utils.request import get_json_body, parse_model

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
admin_tag = Tag(name="Admin", description="Registration review for administrators")
admin_bp = APIBlueprint(
    'admin',
    __name__,
    url_prefix='/api/admin',
    abp_tags=[admin_tag]
)


@admin_bp.get('/registrations')
@require_admin
def list_review_queue(session: SessionContext, query: RegistrationSearchQuery):
    """
    List every registration, newest first, optionally filtered by a
    case-insensitive match on full name or place of event.
    """
    with tracer.start_as_current_span("admin.review_queue") as span:
        service = current_app.registration_service
        records = service.list_queue(session, query.search)
        span.set_attributes({
            "registrations.count": len(records),
            "registrations.search": query.search or ""
        })

        return jsonify(current_app.hal_formatter.format_registration_collection(
            records,
            session,
            "/api/admin/registrations",
            search=query.search,
            stats=service.stats(session)
        )), 200


@admin_bp.get('/stats')
@require_admin
def get_stats(session: SessionContext):
    """
    Counters for the review dashboard.
    """
    stats = current_app.registration_service.stats(session)
    return jsonify(current_app.hal_formatter.format_stats(stats)), 200


@admin_bp.post('/registrations/<string:registration_id>/approve')
@require_admin
def approve_registration(session: SessionContext, path: RegistrationPath):
    """
    Approve a pending or under-review registration.

    Fails with 409 when the record is already approved or rejected, or when
    another reviewer processed it first.
    """
    record = current_app.registration_service.approve(session, path.registration_id)
    return jsonify(current_app.hal_formatter.format_registration(record, session)), 200


@admin_bp.post('/registrations/<string:registration_id>/reject')
@require_admin
def reject_registration(session: SessionContext, path: RegistrationPath):
    """
    Reject a pending or under-review registration.

    The body carries the reason shown to the citizen: ``{"reason": "..."}``.
    """
    reject_request = parse_model(RejectRegistrationRequest, get_json_body())

    record = current_app.registration_service.reject(session, path.registration_id, reject_request.reason)
    return jsonify(current_app.hal_formatter.format_registration(record, session)), 200


@admin_bp.post('/registrations/<string:registration_id>/review')
@require_admin
def start_review(session: SessionContext, path: RegistrationPath):
    """
    Move a pending registration under review.
    """
    record = current_app.registration_service.start_review(session, path.registration_id)
    return jsonify(current_app.hal_formatter.format_registration(record, session)), 200
