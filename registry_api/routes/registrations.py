# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Citizen registration endpoints: submission, tracking, supporting documents
and certificates.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..middleware.auth import require_auth
from ..models.entities import SessionContext
from ..models.requests import RegistrationPath

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
registrations_tag = Tag(name="Registrations", description="Birth and death registration requests")
registrations_bp = APIBlueprint(
    'registrations',
    __name__,
    url_prefix='/api/registrations',
    abp_tags=[registrations_tag]
)


@registrations_bp.post('')
@require_auth
def submit_registration(session: SessionContext):
    """
    Submit a birth or death registration request.

    The record is created as pending and owned by the caller; any user_id in
    the body is ignored.
    """
    with tracer.start_as_current_span("registrations.submit_endpoint") as span:
        span.set_attribute("user.id", session.user_id)

        record_id = current_app.registration_service.submit(session, request.get_json(silent=True))
        record = current_app.registration_service.get(session, record_id)

        response = current_app.hal_formatter.format_registration(record, session)
        return jsonify(response), 201, {"Location": response["_links"]["self"]["href"]}


@registrations_bp.get('')
@require_auth
def list_registrations(session: SessionContext):
    """
    List the caller's own registrations, newest first.
    """
    with tracer.start_as_current_span("registrations.list_endpoint") as span:
        records = list(current_app.registration_service.iter_for_citizen(session))
        span.set_attribute("registrations.count", len(records))

        return jsonify(current_app.hal_formatter.format_registration_collection(
            records, session, "/api/registrations"
        )), 200


@registrations_bp.get('/<string:registration_id>')
@require_auth
def get_registration(session: SessionContext, path: RegistrationPath):
    """
    Get one registration with its status display and available actions.

    Records of other citizens are reported as not found.
    """
    record = current_app.registration_service.get(session, path.registration_id)
    return jsonify(current_app.hal_formatter.format_registration(record, session)), 200


@registrations_bp.post('/<string:registration_id>/documents')
@require_auth
def attach_document(session: SessionContext, path: RegistrationPath):
    """
    Record metadata of a supporting document for a registration.
    """
    document = current_app.document_service.attach(
        session, path.registration_id, request.get_json(silent=True)
    )
    return jsonify(current_app.hal_formatter.format_document(document)), 201


@registrations_bp.get('/<string:registration_id>/documents')
@require_auth
def list_documents(session: SessionContext, path: RegistrationPath):
    """
    List the supporting documents of a registration.
    """
    documents = current_app.document_service.list_for_registration(session, path.registration_id)
    return jsonify(current_app.hal_formatter.format_document_collection(
        path.registration_id, documents
    )), 200


@registrations_bp.get('/<string:registration_id>/certificate')
@require_auth
def get_certificate(session: SessionContext, path: RegistrationPath):
    """
    Certificate summary of an approved registration.
    """
    certificate = current_app.registration_service.certificate(session, path.registration_id)
    logger.info(
        "Certificate issued",
        extra={"registration_id": path.registration_id, "user_id": session.user_id}
    )
    return jsonify(current_app.hal_formatter.format_certificate(certificate)), 200
