# SPDX-License-Identifier: Apache-2.0

"""
Supporting document metadata. File contents live outside this service.
"""

import logging
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from .audit import AuditService
from .mongodb import MongoDBService
from .registrations import RegistrationService
from ..exceptions import ValidationException
from ..models.entities import Document, SessionContext
from ..models.enums import ChangeEventType
from ..realtime.feed import ChangeNotifier

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "documents"


class DocumentService:
    """Attach and list document metadata for registrations the caller can see."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        registration_service: RegistrationService,
        notifier: ChangeNotifier,
        audit_service: Optional[AuditService] = None
    ):
        self.mongodb_service = mongodb_service
        self.registration_service = registration_service
        self.notifier = notifier
        self.audit_service = audit_service

    def attach(self, session: SessionContext, registration_id: str, payload: Dict[str, Any]) -> Document:
        """
        Record a document against a registration.

        Raises:
            NotFoundException: registration not visible to the caller
            ValidationException: missing file name or path
        """
        with tracer.start_as_current_span("documents.attach") as span:
            span.set_attributes({"registration.id": registration_id, "user.id": session.user_id})

            self.registration_service.get(session, registration_id)

            if not isinstance(payload, dict):
                raise ValidationException("Request body must be a JSON object", field="body")

            try:
                document = Document(
                    registration_id=registration_id,
                    uploaded_by=session.user_id,
                    file_name=payload.get("file_name") or "",
                    file_path=payload.get("file_path") or "",
                    file_type=payload.get("file_type")
                )
            except ValueError as e:
                field = "file_name" if not (payload.get("file_name") or "").strip() else "file_path"
                raise ValidationException(f"{field} is required", field=field) from e

            self.mongodb_service.insert(COLLECTION, document.to_document())

            logger.info(
                "Document attached",
                extra={
                    "document_id": document.id,
                    "registration_id": registration_id,
                    "user_id": session.user_id
                }
            )
            if self.audit_service is not None:
                self.audit_service.log_action(
                    user_id=session.user_id,
                    entity="document",
                    entity_id=document.id,
                    action="attach_document",
                    after={"registration_id": registration_id, "file_name": document.file_name},
                    session=session
                )
            self.notifier.notify(COLLECTION, ChangeEventType.INSERT, document.id)
            return document

    def list_for_registration(self, session: SessionContext, registration_id: str) -> List[Document]:
        """Documents of a visible registration, newest first."""
        self.registration_service.get(session, registration_id)
        return [
            Document.from_document(document)
            for document in self.mongodb_service.find(COLLECTION, {"registration_id": registration_id})
        ]
