# SPDX-License-Identifier: Apache-2.0

"""
Registration service: submission, tracking and review.

Every write is followed by a change notification on the ``registrations``
topic. Review transitions are conditional writes guarded by the status the
reviewer saw, so two reviewers racing on one record cannot both succeed.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from opentelemetry import trace

from .audit import AuditService
from .mongodb import MongoDBService
from ..domain.authorization import can_read_registration
from ..domain.registrations import build_registration, filter_registrations
from ..exceptions import (
    AuthorizationException,
    ConflictException,
    NotFoundException,
    StateException,
)
from ..models.entities import RegistrationRecord, SessionContext
from ..models.enums import ChangeEventType, RegistrationStatus
from ..models.responses import RegistrationStats
from ..realtime.feed import ChangeNotifier

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "registrations"
REVIEW_FIELDS = ("status", "reviewed_by", "reviewed_at", "rejection_reason", "updated_at")


class RegistrationService:
    """Reads and writes registration records on behalf of a session."""

    def __init__(
        self,
        mongodb_service: MongoDBService,
        notifier: ChangeNotifier,
        audit_service: Optional[AuditService] = None
    ):
        self.mongodb_service = mongodb_service
        self.notifier = notifier
        self.audit_service = audit_service

    def _require_admin(self, session: SessionContext) -> None:
        if not session.is_admin:
            logger.warning(
                "Non-admin session attempted a review operation",
                extra={"user_id": session.user_id, "role": session.role}
            )
            raise AuthorizationException("Unauthorized: Admin access only")

    def _audit(self, session: SessionContext, record_id: str, action: str,
               before: Optional[Dict[str, Any]] = None, after: Optional[Dict[str, Any]] = None) -> None:
        if self.audit_service is not None:
            self.audit_service.log_action(
                user_id=session.user_id,
                entity="registration",
                entity_id=record_id,
                action=action,
                before=before,
                after=after,
                session=session
            )

    def submit(self, session: SessionContext, payload: Dict[str, Any]) -> str:
        """
        Create a pending registration owned by the session's user.

        Args:
            session: Submitting citizen
            payload: Raw form values; a ``user_id`` in it is ignored

        Returns:
            ID of the new record

        Raises:
            ValidationException: naming the first offending field
        """
        with tracer.start_as_current_span("registrations.submit") as span:
            span.set_attribute("user.id", session.user_id)

            record = build_registration(payload, session.user_id)
            record_id = self.mongodb_service.insert(COLLECTION, record.to_document())

            span.set_attributes({
                "registration.id": record_id,
                "registration.type": record.registration_type
            })
            logger.info(
                "Registration submitted",
                extra={
                    "registration_id": record_id,
                    "user_id": session.user_id,
                    "registration_type": record.registration_type
                }
            )

            self._audit(session, record_id, "create", after={"status": record.status})
            self.notifier.notify(COLLECTION, ChangeEventType.INSERT, record_id)
            return record_id

    def _iter(self, filters: Dict[str, Any]) -> Iterator[RegistrationRecord]:
        for document in self.mongodb_service.find(COLLECTION, filters):
            yield RegistrationRecord.from_document(document)

    def iter_for_citizen(self, session: SessionContext) -> Iterator[RegistrationRecord]:
        """The session user's own records, newest first."""
        return self._iter({"user_id": session.user_id})

    def iter_all(self, session: SessionContext) -> Iterator[RegistrationRecord]:
        """Every record, newest first. Admin only."""
        self._require_admin(session)
        return self._iter({})

    def list_queue(self, session: SessionContext, search: Optional[str] = None) -> List[RegistrationRecord]:
        """The admin review queue, optionally narrowed by a search term."""
        return filter_registrations(self.iter_all(session), search)

    def get(self, session: SessionContext, record_id: str) -> RegistrationRecord:
        """
        Fetch one record visible to the session.

        Records owned by other citizens are reported as missing.

        Raises:
            NotFoundException: no such record, or not visible to the caller
        """
        document = self.mongodb_service.find_by_id(COLLECTION, record_id)
        if document is None:
            raise NotFoundException("Registration not found")

        record = RegistrationRecord.from_document(document)
        if not can_read_registration(session, record):
            logger.warning(
                "Registration access denied",
                extra={"registration_id": record_id, "user_id": session.user_id}
            )
            raise NotFoundException("Registration not found")
        return record

    def _transition(
        self,
        session: SessionContext,
        record_id: str,
        action: str,
        apply: Callable[[RegistrationRecord], RegistrationRecord]
    ) -> RegistrationRecord:
        self._require_admin(session)

        with tracer.start_as_current_span(f"registrations.{action}") as span:
            span.set_attributes({
                "registration.id": record_id,
                "user.id": session.user_id,
                "registration.action": action
            })

            current = self.get(session, record_id)
            updated = apply(current)

            changes = updated.model_dump(include=set(REVIEW_FIELDS))
            stored = self.mongodb_service.update_where(
                COLLECTION,
                record_id,
                {"status": current.status},
                changes
            )

            if stored is None:
                latest = self.get(session, record_id)
                span.set_attribute("registration.conflict", True)
                logger.warning(
                    "Registration changed by another reviewer",
                    extra={
                        "registration_id": record_id,
                        "expected_status": current.status,
                        "actual_status": latest.status
                    }
                )
                raise ConflictException("Registration already processed")

            record = RegistrationRecord.from_document(stored)
            logger.info(
                f"Registration {action} completed",
                extra={
                    "registration_id": record_id,
                    "reviewer_id": session.user_id,
                    "from_status": current.status,
                    "to_status": record.status
                }
            )

            self._audit(
                session, record_id, action,
                before={"status": current.status},
                after={"status": record.status, "rejection_reason": record.rejection_reason}
            )
            self.notifier.notify(COLLECTION, ChangeEventType.UPDATE, record_id)
            return record

    def approve(self, session: SessionContext, record_id: str) -> RegistrationRecord:
        """
        Approve a pending or under-review record.

        Raises:
            StateException: record already approved or rejected
            ConflictException: another reviewer processed it first
        """
        return self._transition(
            session, record_id, "approve",
            lambda record: record.approve(session.user_id)
        )

    def reject(self, session: SessionContext, record_id: str, reason: str) -> RegistrationRecord:
        """
        Reject a pending or under-review record with a reason for the citizen.

        Raises:
            ValidationException: blank reason
            StateException: record already approved or rejected
            ConflictException: another reviewer processed it first
        """
        return self._transition(
            session, record_id, "reject",
            lambda record: record.reject(session.user_id, reason)
        )

    def start_review(self, session: SessionContext, record_id: str) -> RegistrationRecord:
        """Move a pending record under review."""
        return self._transition(
            session, record_id, "review",
            lambda record: record.mark_under_review()
        )

    def stats(self, session: SessionContext) -> RegistrationStats:
        """Counters for the admin dashboard."""
        self._require_admin(session)

        counts = {
            status.value: self.mongodb_service.count(COLLECTION, {"status": status.value})
            for status in RegistrationStatus
        }
        return RegistrationStats(
            pending_review=counts["pending"] + counts["under_review"],
            approved=counts["approved"],
            rejected=counts["rejected"],
            total=sum(counts.values())
        )

    def certificate(self, session: SessionContext, record_id: str) -> Dict[str, Any]:
        """
        Certificate summary of an approved record.

        Raises:
            NotFoundException: record not visible to the caller
            StateException: record not approved
        """
        record = self.get(session, record_id)
        if record.status != RegistrationStatus.APPROVED:
            raise StateException(
                "Certificate is only available for approved registrations",
                current_status=record.status
            )

        return {
            "registration_id": record.id,
            "certificate_type": f"{record.registration_type}_certificate",
            "registration_type": record.registration_type,
            "person_full_name": record.person_full_name,
            "person_date_of_event": record.person_date_of_event.isoformat(),
            "person_place_of_event": record.person_place_of_event,
            "person_gender": record.person_gender,
            "parent_guardian_name": record.parent_guardian_name,
            "issued_by": record.reviewed_by,
            "issued_at": record.reviewed_at.isoformat() if record.reviewed_at else None
        }
