# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for action logging with OpenTelemetry correlation.
"""

import logging
from typing import Dict, List, Optional, Any
from opentelemetry import trace

from .mongodb import MongoDBService
from ..models.entities import AuditLog, SessionContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AuditService:
    """
    Writes audit trail entries to MongoDB.

    A failed audit write is logged and swallowed: the audited action has
    already been committed and must not be reported as failed.
    """

    def __init__(self, mongo_service: MongoDBService):
        """Initialize audit service with MongoDB dependency."""
        self.mongo_service = mongo_service
        self.collection_name = "audit_logs"

    def log_action(
        self,
        user_id: str,
        entity: str,
        entity_id: str,
        action: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        session: Optional[SessionContext] = None
    ) -> Optional[str]:
        """
        Log an audit trail entry with trace correlation and structured logging.

        Args:
            user_id: ID of user performing the action
            entity: Type of entity being acted upon
            entity_id: ID of the specific entity
            action: Action being performed
            before: State before the action (optional)
            after: State after the action (optional)
            session: Session with request details (optional)

        Returns:
            ID of the created audit log entry, None if it could not be written
        """
        with tracer.start_as_current_span("audit.log_action") as span:
            try:
                span_context = span.get_span_context()

                entry = AuditLog(
                    user_id=user_id,
                    entity=entity,
                    entity_id=entity_id,
                    action=action,
                    before=before,
                    after=after
                )

                if span_context.is_valid:
                    entry.trace_id = format(span_context.trace_id, "032x")
                    entry.span_id = format(span_context.span_id, "016x")

                if session:
                    entry.ip_address = session.ip_address
                    entry.user_agent = session.user_agent
                    entry.session_id = session.session_id

                span.set_attributes({
                    "audit.entity": entity,
                    "audit.action": action,
                    "audit.user_id": user_id,
                    "audit.entity_id": entity_id
                })

                document = entry.model_dump()
                document.pop("id")
                audit_id = self.mongo_service.insert(self.collection_name, document)

                changes_count = 0
                if before and after:
                    changes_count = len(self._calculate_changes(before, after))

                logger.info(
                    "Audit trail entry created",
                    extra={
                        "audit_id": audit_id,
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "user_id": user_id,
                        "trace_id": entry.trace_id,
                        "changes_count": changes_count,
                        "audit_category": "business_action"
                    }
                )
                return audit_id

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "entity": entity,
                        "entity_id": entity_id,
                        "action": action,
                        "user_id": user_id,
                        "error": str(e)
                    },
                    exc_info=True
                )
                return None

    def _calculate_changes(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Field-level differences, ignoring timestamps and IDs."""
        changes = []
        for key in set(before) | set(after):
            if key in ("updated_at", "_id", "id"):
                continue
            if before.get(key) != after.get(key):
                changes.append({
                    "field": key,
                    "old_value": before.get(key),
                    "new_value": after.get(key)
                })
        return changes
