# SPDX-License-Identifier: Apache-2.0

"""
Citizen profile read and update.
"""

import logging
from typing import Any, Dict

from .mongodb import MongoDBService
from ..models.base import utc_now
from ..models.entities import Profile, SessionContext

logger = logging.getLogger(__name__)

COLLECTION = "profiles"
EDITABLE_FIELDS = ("full_name", "national_id", "phone")


class ProfileService:
    """Each user reads and edits only their own profile."""

    def __init__(self, mongodb_service: MongoDBService):
        self.mongodb_service = mongodb_service

    def get(self, session: SessionContext) -> Profile:
        document = self.mongodb_service.find_by_id(COLLECTION, session.user_id)
        if document is None:
            # Accounts created before profiles existed get an empty one
            return Profile(id=session.user_id)
        return Profile.from_document(document)

    def update(self, session: SessionContext, changes: Dict[str, Any]) -> Profile:
        """Apply the editable fields present in ``changes``."""
        current = self.get(session)
        data = current.model_dump()
        data.update({key: changes[key] for key in EDITABLE_FIELDS if key in changes})
        data["updated_at"] = utc_now()
        profile = Profile.model_validate(data)

        document = profile.to_document()
        object_id = document.pop("_id")
        created = {"created_at": document.pop("created_at"), "schema_version": document.pop("schema_version")}
        self.mongodb_service.upsert(COLLECTION, {"_id": object_id}, document, on_insert=created)

        logger.info("Profile updated", extra={"user_id": session.user_id})
        return profile
