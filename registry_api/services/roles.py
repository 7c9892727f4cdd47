# SPDX-License-Identifier: Apache-2.0

"""
Role lookup and assignment backed by the ``user_roles`` collection, with the
current role cached in Redis.
"""

import logging
from typing import Optional

from opentelemetry import trace

from .mongodb import MongoDBService
from .redis import RedisService
from ..models.base import utc_now
from ..models.entities import UserRole
from ..models.enums import AppRole

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RoleService:
    """Resolves and assigns the single role of each user."""

    collection_name = "user_roles"

    def __init__(self, mongodb_service: MongoDBService, redis_service: Optional[RedisService] = None,
                 cache_ttl: int = 900):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.cache_ttl = cache_ttl

    def get_role(self, user_id: str) -> Optional[AppRole]:
        """
        Current role of a user.

        Args:
            user_id: User to look up

        Returns:
            The assigned role, None when the user has no assignment
        """
        with tracer.start_as_current_span("roles.get_role") as span:
            span.set_attribute("user.id", user_id)

            if self.redis_service is not None:
                cached = self.redis_service.get_cached_role(user_id)
                if cached in {role.value for role in AppRole}:
                    span.set_attribute("roles.cache", "hit")
                    return AppRole(cached)

            span.set_attribute("roles.cache", "miss")
            document = self.mongodb_service.find_one(self.collection_name, {"user_id": user_id})
            if document is None:
                return None

            role = AppRole(UserRole.from_document(document).role)
            if self.redis_service is not None:
                self.redis_service.cache_user_role(user_id, role.value, self.cache_ttl)
            return role

    def has_role(self, user_id: str, role: AppRole) -> bool:
        return self.get_role(user_id) == AppRole(role)

    def assign_role(self, user_id: str, role: AppRole) -> UserRole:
        """Set the role of a user, replacing any previous assignment."""
        role = AppRole(role)
        with tracer.start_as_current_span("roles.assign_role") as span:
            span.set_attributes({"user.id": user_id, "roles.role": role.value})

            assignment = UserRole(user_id=user_id, role=role)
            document = self.mongodb_service.upsert(
                self.collection_name,
                {"user_id": user_id},
                {"role": role.value, "updated_at": utc_now()},
                on_insert={
                    "created_at": assignment.created_at,
                    "schema_version": assignment.schema_version
                }
            )

            if self.redis_service is not None:
                self.redis_service.invalidate_user_role(user_id)

            logger.info("Role assigned", extra={"user_id": user_id, "role": role.value})
            return UserRole.from_document(document)
