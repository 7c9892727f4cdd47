# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

The record store, session cache and broker are replaced by in-memory
doubles so no live MongoDB, Redis or RabbitMQ is needed.
"""

import os
import pytest
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple
from bson import ObjectId
from bson.errors import InvalidId

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

from registry_api.app import create_app
from registry_api.exceptions import ConflictException
from registry_api.models.base import generate_object_id
from registry_api.models.entities import SessionContext
from registry_api.models.enums import AppRole
from registry_api.realtime.feed import ChangeFeed, ChangeNotifier
from registry_api.services.audit import AuditService
from registry_api.services.auth import AuthService, generate_key_pair
from registry_api.services.mongodb import to_external
from registry_api.services.registrations import RegistrationService

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryMongoDBService:
    """Dictionary-backed stand-in for MongoDBService with the same public API."""

    unique_fields = {"users": "email", "user_roles": "user_id"}

    def __init__(self):
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.healthy = True
        self.indexes_created = False

    def _collection(self, name: str) -> List[Dict[str, Any]]:
        return self.collections.setdefault(name, [])

    @staticmethod
    def _matches(document: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(document.get(key) == value for key, value in filters.items())

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        document = dict(document)
        document.setdefault("_id", ObjectId())
        unique = self.unique_fields.get(collection)
        if unique and any(d.get(unique) == document.get(unique) for d in self._collection(collection)):
            raise ConflictException(f"Duplicate {collection} document")
        self._collection(collection).append(document)
        return str(document["_id"])

    def find(self, collection: str, filters: Optional[Dict[str, Any]] = None,
             sort: Optional[List[Tuple[str, int]]] = None) -> Iterator[Dict[str, Any]]:
        matching = [
            (index, document)
            for index, document in enumerate(self._collection(collection))
            if self._matches(document, filters or {})
        ]
        matching.sort(key=lambda item: (item[1].get("created_at") or _EPOCH, item[0]), reverse=True)
        for _, document in matching:
            yield to_external(document)

    def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for document in self._collection(collection):
            if self._matches(document, filters):
                return to_external(document)
        return None

    def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            object_id = ObjectId(doc_id)
        except (InvalidId, TypeError):
            return None
        return self.find_one(collection, {"_id": object_id})

    def update_where(self, collection: str, doc_id: str, expected: Dict[str, Any],
                     updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            object_id = ObjectId(doc_id)
        except (InvalidId, TypeError):
            return None
        for document in self._collection(collection):
            if self._matches(document, {"_id": object_id, **expected}):
                document.update(updates)
                return to_external(document)
        return None

    def upsert(self, collection: str, filters: Dict[str, Any], updates: Dict[str, Any],
               on_insert: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        for document in self._collection(collection):
            if self._matches(document, filters):
                document.update(updates)
                return to_external(document)
        document = {**filters, **(on_insert or {}), **updates}
        document.setdefault("_id", ObjectId())
        self._collection(collection).append(document)
        return to_external(document)

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return sum(1 for d in self._collection(collection) if self._matches(d, filters or {}))

    def create_indexes(self) -> None:
        self.indexes_created = True

    def health_check(self) -> Dict[str, Any]:
        if self.healthy:
            return {"status": "healthy", "ping": True, "database": "civil_registry_test"}
        return {"status": "unhealthy", "error": "connection refused", "database": "civil_registry_test"}

    def close_connection(self) -> None:
        pass


class InMemoryRedisService:
    """Session blocklist and role cache kept in dictionaries."""

    def __init__(self):
        self.blocked: Dict[str, int] = {}
        self.roles: Dict[str, str] = {}

    def block_session(self, session_id: str, ttl_seconds: int) -> bool:
        self.blocked[session_id] = ttl_seconds
        return True

    def is_session_blocked(self, session_id: str) -> bool:
        return session_id in self.blocked

    def cache_user_role(self, user_id: str, role: str, ttl_seconds: int = 900) -> bool:
        self.roles[user_id] = role
        return True

    def get_cached_role(self, user_id: str) -> Optional[str]:
        return self.roles.get(user_id)

    def invalidate_user_role(self, user_id: str) -> bool:
        return self.roles.pop(user_id, None) is not None

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}


@pytest.fixture(scope="session")
def rsa_keys():
    """One RSA key pair shared by the whole run."""
    return generate_key_pair()


@pytest.fixture
def auth_service(rsa_keys):
    private_key, public_key = rsa_keys
    return AuthService(private_key, public_key, bcrypt_rounds=4)


@pytest.fixture
def store():
    return InMemoryMongoDBService()


@pytest.fixture
def redis_service():
    return InMemoryRedisService()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def registration_service(store, feed):
    return RegistrationService(store, ChangeNotifier(feed), AuditService(store))


def _session(role: AppRole = AppRole.CITIZEN, user_id: Optional[str] = None) -> SessionContext:
    return SessionContext(
        user_id=user_id or generate_object_id(),
        role=role,
        session_id=generate_object_id(),
        email=f"{role.value}@example.org"
    )


@pytest.fixture
def make_session():
    """Factory for sessions that bypass sign-in."""
    return _session


@pytest.fixture
def citizen_session():
    return _session(AppRole.CITIZEN)


@pytest.fixture
def other_citizen_session():
    return _session(AppRole.CITIZEN)


@pytest.fixture
def admin_session():
    return _session(AppRole.ADMIN)


@pytest.fixture
def birth_payload():
    """A complete birth registration submission."""
    return {
        "registration_type": "birth",
        "person_full_name": "Amina Diallo",
        "person_date_of_event": "2024-03-14",
        "person_place_of_event": "Springfield General Hospital",
        "person_gender": "female",
        "parent_guardian_name": "Fatou Diallo",
        "parent_guardian_id": "ID-442100",
        "hospital_facility": "Springfield General",
        "doctor_name": "Dr. Okafor",
        "additional_notes": ""
    }


@pytest.fixture
def death_payload():
    return {
        "registration_type": "death",
        "person_full_name": "Jonas Becker",
        "person_date_of_event": "2024-01-02",
        "person_place_of_event": "Riverside"
    }


@pytest.fixture
def app(store, redis_service, auth_service, feed):
    """Flask application wired to the in-memory doubles."""
    application = create_app(
        config_overrides={
            "ENVIRONMENT": "test",
            "OTEL_ENABLED": False,
            "BASE_URL": "http://testserver",
            "TESTING": True
        },
        services={
            "mongodb_service": store,
            "redis_service": redis_service,
            "amqp_service": None,
            "auth_service": auth_service,
            "feed": feed
        }
    )
    return application


@pytest.fixture
def client(app):
    return app.test_client()


def bearer(tokens: Dict[str, Any]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def citizen_tokens(app):
    """Tokens of a freshly signed-up citizen."""
    return app.session_service.sign_up("citizen@example.org", "correct-horse-battery", "Ada Citizen")


@pytest.fixture
def other_citizen_tokens(app):
    return app.session_service.sign_up("neighbour@example.org", "correct-horse-battery", "Ben Neighbour")


@pytest.fixture
def admin_tokens(app):
    """Tokens of an account promoted to admin before signing in."""
    tokens = app.session_service.sign_up("registrar@example.org", "registrar-password", "Rita Registrar")
    app.role_service.assign_role(tokens["user_id"], AppRole.ADMIN)
    return app.session_service.sign_in("registrar@example.org", "registrar-password")
