# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for MongoDB service layer.
"""

import pytest
from unittest.mock import MagicMock, patch
from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import AutoReconnect, DuplicateKeyError

from registry_api.exceptions import ConflictException, ServiceUnavailableException
from registry_api.services.mongodb import MongoDBService, to_external


class TestMongoDBService:
    """Test MongoDB service functionality against a mocked collection."""

    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def mongodb_service(self, collection):
        """Service whose collections are all the mocked collection."""
        service = MongoDBService("mongodb://localhost:27017/test", "civil_registry_test", max_retries=2, retry_delay=0.1)
        with patch.object(service, "get_collection", return_value=collection):
            yield service

    @pytest.fixture
    def sleep(self):
        with patch("registry_api.services.mongodb.time.sleep") as sleep:
            yield sleep

    def test_to_external(self):
        object_id = ObjectId()

        assert to_external({"_id": object_id, "status": "pending"}) == {"id": str(object_id), "status": "pending"}
        assert to_external(None) is None

    def test_insert_assigns_id(self, mongodb_service, collection):
        collection.insert_one.side_effect = lambda document: MagicMock(inserted_id=document["_id"])

        doc_id = mongodb_service.insert("registrations", {"status": "pending"})

        assert ObjectId.is_valid(doc_id)
        inserted = collection.insert_one.call_args[0][0]
        assert str(inserted["_id"]) == doc_id

    def test_insert_duplicate_is_conflict(self, mongodb_service, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(ConflictException):
            mongodb_service.insert("users", {"email": "ada@example.org"})

    def test_find_is_lazy_and_sorted_newest_first(self, mongodb_service, collection):
        object_id = ObjectId()
        cursor = collection.find.return_value.sort.return_value
        cursor.__iter__.return_value = iter([{"_id": object_id, "user_id": "u1"}])

        results = mongodb_service.find("registrations", {"user_id": "u1"})
        collection.find.assert_not_called()

        assert list(results) == [{"id": str(object_id), "user_id": "u1"}]
        collection.find.assert_called_once_with({"user_id": "u1"})
        collection.find.return_value.sort.assert_called_once_with([("created_at", DESCENDING)])
        cursor.close.assert_called_once()

    def test_find_by_id_with_malformed_id(self, mongodb_service, collection):
        assert mongodb_service.find_by_id("registrations", "not-an-id") is None
        collection.find_one.assert_not_called()

    def test_update_where_guards_on_expected_fields(self, mongodb_service, collection):
        object_id = ObjectId()
        collection.find_one_and_update.return_value = {"_id": object_id, "status": "approved"}

        updated = mongodb_service.update_where(
            "registrations", str(object_id), {"status": "pending"}, {"status": "approved"}
        )

        assert updated == {"id": str(object_id), "status": "approved"}
        collection.find_one_and_update.assert_called_once_with(
            {"_id": object_id, "status": "pending"},
            {"$set": {"status": "approved"}},
            return_document=ReturnDocument.AFTER
        )

    def test_update_where_miss_returns_none(self, mongodb_service, collection):
        collection.find_one_and_update.return_value = None

        assert mongodb_service.update_where(
            "registrations", str(ObjectId()), {"status": "pending"}, {"status": "approved"}
        ) is None

    def test_upsert_sets_insert_only_fields(self, mongodb_service, collection):
        collection.find_one_and_update.return_value = {"_id": ObjectId(), "user_id": "u1", "role": "admin"}

        mongodb_service.upsert("user_roles", {"user_id": "u1"}, {"role": "admin"}, on_insert={"schema_version": 1})

        args, kwargs = collection.find_one_and_update.call_args
        assert args[1] == {"$set": {"role": "admin"}, "$setOnInsert": {"schema_version": 1}}
        assert kwargs["upsert"] is True

    def test_transient_failure_is_retried(self, mongodb_service, collection, sleep):
        collection.count_documents.side_effect = [AutoReconnect("primary stepped down"), 3]

        assert mongodb_service.count("registrations") == 3
        sleep.assert_called_once_with(0.1)

    def test_retries_exhausted(self, mongodb_service, collection, sleep):
        collection.find_one.side_effect = AutoReconnect("connection refused")

        with pytest.raises(ServiceUnavailableException):
            mongodb_service.find_one("registrations", {})

        assert collection.find_one.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.1, 0.2]

    def test_health_check_reports_failure(self):
        service = MongoDBService("mongodb://localhost:27017/test", "civil_registry_test")
        with patch("registry_api.services.mongodb.MongoClient") as client_class:
            client_class.return_value.admin.command.side_effect = AutoReconnect("connection refused")
            health = service.health_check()

        assert health["status"] == "unhealthy"
        assert health["database"] == "civil_registry_test"

    def test_create_indexes(self, mongodb_service, collection):
        mongodb_service.create_indexes()

        collection.create_index.assert_any_call("email", unique=True)
        collection.create_index.assert_any_call("user_id", unique=True)
        collection.create_index.assert_any_call("session_id", unique=True)
        collection.create_index.assert_any_call("expires_at", expireAfterSeconds=0)

    def test_insert_retry_finding_its_own_document_succeeds(self, mongodb_service, collection, sleep):
        collection.insert_one.side_effect = [
            AutoReconnect("connection reset"),
            DuplicateKeyError("E11000 duplicate key error", 11000, {"keyPattern": {"_id": 1}})
        ]

        doc_id = mongodb_service.insert("registrations", {"status": "pending"})

        inserted = collection.insert_one.call_args[0][0]
        assert doc_id == str(inserted["_id"])
        collection.find_one.assert_called_once_with({"_id": inserted["_id"]}, {"_id": 1})

    def test_insert_retry_with_foreign_duplicate_is_conflict(self, mongodb_service, collection, sleep):
        collection.insert_one.side_effect = [
            AutoReconnect("connection reset"),
            DuplicateKeyError("E11000 duplicate key error", 11000, {"keyPattern": {"email": 1}})
        ]
        collection.find_one.return_value = None

        with pytest.raises(ConflictException):
            mongodb_service.insert("users", {"email": "ada@example.org"})

    def test_find_retries_first_batch(self, mongodb_service, collection, sleep):
        object_id = ObjectId()
        cursor = collection.find.return_value.sort.return_value
        cursor.__iter__.side_effect = [
            AutoReconnect("primary stepped down"),
            iter([{"_id": object_id, "status": "pending"}])
        ]

        assert list(mongodb_service.find("registrations")) == [{"id": str(object_id), "status": "pending"}]
        sleep.assert_called_once_with(0.1)

    def test_find_unavailable_after_retries(self, mongodb_service, collection, sleep):
        cursor = collection.find.return_value.sort.return_value
        cursor.__iter__.side_effect = AutoReconnect("gone")

        with pytest.raises(ServiceUnavailableException):
            list(mongodb_service.find("registrations"))

        assert cursor.__iter__.call_count == 3

    def test_find_connection_lost_mid_iteration(self, mongodb_service, collection):
        def documents():
            yield {"_id": ObjectId(), "status": "pending"}
            raise AutoReconnect("gone")

        cursor = collection.find.return_value.sort.return_value
        cursor.__iter__.return_value = documents()
        results = mongodb_service.find("registrations")

        assert next(results)["status"] == "pending"
        with pytest.raises(ServiceUnavailableException):
            next(results)
        cursor.close.assert_called_once()
