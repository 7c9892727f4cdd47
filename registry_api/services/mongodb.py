# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with connection pooling, bounded retries and
conditional (status-guarded) updates.
"""

import os
import time
import logging
from typing import Callable, Dict, Iterator, List, Optional, Any, Tuple, TypeVar
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId
from opentelemetry import trace

from ..exceptions import ConflictException, ServiceUnavailableException

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar('T')

DEFAULT_SORT: List[Tuple[str, int]] = [("created_at", DESCENDING)]

# AutoReconnect and ServerSelectionTimeoutError both derive from ConnectionFailure
TRANSIENT_ERRORS = (ConnectionFailure,)

_EXHAUSTED = object()


def to_external(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace the ObjectId ``_id`` with a string ``id``."""
    if document is None:
        return None
    document = dict(document)
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return document


class MongoDBService:
    """MongoDB service with connection pooling and retrying operations."""

    def __init__(
        self,
        connection_string: str = None,
        database_name: str = None,
        max_retries: int = None,
        retry_delay: float = None
    ):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/civil_registry_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'civil_registry_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))
        self.socket_timeout_ms = int(os.getenv('MONGODB_SOCKET_TIMEOUT_MS', '10000'))

        # Retry settings
        self.max_retries = max_retries if max_retries is not None else int(os.getenv('STORE_MAX_RETRIES', '3'))
        self.retry_delay = retry_delay if retry_delay is not None else float(os.getenv('STORE_RETRY_DELAY', '0.2'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    socketTimeoutMS=self.socket_timeout_ms,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise ServiceUnavailableException("Record store is unavailable") from e

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: str) -> Optional[ObjectId]:
        """Convert string ID to ObjectId, None when malformed."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            return None

    def _with_retry(self, operation: str, collection: str, func: Callable[[], T]) -> T:
        """
        Run a store operation with bounded exponential backoff.

        Args:
            operation: Operation name for logs and spans
            collection: Collection being accessed
            func: Zero-argument callable performing the operation

        Returns:
            Whatever ``func`` returns

        Raises:
            ServiceUnavailableException: transient failures outlasted the retries
        """
        with tracer.start_as_current_span(f"db.{operation}") as span:
            span.set_attributes({
                "db.system": "mongodb",
                "db.collection": collection,
                "db.operation": operation
            })

            attempts = self.max_retries + 1
            for attempt in range(attempts):
                try:
                    return func()
                except TRANSIENT_ERRORS as e:
                    span.set_attribute("db.retry_count", attempt + 1)
                    if attempt == attempts - 1:
                        logger.error(
                            "Store operation failed after retries",
                            extra={
                                "collection": collection,
                                "operation": operation,
                                "attempts": attempts,
                                "error": str(e)
                            }
                        )
                        raise ServiceUnavailableException("Record store is unavailable") from e

                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        "Transient store failure, retrying",
                        extra={
                            "collection": collection,
                            "operation": operation,
                            "attempt": attempt + 1,
                            "delay": delay
                        }
                    )
                    time.sleep(delay)

    # Document operations

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        """
        Insert a document and return its string ID.

        The ``_id`` is assigned before the first attempt, so a retry that
        finds its own document already stored counts as success.

        Raises:
            ConflictException: another document holds the same unique key
            ServiceUnavailableException: transient failures outlasted the retries
        """
        if "_id" not in document:
            document = {**document, "_id": ObjectId()}
        document_id = document["_id"]
        attempts = 0

        def _insert():
            nonlocal attempts
            attempts += 1
            target = self.get_collection(collection)
            try:
                return target.insert_one(document).inserted_id
            except DuplicateKeyError:
                if attempts > 1 and target.find_one({"_id": document_id}, {"_id": 1}) is not None:
                    logger.warning(
                        "Insert committed before the connection dropped",
                        extra={"collection": collection, "document_id": str(document_id)}
                    )
                    return document_id
                raise

        try:
            inserted_id = self._with_retry("insert", collection, _insert)
        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ConflictException("Document with this identifier already exists") from e

        logger.info(f"Created document in {collection}: {inserted_id}")
        return str(inserted_id)

    def find(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None
    ) -> Iterator[Dict[str, Any]]:
        """
        Lazily iterate documents matching ``filters``.

        The cursor is opened and its first batch fetched on first ``next()``,
        under the retry policy. A connection lost after results have been
        yielded is not retried.

        Raises:
            ServiceUnavailableException: the store could not be read
        """
        query = dict(filters or {})
        sort = sort or DEFAULT_SORT

        def _open():
            cursor = self.get_collection(collection).find(query).sort(sort)
            try:
                documents = iter(cursor)
                return cursor, documents, next(documents, _EXHAUSTED)
            except TRANSIENT_ERRORS:
                cursor.close()
                raise

        cursor, documents, first = self._with_retry("find", collection, _open)
        try:
            if first is _EXHAUSTED:
                return
            yield to_external(first)
            for document in documents:
                yield to_external(document)
        except TRANSIENT_ERRORS as e:
            logger.error(
                "Store connection lost while reading results",
                extra={"collection": collection, "error": str(e)}
            )
            raise ServiceUnavailableException("Record store is unavailable") from e
        finally:
            cursor.close()

    def find_one(self, collection: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Find a single document."""
        document = self._with_retry(
            "find_one",
            collection,
            lambda: self.get_collection(collection).find_one(filters)
        )
        return to_external(document)

    def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Find a document by its string ID; malformed IDs match nothing."""
        object_id = self._validate_object_id(doc_id)
        if object_id is None:
            logger.debug(f"Invalid document ID {doc_id} for {collection}")
            return None
        return self.find_one(collection, {"_id": object_id})

    def update_where(
        self,
        collection: str,
        doc_id: str,
        expected: Dict[str, Any],
        updates: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Apply ``updates`` only if the document still matches ``expected``.

        Args:
            collection: Collection name
            doc_id: Document ID
            expected: Field values the stored document must still hold
            updates: Fields to set

        Returns:
            The updated document, or None when the guard matched nothing
        """
        object_id = self._validate_object_id(doc_id)
        if object_id is None:
            return None

        query = {"_id": object_id, **expected}
        document = self._with_retry(
            "update_where",
            collection,
            lambda: self.get_collection(collection).find_one_and_update(
                query,
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )
        )

        if document is None:
            logger.warning(
                "Guarded update matched no document",
                extra={"collection": collection, "document_id": doc_id, "expected": expected}
            )
        else:
            logger.info(f"Updated document {doc_id} in {collection}")
        return to_external(document)

    def upsert(self, collection: str, filters: Dict[str, Any], updates: Dict[str, Any],
               on_insert: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Set fields on the matching document, creating it when missing."""
        operation = {"$set": updates}
        if on_insert:
            operation["$setOnInsert"] = on_insert

        document = self._with_retry(
            "upsert",
            collection,
            lambda: self.get_collection(collection).find_one_and_update(
                filters,
                operation,
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        )
        return to_external(document)

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count documents with optional filters."""
        count = self._with_retry(
            "count",
            collection,
            lambda: self.get_collection(collection).count_documents(filters or {})
        )
        logger.debug(f"Counted {count} documents in {collection}")
        return count

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            registrations = self.get_collection("registrations")
            registrations.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
            registrations.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
            registrations.create_index("created_at")

            users = self.get_collection("users")
            users.create_index("email", unique=True)

            user_roles = self.get_collection("user_roles")
            user_roles.create_index("user_id", unique=True)

            documents = self.get_collection("documents")
            documents.create_index([("registration_id", ASCENDING), ("created_at", DESCENDING)])

            revoked_sessions = self.get_collection("revoked_sessions")
            revoked_sessions.create_index("session_id", unique=True)
            revoked_sessions.create_index("expires_at", expireAfterSeconds=0)

            audit_logs = self.get_collection("audit_logs")
            audit_logs.create_index([("timestamp", DESCENDING)])
            audit_logs.create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index([("entity", ASCENDING), ("entity_id", ASCENDING)])
            audit_logs.create_index("trace_id")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
