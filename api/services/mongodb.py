# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with connection pooling.
"""

import os
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any
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

logger = logging.getLogger(__name__)


class DuplicateDocumentError(Exception):
    """Raised when an insert or update violates a unique index."""


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.page_size,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev
        }


def serialize_document(document: Optional[Dict]) -> Optional[Dict]:
    """Replace ``_id`` with a string ``id``."""
    if document is None:
        return None
    if "_id" in document:
        document["id"] = str(document["_id"])
        del document["_id"]
    return document


class MongoDBService:
    """MongoDB service with CRUD helpers and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/barangay_records_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'barangay_records_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

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
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

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

    def is_valid_id(self, doc_id: Any) -> bool:
        return isinstance(doc_id, str) and ObjectId.is_valid(doc_id)

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    def _add_timestamps(self, document: Dict, user_id: Optional[str] = None, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.utcnow()

        if not is_update:
            document.setdefault("createdAt", now)
            if user_id:
                document.setdefault("createdBy", user_id)

        document["updatedAt"] = now
        if user_id:
            document["updatedBy"] = user_id

        return document

    # CRUD Operations

    def create(self, collection: str, document: Dict, user_id: Optional[str] = None) -> str:
        """
        Insert a document and return its ID.

        Raises:
            DuplicateDocumentError: a unique index rejected the document
        """
        try:
            document = self._add_timestamps(document, user_id)

            if "_id" not in document:
                document["_id"] = ObjectId()

            result = self.get_collection(collection).insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error in {collection}: {e}")
            raise DuplicateDocumentError("Document with this identifier already exists") from e
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def find(self, collection: str, filters: Dict = None, sort_by: str = "createdAt",
             sort_order: int = DESCENDING, limit: int = 0,
             projection: Dict = None) -> List[Dict]:
        """Find documents with optional filters, newest first by default."""
        try:
            cursor = self.get_collection(collection).find(filters or {}, projection)
            if sort_by:
                cursor = cursor.sort(sort_by, sort_order)
            if limit:
                cursor = cursor.limit(limit)

            documents = [serialize_document(doc) for doc in cursor]
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def find_one(self, collection: str, filters: Dict, projection: Dict = None) -> Optional[Dict]:
        """Find a single document matching the filters."""
        try:
            document = self.get_collection(collection).find_one(filters, projection)
            return serialize_document(document)
        except Exception as e:
            logger.error(f"Failed to find document in {collection}: {e}")
            raise

    def find_by_id(self, collection: str, doc_id: str, projection: Dict = None) -> Optional[Dict]:
        """Find a single document by ID; a malformed ID finds nothing."""
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        try:
            document = self.get_collection(collection).find_one({"_id": object_id}, projection)

            if document:
                logger.debug(f"Found document {doc_id} in {collection}")
            else:
                logger.debug(f"Document {doc_id} not found in {collection}")

            return serialize_document(document)

        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def update_by_id(self, collection: str, doc_id: str, updates: Dict,
                     user_id: Optional[str] = None, conditions: Dict = None,
                     unset: List[str] = None) -> bool:
        """
        Set fields on a document by ID.

        Args:
            conditions: extra filter terms; the update only applies when they match
            unset: field names to remove

        Returns:
            True when a document matched
        """
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return False

        try:
            query = {"_id": object_id}
            if conditions:
                query.update(conditions)

            updates = self._add_timestamps(dict(updates), user_id, is_update=True)
            operation = {"$set": updates}
            if unset:
                operation["$unset"] = {name: "" for name in unset}

            result = self.get_collection(collection).update_one(query, operation)

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True

            logger.warning(f"No document updated for {doc_id} in {collection}")
            return False

        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error updating {doc_id} in {collection}: {e}")
            raise DuplicateDocumentError("Document with this identifier already exists") from e
        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def update_one(self, collection: str, filters: Dict, operation: Dict, upsert: bool = False) -> bool:
        """Apply a raw update operation to the first matching document."""
        try:
            result = self.get_collection(collection).update_one(filters, operation, upsert=upsert)
            return result.matched_count > 0 or result.upserted_id is not None
        except Exception as e:
            logger.error(f"Failed to update document in {collection}: {e}")
            raise

    def push_by_id(self, collection: str, doc_id: str, field: str, value: Any,
                   updates: Dict = None) -> bool:
        """Append a value to an array field, optionally setting other fields."""
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError:
            return False

        operation = {"$push": {field: value}, "$set": self._add_timestamps(dict(updates or {}), is_update=True)}
        return self.update_one(collection, {"_id": object_id}, operation)

    def increment_by_id(self, collection: str, doc_id: str, field: str, amount: int = 1) -> bool:
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError:
            return False
        return self.update_one(collection, {"_id": object_id}, {"$inc": {field: amount}})

    def delete_by_id(self, collection: str, doc_id: str) -> bool:
        """Delete a document by ID."""
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return False

        try:
            result = self.get_collection(collection).delete_one({"_id": object_id})

            if result.deleted_count > 0:
                logger.warning(f"Deleted document {doc_id} in {collection}")
                return True

            logger.warning(f"No document deleted for {doc_id} in {collection}")
            return False

        except Exception as e:
            logger.error(f"Failed to delete document {doc_id} in {collection}: {e}")
            raise

    def paginate(self, collection: str, page: int = 1, page_size: int = 10,
                 filters: Dict = None, sort_by: str = "createdAt", sort_order: int = DESCENDING,
                 projection: Dict = None) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        try:
            query = filters or {}
            collection_obj = self.get_collection(collection)

            skip = (page - 1) * page_size
            total = collection_obj.count_documents(query)

            cursor = collection_obj.find(query, projection).sort(sort_by, sort_order).skip(skip).limit(page_size)
            documents = [serialize_document(doc) for doc in cursor]

            logger.debug(f"Paginated {len(documents)} documents from {collection} (page {page})")
            return PaginationResult(documents, total, page, page_size)

        except Exception as e:
            logger.error(f"Failed to paginate documents in {collection}: {e}")
            raise

    def count(self, collection: str, filters: Dict = None) -> int:
        """Count documents with optional filters."""
        try:
            count = self.get_collection(collection).count_documents(filters or {})
            logger.debug(f"Counted {count} documents in {collection}")
            return count
        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    def aggregate(self, collection: str, pipeline: List[Dict]) -> List[Dict]:
        """Run an aggregation pipeline."""
        try:
            results = list(self.get_collection(collection).aggregate(pipeline))
            logger.debug(f"Aggregation returned {len(results)} results from {collection}")
            return results
        except Exception as e:
            logger.error(f"Failed to run aggregation in {collection}: {e}")
            raise

    def next_sequence(self, name: str) -> int:
        """Atomically increment and return a named counter, starting at 1."""
        try:
            counter = self.get_collection("counters").find_one_and_update(
                {"_id": name},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
            return counter["seq"]
        except Exception as e:
            logger.error(f"Failed to increment counter {name}: {e}")
            raise

    # Index Management

    def create_indexes(self) -> None:
        """Create unique and performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            users = self.get_collection("users")
            users.create_index("username", unique=True)
            users.create_index("email", unique=True)
            users.create_index([("role", ASCENDING), ("registrationStatus", ASCENDING)])

            requests = self.get_collection("document_requests")
            requests.create_index([("applicant", ASCENDING), ("createdAt", DESCENDING)])
            requests.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            requests.create_index([("documentType", ASCENDING), ("status", ASCENDING)])
            requests.create_index("controlNumber", unique=True, sparse=True)
            requests.create_index("verificationToken", unique=True, sparse=True)
            requests.create_index("paymentReference", sparse=True)

            # At most one pending change request per user and type
            profile_updates = self.get_collection("profile_updates")
            profile_updates.create_index(
                [("user", ASCENDING), ("updateType", ASCENDING)],
                unique=True,
                partialFilterExpression={"status": "pending"},
                name="unique_pending_update"
            )
            profile_updates.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])

            # One pending birth certificate submission per user
            verifications = self.get_collection("profile_verifications")
            verifications.create_index(
                [("user", ASCENDING)],
                unique=True,
                partialFilterExpression={"status": "pending"},
                name="unique_pending_verification"
            )
            verifications.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])

            sectoral = self.get_collection("sectoral_groups")
            sectoral.create_index([("userId", ASCENDING), ("sectorType", ASCENDING)], unique=True)

            logs = self.get_collection("logs")
            logs.create_index([("timestamp", DESCENDING)])
            logs.create_index([("performedBy", ASCENDING), ("timestamp", DESCENDING)])
            logs.create_index([("entity", ASCENDING), ("timestamp", DESCENDING)])
            logs.create_index("traceId")

            self.get_collection("announcements").create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            self.get_collection("reports").create_index([("reportedBy", ASCENDING), ("createdAt", DESCENDING)])
            self.get_collection("contact_messages").create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            self.get_collection("terms_acceptances").create_index([("userId", ASCENDING), ("acceptedAt", DESCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise
