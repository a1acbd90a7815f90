# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for MongoDB service layer.
"""

import pytest
from unittest.mock import MagicMock, patch
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from services.mongodb import DuplicateDocumentError, MongoDBService, PaginationResult, serialize_document


class TestMongoDBService:
    """Test MongoDB service functionality against a mocked collection."""

    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def mongodb_service(self, collection):
        service = MongoDBService("mongodb://localhost:27017/barangay_records_test", "barangay_records_test")
        with patch.object(service, 'get_collection', return_value=collection):
            yield service

    def test_create_adds_timestamps(self, mongodb_service, collection):
        doc_id = ObjectId()
        collection.insert_one.return_value = MagicMock(inserted_id=doc_id)
        user_id = str(ObjectId())

        result = mongodb_service.create("users", {"username": "juandc"}, user_id)

        assert result == str(doc_id)
        stored = collection.insert_one.call_args[0][0]
        assert stored["createdBy"] == user_id
        assert stored["updatedBy"] == user_id
        assert "createdAt" in stored and "updatedAt" in stored
        assert isinstance(stored["_id"], ObjectId)

    def test_create_keeps_given_id(self, mongodb_service, collection):
        doc_id = ObjectId()
        collection.insert_one.return_value = MagicMock(inserted_id=doc_id)

        mongodb_service.create("users", {"_id": doc_id, "username": "juandc"})

        assert collection.insert_one.call_args[0][0]["_id"] == doc_id

    def test_create_duplicate(self, mongodb_service, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(DuplicateDocumentError):
            mongodb_service.create("users", {"username": "juandc"})

    def test_find_by_id_serializes(self, mongodb_service, collection):
        doc_id = ObjectId()
        collection.find_one.return_value = {"_id": doc_id, "username": "juandc"}

        document = mongodb_service.find_by_id("users", str(doc_id))

        assert document == {"id": str(doc_id), "username": "juandc"}
        assert collection.find_one.call_args[0][0] == {"_id": doc_id}

    def test_find_by_malformed_id(self, mongodb_service, collection):
        assert mongodb_service.find_by_id("users", "not-an-id") is None
        collection.find_one.assert_not_called()

    def test_conditional_update(self, mongodb_service, collection):
        doc_id = ObjectId()
        collection.update_one.return_value = MagicMock(matched_count=1)

        result = mongodb_service.update_by_id(
            "document_requests", str(doc_id), {"status": "approved"}, "admin",
            conditions={"status": "pending"}, unset=["rejectionReason"]
        )

        assert result is True
        query, operation = collection.update_one.call_args[0]
        assert query == {"_id": doc_id, "status": "pending"}
        assert operation["$set"]["status"] == "approved"
        assert operation["$set"]["updatedBy"] == "admin"
        assert operation["$unset"] == {"rejectionReason": ""}

    def test_conditional_update_no_match(self, mongodb_service, collection):
        collection.update_one.return_value = MagicMock(matched_count=0)

        assert mongodb_service.update_by_id("document_requests", str(ObjectId()), {"status": "approved"}) is False

    def test_update_duplicate(self, mongodb_service, collection):
        collection.update_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(DuplicateDocumentError):
            mongodb_service.update_by_id("users", str(ObjectId()), {"email": "taken@example.com"})

    def test_delete_by_id(self, mongodb_service, collection):
        collection.delete_one.return_value = MagicMock(deleted_count=1)

        assert mongodb_service.delete_by_id("reports", str(ObjectId())) is True
        assert mongodb_service.delete_by_id("reports", "bad") is False

    def test_push_by_id(self, mongodb_service, collection):
        doc_id = ObjectId()
        collection.update_one.return_value = MagicMock(matched_count=1, upserted_id=None)

        mongodb_service.push_by_id("reports", str(doc_id), "comments", {"comment": "Noted"}, updates={"status": "resolved"})

        query, operation = collection.update_one.call_args[0]
        assert query == {"_id": doc_id}
        assert operation["$push"] == {"comments": {"comment": "Noted"}}
        assert operation["$set"]["status"] == "resolved"

    def test_paginate(self, mongodb_service, collection):
        collection.count_documents.return_value = 25
        cursor = collection.find.return_value.sort.return_value.skip.return_value.limit.return_value
        cursor.__iter__.return_value = iter([{"_id": ObjectId(), "title": "A"}])

        result = mongodb_service.paginate("announcements", page=2, page_size=10, filters={"status": "published"})

        assert result.total == 25
        assert result.items[0]["title"] == "A"
        collection.find.return_value.sort.return_value.skip.assert_called_once_with(10)
        assert result.to_dict() == {
            "total": 25, "page": 2, "limit": 10, "totalPages": 3, "hasNext": True, "hasPrev": True
        }

    def test_next_sequence(self, mongodb_service, collection):
        collection.find_one_and_update.return_value = {"_id": "document_requests:RES:2025", "seq": 7}

        assert mongodb_service.next_sequence("document_requests:RES:2025") == 7
        args, kwargs = collection.find_one_and_update.call_args
        assert args[1] == {"$inc": {"seq": 1}}
        assert kwargs["upsert"] is True

    def test_health_check_failure(self, mongodb_service):
        with patch.object(MongoDBService, 'client', new_callable=MagicMock) as client:
            client.admin.command.side_effect = Exception("connection refused")

            health = mongodb_service.health_check()

        assert health["status"] == "unhealthy"
        assert health["database"] == "barangay_records_test"


class TestPaginationResult:

    def test_single_page(self):
        result = PaginationResult([{"id": "1"}], 1, 1, 10)

        assert result.total_pages == 1
        assert not result.has_next
        assert not result.has_prev

    def test_empty(self):
        assert PaginationResult([], 0, 1, 10).to_dict()["totalPages"] == 0


def test_serialize_document():
    doc_id = ObjectId()

    assert serialize_document({"_id": doc_id, "a": 1}) == {"id": str(doc_id), "a": 1}
    assert serialize_document(None) is None
