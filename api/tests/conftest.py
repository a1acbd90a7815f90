# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime
from typing import Dict, Any
from unittest.mock import MagicMock, patch
from bson import ObjectId

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'
os.environ['MONGODB_DATABASE'] = 'barangay_records_test'
os.environ.setdefault('REDIS_URL', 'redis://localhost:6379/1')

from models.enums import Role

RESIDENT_ID = str(ObjectId())
OTHER_RESIDENT_ID = str(ObjectId())
ADMIN_ID = str(ObjectId())
SUPER_ADMIN_ID = str(ObjectId())

WEBHOOK_SECRET = 'whsk_test_secret'
VERIFICATION_SECRET = 'test-verification-secret'

TOKEN_PAYLOADS = {
    'resident-token': {
        "sub": RESIDENT_ID,
        "role": Role.RESIDENT.value,
        "email": "juan@example.com",
        "name": "Juan Dela Cruz",
        "jti": "jti-resident"
    },
    'other-resident-token': {
        "sub": OTHER_RESIDENT_ID,
        "role": Role.RESIDENT.value,
        "email": "maria@example.com",
        "name": "Maria Santos",
        "jti": "jti-other"
    },
    'admin-token': {
        "sub": ADMIN_ID,
        "role": Role.ADMIN.value,
        "email": "admin@example.com",
        "name": "Barangay Admin",
        "jti": "jti-admin"
    },
    'super-admin-token': {
        "sub": SUPER_ADMIN_ID,
        "role": Role.SUPER_ADMIN.value,
        "email": "captain@example.com",
        "name": "Barangay Captain",
        "jti": "jti-super"
    },
}


def auth_headers(token: str = 'resident-token') -> Dict[str, str]:
    """Authorization header for one of the test tokens."""
    return {'Authorization': f'Bearer {token}'}


def _validate_token(token: str) -> Dict[str, Any]:
    from services.auth import TokenValidationError

    if token not in TOKEN_PAYLOADS:
        raise TokenValidationError("Invalid token")
    return TOKEN_PAYLOADS[token]


@pytest.fixture
def flask_app():
    """The application configured for testing."""
    from app import app

    app.config['TESTING'] = True
    app.config['VERIFICATION_SECRET'] = VERIFICATION_SECRET
    app.config['PAYMONGO_WEBHOOK_SECRET'] = WEBHOOK_SECRET
    return app


@pytest.fixture
def client(flask_app):
    """Create test client."""
    with flask_app.test_client() as client:
        yield client


@pytest.fixture
def mock_services(flask_app):
    """Replace the services attached to the app with mocks."""
    auth_middleware = flask_app.auth_middleware

    mock_auth = MagicMock()
    mock_auth.validate_token.side_effect = _validate_token
    mock_redis = MagicMock()
    mock_redis.is_available.return_value = False

    with patch.object(flask_app, 'mongodb_service') as mock_mongo, \
         patch.object(flask_app, 'audit_middleware') as mock_audit, \
         patch.object(flask_app, 'storage_service') as mock_storage, \
         patch.object(flask_app, 'payment_client') as mock_payments, \
         patch.object(flask_app, 'email_service') as mock_email, \
         patch.object(flask_app, 'verification_code_service') as mock_codes, \
         patch.object(flask_app, 'audit_service') as mock_audit_service, \
         patch.object(flask_app, 'redis_service', mock_redis), \
         patch.object(flask_app, 'auth_service', mock_auth), \
         patch.object(auth_middleware, 'auth_service', mock_auth), \
         patch.object(auth_middleware, 'redis_service', mock_redis):

        mock_mongo.create.side_effect = lambda collection, document, user_id=None: str(document["_id"])
        mock_mongo.update_by_id.return_value = True
        mock_mongo.delete_by_id.return_value = True
        mock_mongo.find_one.return_value = None
        mock_mongo.find_by_id.return_value = None
        mock_mongo.find.return_value = []
        mock_mongo.aggregate.return_value = []

        yield {
            'mongo': mock_mongo,
            'audit': mock_audit,
            'audit_service': mock_audit_service,
            'storage': mock_storage,
            'payments': mock_payments,
            'email': mock_email,
            'codes': mock_codes,
            'redis': mock_redis,
            'auth': mock_auth
        }


def valid_id_attachment() -> Dict[str, Any]:
    return {
        "url": "/uploads/validID-1700000000000-1.jpg",
        "filename": "validID-1700000000000-1.jpg",
        "originalName": "id.jpg",
        "mimeType": "image/jpeg",
        "fileSize": 204800,
        "uploadedAt": datetime(2025, 1, 10, 8, 0, 0)
    }


def photo_attachment() -> Dict[str, Any]:
    return {
        "url": "/uploads/photo1x1-1700000000000-2.png",
        "filename": "photo1x1-1700000000000-2.png",
        "originalName": "photo.png",
        "mimeType": "image/png",
        "fileSize": 102400,
        "uploadedAt": datetime(2025, 1, 10, 8, 0, 0)
    }


def make_document_request(**overrides) -> Dict[str, Any]:
    """A stored document request as returned by the MongoDB service."""
    document = {
        "id": str(ObjectId()),
        "applicant": RESIDENT_ID,
        "lastName": "Dela Cruz",
        "firstName": "Juan",
        "middleName": "Santos",
        "documentType": "residency",
        "purposeOfRequest": "School requirement",
        "address": {
            "houseNumber": "12",
            "street": "Mapayapa St.",
            "barangay": "Culiat",
            "city": "Quezon City",
            "province": "Metro Manila"
        },
        "validID": valid_id_attachment(),
        "supportingDocuments": [],
        "status": "pending",
        "fees": 50,
        "paymentStatus": "unpaid",
        "createdAt": datetime(2025, 1, 10, 8, 0, 0),
        "updatedAt": datetime(2025, 1, 10, 8, 0, 0)
    }
    document.update(overrides)
    return document


def make_user(**overrides) -> Dict[str, Any]:
    """A stored user as returned by the MongoDB service."""
    user = {
        "id": RESIDENT_ID,
        "username": "juandc",
        "email": "juan@example.com",
        "passwordHash": "$2b$12$abcdefghijklmnopqrstuv",
        "role": Role.RESIDENT.value,
        "firstName": "Juan",
        "lastName": "Dela Cruz",
        "middleName": "Santos",
        "gender": "male",
        "civilStatus": "single",
        "phoneNumber": "09171234567",
        "address": {"houseNumber": "12", "street": "Mapayapa St."},
        "validID": valid_id_attachment(),
        "registrationStatus": "approved",
        "isActive": True,
        "createdAt": datetime(2024, 12, 1, 8, 0, 0),
        "updatedAt": datetime(2024, 12, 1, 8, 0, 0)
    }
    user.update(overrides)
    return user


@pytest.fixture
def sample_document_request():
    return make_document_request()


@pytest.fixture
def sample_user():
    return make_user()
