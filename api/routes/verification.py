# SPDX-License-Identifier: Apache-2.0

"""
Public document verification endpoints.

Anyone holding a verification token (typically scanned from the QR code on a
printed document) or a control number can check that the document was issued.
"""

import logging
from datetime import datetime

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from domain import verification as verification_domain
from domain.document_requests import ISSUED_STATUSES
from models.enums import RequestStatus
from models.requests import ControlNumberPath, TokenPath
from routes.document_requests import COLLECTION

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

verification_tag = Tag(name="Verification", description="Public document verification")
verification_bp = APIBlueprint(
    'verification',
    __name__,
    url_prefix='/api/verify',
    abp_tags=[verification_tag]
)


def _failure(message: str, error: str, status_code: int):
    return {"success": False, "verified": False, "message": message, "error": error}, status_code


@verification_bp.get('/<token>')
def verify_token(path: TokenPath):
    """
    Verify a document by its token.

    Only approved or completed documents verify; other stored documents
    answer 200 with ``verified`` false.
    """
    with tracer.start_as_current_span("verification.verify_token") as span:
        token = path.token.strip()

        if not verification_domain.is_valid_token_structure(token):
            span.set_attribute("verification.result", "invalid_format")
            return _failure("Invalid verification token format", "INVALID_TOKEN_FORMAT", 400)

        parsed = verification_domain.parse_token(token)
        if parsed is None:
            span.set_attribute("verification.result", "parse_error")
            return _failure("Unable to parse verification token", "TOKEN_PARSE_ERROR", 400)

        document = current_app.mongodb_service.find_one(COLLECTION, {
            "verificationToken": token,
            "controlNumber": parsed.control_number
        })
        if not document:
            span.set_attribute("verification.result", "not_found")
            logger.warning("Verification token not found", extra={"control_number": parsed.control_number})
            return _failure("Document not found or token is invalid", "DOCUMENT_NOT_FOUND", 404)

        if document.get("status") not in ISSUED_STATUSES:
            span.set_attribute("verification.result", "not_completed")
            return {
                "success": True,
                "verified": False,
                "message": "Document has not been issued",
                "error": "DOCUMENT_NOT_COMPLETED",
                "data": {
                    "controlNumber": document.get("controlNumber"),
                    "status": document.get("status")
                }
            }, 200

        span.set_attribute("verification.result", "verified")
        logger.info("Document verified", extra={"control_number": parsed.control_number})

        return {
            "success": True,
            "verified": True,
            "message": "Document verified successfully",
            "data": {
                "document": verification_domain.build_verified_document(document),
                "issuer": verification_domain.ISSUER,
                "verificationInfo": verification_domain.build_verification_info(parsed)
            }
        }, 200


@verification_bp.get('/control/<control_number>')
def verify_control_number(path: ControlNumberPath):
    """Verify a document by control number; only completed documents verify."""
    control_number = path.control_number.strip().upper()
    document = current_app.mongodb_service.find_one(COLLECTION, {"controlNumber": control_number})

    if not document:
        return _failure("Document not found", "DOCUMENT_NOT_FOUND", 404)

    if document.get("status") != RequestStatus.COMPLETED.value:
        return {
            "success": True,
            "verified": False,
            "message": "Document has not been completed",
            "error": "DOCUMENT_NOT_COMPLETED",
            "data": {"controlNumber": control_number, "status": document.get("status")}
        }, 200

    return {
        "success": True,
        "verified": True,
        "message": "Document verified successfully",
        "data": {
            "document": verification_domain.build_verified_document(document),
            "issuer": verification_domain.ISSUER,
            "verifiedAt": datetime.utcnow().isoformat() + "Z"
        }
    }, 200


@verification_bp.get('/status/<token>')
def token_status(path: TokenPath):
    """Lightweight existence check for a token."""
    token = path.token.strip()
    if not verification_domain.is_valid_token_structure(token):
        return {"success": True, "data": {"exists": False, "verified": False, "status": None,
                                          "controlNumber": None}}, 200

    document = current_app.mongodb_service.find_one(
        COLLECTION, {"verificationToken": token}, projection={"status": 1, "controlNumber": 1}
    )
    if not document:
        return {"success": True, "data": {"exists": False, "verified": False, "status": None,
                                          "controlNumber": None}}, 200

    return {
        "success": True,
        "data": {
            "exists": True,
            "verified": document.get("status") == RequestStatus.COMPLETED.value,
            "status": document.get("status"),
            "controlNumber": document.get("controlNumber")
        }
    }, 200
