# SPDX-License-Identifier: Apache-2.0

"""
Document request endpoints.

Submission (JSON or multipart with file fields), file upload, admin and owner
listings, detail, owner edits, admin status changes with control-number
issuance, deletion and the document checklist.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict

from flask import request, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from domain import document_requests as request_domain
from domain.files import NO_FILE_MESSAGE
from domain.verification import build_issuance_fields
from middleware.auth import require_auth, require_admin
from middleware.error_handler import (
    AuthorizationException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from middleware.validation import (
    get_json_body,
    parse_query_params,
    to_validation_exception,
    validate_model,
)
from models.entities import DocumentRequest, UserContext
from models.enums import RequestStatus
from models.requests import (
    CreateDocumentRequest,
    DocumentRequestFilters,
    PaginationParams,
    RequestIdPath,
    UpdateDocumentRequest,
    UpdateStatusRequest,
)
from services.storage import FileRejectedError
from utils.request import ResponseBuilder, build_date_range, build_search_filter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "document_requests"
USERS = "users"

FILE_FIELDS = ("validID", "photo1x1")
JSON_FORM_FIELDS = ("address", "emergencyContact", "businessInfo", "supportingDocuments")
SEARCH_FIELDS = ("firstName", "lastName", "middleName", "controlNumber")

document_requests_tag = Tag(name="Document Requests", description="Certificate and permit requests")
document_requests_bp = APIBlueprint(
    'document_requests',
    __name__,
    url_prefix='/api/document-requests',
    abp_tags=[document_requests_tag]
)


def load_document_request(request_id: str) -> Dict[str, Any]:
    """Fetch a request by ID or raise 404."""
    document = current_app.mongodb_service.find_by_id(COLLECTION, request_id)
    if not document:
        raise NotFoundException("Document request not found")
    return document


def present(document: Dict[str, Any]) -> Dict[str, Any]:
    """Stored request plus its human label."""
    data = dict(document)
    data["documentTypeLabel"] = request_domain.get_document_label(document.get("documentType"))
    return data


def _read_submission() -> Dict[str, Any]:
    """Read a JSON body, or a multipart form with stored file fields."""
    if not request.files and not request.form:
        return get_json_body()

    data: Dict[str, Any] = {}
    for key, value in request.form.items():
        if key in JSON_FORM_FIELDS and value:
            try:
                data[key] = json.loads(value)
            except ValueError:
                raise ValidationException(f"{key} must be valid JSON")
        elif value != "":
            data[key] = value

    storage = current_app.storage_service
    try:
        for field_name in FILE_FIELDS:
            upload = request.files.get(field_name)
            if upload and upload.filename:
                data[field_name] = storage.save(upload, field_name)

        uploads = [f for f in request.files.getlist("supportingDocuments") if f and f.filename]
        if uploads:
            stored = [storage.save(upload, "supportingDocuments") for upload in uploads]
            data["supportingDocuments"] = list(data.get("supportingDocuments") or []) + stored
    except FileRejectedError as e:
        raise ValidationException(str(e), [{"field": "file", "message": message, "type": "file_error"}
                                           for message in e.result.errors])

    return data


@document_requests_bp.post('')
@require_auth
def create_document_request(user_context: UserContext):
    """
    Submit a document request.

    Residents submit for themselves; by default personal and address fields
    are copied from their profile. Staff may submit a walk-in request with
    ``autoFill`` false, in which case the request has no owning applicant.
    """
    with tracer.start_as_current_span("document_request.create") as span:
        span.set_attribute("user.id", user_context.user_id)

        submission = validate_model(CreateDocumentRequest, _read_submission())
        span.set_attribute("document_request.type", submission.document_type)

        staff_entered = user_context.is_admin and not submission.auto_fill
        applicant_id = None if staff_entered else user_context.user_id

        profile = None
        if not staff_entered and (
            submission.auto_fill or submission.use_stored_valid_id or submission.use_stored_photo1x1
        ):
            profile = current_app.mongodb_service.find_by_id(USERS, user_context.user_id)
            if not profile:
                raise NotFoundException("User not found")

        payload = submission.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"auto_fill", "use_stored_valid_id", "use_stored_photo1x1"}
        )
        if not payload.get("supportingDocuments"):
            payload.pop("supportingDocuments", None)

        if profile and not submission.auto_fill:
            # Stored attachments only, no personal fields
            if submission.use_stored_valid_id and profile.get("validID"):
                payload.setdefault("validID", profile["validID"])
            if submission.use_stored_photo1x1 and profile.get("photo1x1"):
                payload.setdefault("photo1x1", profile["photo1x1"])

        try:
            entity = request_domain.build_request_document(
                payload,
                applicant_id=applicant_id,
                profile=profile if submission.auto_fill else None,
                use_stored_valid_id=submission.use_stored_valid_id,
                use_stored_photo=submission.use_stored_photo1x1,
                created_by=user_context.user_id
            )
        except ValidationError as e:
            raise to_validation_exception(e)
        except ValueError as e:
            raise ValidationException(str(e))

        current_app.mongodb_service.create(COLLECTION, entity.to_document(), user_context.user_id)

        label = request_domain.get_document_label(entity.document_type)
        current_app.audit_middleware.log_action(
            "DOCUMENT_REQUEST_CREATED",
            f"Created {label} request for {entity.full_name}",
            entity="DocumentRequest",
            entity_id=entity.id,
            user_context=user_context
        )

        logger.info(
            "Document request created",
            extra={
                "request_id": entity.id,
                "document_type": entity.document_type,
                "user_id": user_context.user_id,
                "staff_entered": staff_entered
            }
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            present(entity.model_dump(by_alias=True)),
            message="Document request created successfully",
            status_code=201
        )


@document_requests_bp.post('/upload')
@require_auth
def upload_file(user_context: UserContext):
    """Store one image and return its attachment descriptor."""
    upload = request.files.get("file")
    if not upload or not upload.filename:
        raise ValidationException(NO_FILE_MESSAGE)

    field_name = request.form.get("fieldName") or "file"
    try:
        attachment = current_app.storage_service.save(upload, field_name)
    except FileRejectedError as e:
        raise ValidationException(str(e))

    logger.info("File uploaded", extra={"user_id": user_context.user_id, "file": attachment["filename"]})
    return ResponseBuilder.success(attachment, message="File uploaded successfully", status_code=201)


def _list_filters(filters: DocumentRequestFilters) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if filters.status:
        query["status"] = filters.status
    if filters.document_type:
        query["documentType"] = filters.document_type
    if filters.applicant:
        query["applicant"] = filters.applicant
    if filters.payment_status:
        query["paymentStatus"] = filters.payment_status

    created_range = build_date_range(filters.start_date, filters.end_date)
    if created_range:
        query["createdAt"] = created_range

    query.update(build_search_filter(filters.search, SEARCH_FIELDS))
    return query


@document_requests_bp.get('')
@require_admin
def list_document_requests(user_context: UserContext):
    """List all requests, newest first (staff only)."""
    with tracer.start_as_current_span("document_request.list") as span:
        filters = parse_query_params(DocumentRequestFilters)
        pagination = parse_query_params(PaginationParams)

        query = _list_filters(filters)
        result = current_app.mongodb_service.paginate(
            COLLECTION,
            page=pagination.page,
            page_size=pagination.limit,
            filters=query
        )

        span.set_attributes({
            "document_request.total": result.total,
            "document_request.page": pagination.page
        })

        return ResponseBuilder.paginated([present(doc) for doc in result.items], result.to_dict())


@document_requests_bp.get('/my-requests')
@require_auth
def list_my_requests(user_context: UserContext):
    """List the caller's own requests, newest first."""
    filters = parse_query_params(DocumentRequestFilters)
    pagination = parse_query_params(PaginationParams)

    query = _list_filters(filters)
    query["applicant"] = user_context.user_id

    result = current_app.mongodb_service.paginate(
        COLLECTION,
        page=pagination.page,
        page_size=pagination.limit,
        filters=query
    )
    return ResponseBuilder.paginated([present(doc) for doc in result.items], result.to_dict())


@document_requests_bp.get('/stats')
@require_admin
def get_stats(user_context: UserContext):
    """Request totals by status and by document type."""
    mongo = current_app.mongodb_service
    status_counts = mongo.aggregate(COLLECTION, [{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    type_counts = mongo.aggregate(COLLECTION, [
        {"$group": {"_id": "$documentType", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}}
    ])
    payment_counts = mongo.aggregate(COLLECTION, [{"$group": {"_id": "$paymentStatus", "count": {"$sum": 1}}}])

    stats = request_domain.summarize_stats(status_counts, type_counts)
    stats["byPaymentStatus"] = {row["_id"]: row["count"] for row in payment_counts}
    return ResponseBuilder.success(stats)


@document_requests_bp.get('/<request_id>')
@require_auth
def get_document_request(user_context: UserContext, path: RequestIdPath):
    """Request detail with a summary of attached files (owner or staff)."""
    document = load_document_request(path.request_id)
    if not request_domain.can_view(document, user_context):
        raise AuthorizationException("Not authorized to view this request")

    entity = DocumentRequest.from_document(document)
    data = present(document)
    data["fullName"] = entity.full_name
    data["fullAddress"] = entity.full_address
    data["filesSummary"] = entity.files_summary()
    return ResponseBuilder.success(data)


@document_requests_bp.put('/<request_id>')
@require_auth
def update_document_request(user_context: UserContext, path: RequestIdPath):
    """Owner edits while the request is still pending."""
    with tracer.start_as_current_span("document_request.update") as span:
        span.set_attribute("document_request.id", path.request_id)

        document = load_document_request(path.request_id)
        if not request_domain.is_owner(document, user_context):
            raise AuthorizationException("Not authorized to update this request")

        check = request_domain.check_owner_edit(document, user_context)
        if not check.allowed:
            raise ConflictException(check.reason)

        changes_model = validate_model(UpdateDocumentRequest, get_json_body())
        changes = changes_model.model_dump(by_alias=True, exclude_unset=True)

        protected = request_domain.check_protected_fields(document, changes)
        if not protected.allowed:
            raise ValidationException(protected.reason, [
                {"field": "body", "message": message, "type": "protected_field"}
                for message in protected.errors
            ])

        try:
            merged = request_domain.merge_update(document, changes)
        except ValidationError as e:
            raise to_validation_exception(e)

        updates = merged.to_document()
        updates.pop("_id", None)
        updates.pop("createdAt", None)

        updated = current_app.mongodb_service.update_by_id(
            COLLECTION,
            path.request_id,
            updates,
            user_context.user_id,
            conditions={"status": RequestStatus.PENDING.value}
        )
        if not updated:
            raise ConflictException("Request is no longer pending")

        current_app.audit_middleware.log_action(
            "DOCUMENT_REQUEST_UPDATED",
            f"Updated document request {path.request_id}",
            entity="DocumentRequest",
            entity_id=path.request_id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            present(load_document_request(path.request_id)),
            message="Document request updated successfully"
        )


def _change_status(user_context: UserContext, request_id: str):
    with tracer.start_as_current_span("document_request.update_status") as span:
        span.set_attributes({"document_request.id": request_id, "user.id": user_context.user_id})

        body = validate_model(UpdateStatusRequest, get_json_body())
        if not request_domain.is_valid_status(body.status):
            raise ValidationException("Invalid status")

        document = load_document_request(request_id)
        current = document.get("status")

        check = request_domain.check_transition(current, body.status)
        if not check.allowed:
            span.set_attribute("document_request.transition", "rejected")
            raise ConflictException(check.reason)

        now = datetime.utcnow()
        updates = request_domain.build_status_update(
            document, body.status, user_context,
            rejection_reason=body.rejection_reason,
            remarks=body.remarks,
            now=now
        )

        updated = current_app.mongodb_service.update_by_id(
            COLLECTION, request_id, updates, user_context.user_id, conditions={"status": current}
        )
        if not updated:
            raise ConflictException("Request status changed, please retry")

        # Sequence numbers are only drawn once the status change has been claimed
        if request_domain.needs_issuance(document, body.status):
            document_type = document.get("documentType")
            prefix = request_domain.control_prefix(document_type)
            sequence = current_app.mongodb_service.next_sequence(f"{prefix}-{now.year}")
            control_number = request_domain.format_control_number(document_type, now.year, sequence)
            current_app.mongodb_service.update_by_id(
                COLLECTION, request_id,
                build_issuance_fields(control_number, current_app.config['VERIFICATION_SECRET'], now),
                user_context.user_id, conditions={"controlNumber": None}
            )
            span.set_attribute("document_request.control_number", control_number)

        label = request_domain.get_document_label(document.get("documentType"))
        current_app.audit_middleware.log_action(
            "DOCUMENT_REQUEST_STATUS_UPDATED",
            f"Changed {label} request status from {current} to {body.status}",
            entity="DocumentRequest",
            entity_id=request_id,
            user_context=user_context
        )

        logger.info(
            "Document request status changed",
            extra={"request_id": request_id, "from": current, "to": body.status, "user_id": user_context.user_id}
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            present(load_document_request(request_id)),
            message=f"Document request {body.status} successfully"
        )


@document_requests_bp.put('/<request_id>/status')
@require_admin
def update_status(user_context: UserContext, path: RequestIdPath):
    """Move a request through the status workflow (staff only)."""
    return _change_status(user_context, path.request_id)


@document_requests_bp.patch('/<request_id>/status')
@require_admin
def patch_status(user_context: UserContext, path: RequestIdPath):
    """Same as the PUT variant."""
    return _change_status(user_context, path.request_id)


@document_requests_bp.delete('/<request_id>')
@require_auth
def delete_document_request(user_context: UserContext, path: RequestIdPath):
    """Staff may delete any request; owners only while it is pending."""
    document = load_document_request(path.request_id)

    check = request_domain.check_delete(document, user_context)
    if not check.allowed:
        if request_domain.is_owner(document, user_context):
            raise ConflictException(check.reason)
        raise AuthorizationException(check.reason)

    current_app.mongodb_service.delete_by_id(COLLECTION, path.request_id)

    current_app.audit_middleware.log_action(
        "DOCUMENT_REQUEST_DELETED",
        f"Deleted {request_domain.get_document_label(document.get('documentType'))} request",
        entity="DocumentRequest",
        entity_id=path.request_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="Document request deleted successfully")


@document_requests_bp.get('/<request_id>/check-documents')
@require_auth
def check_documents(user_context: UserContext, path: RequestIdPath):
    document = load_document_request(path.request_id)
    if not request_domain.can_view(document, user_context):
        raise AuthorizationException("Not authorized to view this request")

    entity = DocumentRequest.from_document(document)
    complete, missing = entity.has_required_documents()
    return ResponseBuilder.success({
        "documentType": entity.document_type,
        "hasRequiredDocuments": complete,
        "missingDocuments": missing,
        "requiresPhoto": entity.requires_photo(),
        "filesSummary": entity.files_summary()
    })


@document_requests_bp.post('/<request_id>/sync-profile')
@require_auth
def sync_profile(user_context: UserContext, path: RequestIdPath):
    """Re-copy personal fields from the owner's current profile."""
    document = load_document_request(path.request_id)
    if not request_domain.is_owner(document, user_context):
        raise AuthorizationException("Not authorized to update this request")

    check = request_domain.check_owner_edit(document, user_context)
    if not check.allowed:
        raise ConflictException(check.reason)

    profile = current_app.mongodb_service.find_by_id(USERS, user_context.user_id)
    if not profile:
        raise NotFoundException("User not found")

    try:
        synced = request_domain.sync_with_profile(document, profile)
    except ValidationError as e:
        raise to_validation_exception(e)

    updates = {
        name: value for name, value in synced.to_document().items()
        if name in request_domain.PROFILE_FIELDS or name == "contactNumber"
    }
    current_app.mongodb_service.update_by_id(COLLECTION, path.request_id, updates, user_context.user_id)

    return ResponseBuilder.success(
        present(load_document_request(path.request_id)),
        message="Request synced with profile"
    )
