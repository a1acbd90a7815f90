# SPDX-License-Identifier: Apache-2.0

"""
PSA birth certificate submissions and their staff review.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app, request
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from domain import profile_verification as verification_rules
from middleware.auth import require_auth, require_admin, require_super_admin
from middleware.error_handler import (
    AuthorizationException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from middleware.validation import (
    get_json_body,
    parse_json_body,
    parse_query_params,
    to_validation_exception,
    validate_model,
)
from models.entities import BirthCertificateData, ProfileVerification, UserContext
from models.enums import ProfileVerificationStatus, Role
from models.requests import (
    ItemIdPath,
    PaginationParams,
    ProfileVerificationFilters,
    ReviewProfileVerificationRequest,
    SubmitProfileVerificationRequest,
)
from routes.auth import USERS, load_user
from services.email import EmailDeliveryError
from services.mongodb import DuplicateDocumentError
from services.storage import FileRejectedError
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "profile_verifications"
PENDING = {"status": ProfileVerificationStatus.PENDING.value}
FILE_FIELD = "birthCertificate"
USER_SUMMARY_FIELDS = ("id", "username", "email", "firstName", "middleName", "lastName",
                       "dateOfBirth", "placeOfBirth", "photo1x1")

profile_verification_tag = Tag(name="Profile Verification", description="PSA birth certificate review")
profile_verification_bp = APIBlueprint(
    'profile_verification',
    __name__,
    url_prefix='/api/profile-verification',
    abp_tags=[profile_verification_tag]
)


def _load_verification(verification_id: str) -> Dict[str, Any]:
    verification = current_app.mongodb_service.find_by_id(COLLECTION, verification_id)
    if not verification:
        raise NotFoundException("Verification request not found")
    return verification


def _summarize_user(user_id: str) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    user = current_app.mongodb_service.find_by_id(USERS, user_id, projection={"passwordHash": 0})
    if not user:
        return None
    return {key: user.get(key) for key in USER_SUMMARY_FIELDS}


def _with_people(verification: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(verification)
    data["submittedBy"] = _summarize_user(verification.get("user"))
    if verification.get("reviewedBy"):
        data["reviewer"] = _summarize_user(verification["reviewedBy"])
    return data


def _read_submission() -> Dict[str, Any]:
    """Form fields plus a stored ``birthCertificate`` file, or a JSON body."""
    if not request.files and not request.form:
        return get_json_body()

    data = {key: value for key, value in request.form.items() if value != ""}
    upload = request.files.get(FILE_FIELD)
    if upload and upload.filename:
        try:
            stored = current_app.storage_service.save(upload, FILE_FIELD)
        except FileRejectedError as e:
            raise ValidationException(str(e), [{"field": FILE_FIELD, "message": message, "type": "file_error"}
                                               for message in e.result.errors])
        data["documentUrl"] = stored["url"]
        data["documentFilename"] = stored["filename"]
    return data


def _notify_result(user: Dict[str, Any], approved: bool, reason: str = None) -> None:
    try:
        current_app.email_service.send_profile_verification_result(
            user["email"], approved, name=user.get("firstName"), reason=reason
        )
    except EmailDeliveryError as e:
        logger.warning("Verification notice not sent", extra={"user_id": user["id"], "error": str(e)})


@profile_verification_bp.get('/status')
@require_auth
def get_completion_status(user_context: UserContext):
    """Deadline and review state of the caller's birth certificate requirement."""
    user = load_user(user_context.user_id)
    pending = current_app.mongodb_service.find_one(COLLECTION, {"user": user["id"], **PENDING})
    return ResponseBuilder.success(verification_rules.completion_status(user, pending is not None))


@profile_verification_bp.post('/submit')
@require_auth
def submit_verification(user_context: UserContext):
    """
    Submit PSA birth certificate details with a scan of the certificate.

    The scan is a ``birthCertificate`` file part, or a ``documentUrl`` from an
    earlier upload. A resident may have only one pending submission.
    """
    with tracer.start_as_current_span("profile_verification.submit") as span:
        span.set_attribute("user.id", user_context.user_id)
        mongo = current_app.mongodb_service

        user = load_user(user_context.user_id)
        if user.get("role") != Role.RESIDENT.value:
            raise AuthorizationException("PSA verification is only for residents")

        if mongo.find_one(COLLECTION, {"user": user["id"], **PENDING}):
            raise ConflictException(
                "You already have a pending verification request. Please wait for admin review."
            )

        data = _read_submission()
        body = validate_model(SubmitProfileVerificationRequest, data)
        submitted = body.to_camel_dict(exclude_none=True)
        submitted["documentFilename"] = data.get("documentFilename")

        if verification_rules.missing_required_fields(submitted):
            raise ValidationException("All required PSA fields must be provided")
        if not submitted.get("documentUrl"):
            raise ValidationException("Birth certificate document is required")

        try:
            verification = ProfileVerification(
                user=user["id"],
                submitted_data=BirthCertificateData.model_validate(submitted),
                user_data_snapshot=verification_rules.user_snapshot(user)
            )
        except ValidationError as e:
            raise to_validation_exception(e)

        try:
            mongo.create(COLLECTION, verification.to_document(), user_context.user_id)
        except DuplicateDocumentError:
            raise ConflictException(
                "You already have a pending verification request. Please wait for admin review."
            )

        now = datetime.utcnow()
        stored_data = verification.submitted_data.to_camel_dict()
        mongo.update_by_id(
            USERS,
            user["id"],
            {
                "birthCertificate": verification_rules.birth_certificate_record(stored_data, now),
                "profileVerification": verification_rules.verification_state(
                    ProfileVerificationStatus.PENDING.value, now=now
                ),
            },
            user_context.user_id
        )

        current_app.audit_middleware.log_action(
            "PROFILE_VERIFICATION_SUBMITTED",
            "Submitted PSA profile for verification",
            entity="ProfileVerification",
            entity_id=verification.id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            {"verificationId": verification.id, "status": verification.status},
            message="PSA verification submitted successfully. Please wait for admin review.",
            status_code=201
        )


@profile_verification_bp.post('/dismiss-warning')
@require_auth
def dismiss_warning(user_context: UserContext):
    user = load_user(user_context.user_id)
    current_app.mongodb_service.update_by_id(
        USERS, user["id"], {"psaCompletion.warningDismissedAt": datetime.utcnow()}, user_context.user_id
    )
    return ResponseBuilder.success(message="Warning dismissed")


@profile_verification_bp.get('/admin/count')
@require_admin
def get_pending_count(user_context: UserContext):
    return ResponseBuilder.success({"count": current_app.mongodb_service.count(COLLECTION, PENDING)})


@profile_verification_bp.get('/admin/pending')
@require_admin
def list_pending(user_context: UserContext):
    pagination = parse_query_params(PaginationParams)
    result = current_app.mongodb_service.paginate(
        COLLECTION, page=pagination.page, page_size=pagination.limit, filters=dict(PENDING)
    )
    return ResponseBuilder.paginated([_with_people(item) for item in result.items], result.to_dict())


@profile_verification_bp.get('/admin/history')
@require_admin
def list_history(user_context: UserContext):
    """Submissions of every status, newest first; ``status=all`` is the same as no filter."""
    filters = parse_query_params(ProfileVerificationFilters, exclude=["page", "limit"])
    pagination = parse_query_params(PaginationParams, exclude=["status"])

    query: Dict[str, Any] = {}
    if filters.status and filters.status != "all":
        query["status"] = filters.status

    result = current_app.mongodb_service.paginate(
        COLLECTION, page=pagination.page, page_size=pagination.limit, filters=query
    )
    return ResponseBuilder.paginated([_with_people(item) for item in result.items], result.to_dict())


@profile_verification_bp.get('/admin/<item_id>')
@require_admin
def get_verification(user_context: UserContext, path: ItemIdPath):
    return ResponseBuilder.success(_with_people(_load_verification(path.item_id)))


def _claim_review(verification_id: str, updates: Dict[str, Any], user_context: UserContext) -> Dict[str, Any]:
    verification = _load_verification(verification_id)
    if verification.get("status") != ProfileVerificationStatus.PENDING.value:
        raise ValidationException("This verification has already been processed")

    reviewed = current_app.mongodb_service.update_by_id(
        COLLECTION, verification_id, updates, user_context.user_id, conditions=PENDING
    )
    if not reviewed:
        raise ConflictException("This verification has already been processed")
    return verification


@profile_verification_bp.put('/admin/<item_id>/approve')
@require_admin
def approve_verification(user_context: UserContext, path: ItemIdPath):
    """Accept the certificate and mark the resident's profile complete."""
    with tracer.start_as_current_span("profile_verification.approve") as span:
        span.set_attribute("profile_verification.id", path.item_id)
        body = parse_json_body(ReviewProfileVerificationRequest, allow_empty=True)
        now = datetime.utcnow()

        verification = _claim_review(path.item_id, {
            "status": ProfileVerificationStatus.APPROVED.value,
            "reviewedBy": user_context.user_id,
            "reviewedAt": now,
            "adminNotes": body.admin_notes,
        }, user_context)

        user = current_app.mongodb_service.find_by_id(USERS, verification["user"])
        if user:
            current_app.mongodb_service.update_by_id(
                USERS,
                user["id"],
                {
                    "profileVerification": verification_rules.verification_state(
                        ProfileVerificationStatus.APPROVED.value,
                        submitted_at=verification.get("createdAt"),
                        reviewed_by=user_context.user_id,
                        now=now
                    ),
                    "psaCompletion.isComplete": True,
                    "psaCompletion.completedAt": now,
                },
                user_context.user_id
            )
            _notify_result(user, approved=True)

        current_app.audit_middleware.log_action(
            "PROFILE_VERIFICATION_APPROVED",
            f"Approved PSA profile verification for {(user or {}).get('username', 'user')}",
            entity="ProfileVerification",
            entity_id=path.item_id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            _load_verification(path.item_id),
            message="Profile verification approved successfully"
        )


@profile_verification_bp.put('/admin/<item_id>/reject')
@require_admin
def reject_verification(user_context: UserContext, path: ItemIdPath):
    """Reject the certificate and clear it from the profile so the resident can resubmit."""
    body = parse_json_body(ReviewProfileVerificationRequest, allow_empty=True)
    reason = (body.rejection_reason or "").strip()
    if not reason:
        raise ValidationException("Rejection reason is required")

    now = datetime.utcnow()
    verification = _claim_review(path.item_id, {
        "status": ProfileVerificationStatus.REJECTED.value,
        "reviewedBy": user_context.user_id,
        "reviewedAt": now,
        "rejectionReason": reason,
        "adminNotes": body.admin_notes,
    }, user_context)

    user = current_app.mongodb_service.find_by_id(USERS, verification["user"])
    if user:
        current_app.mongodb_service.update_by_id(
            USERS,
            user["id"],
            {
                "profileVerification": verification_rules.verification_state(
                    ProfileVerificationStatus.REJECTED.value,
                    submitted_at=verification.get("createdAt"),
                    reviewed_by=user_context.user_id,
                    rejection_reason=reason,
                    now=now
                ),
                "birthCertificate": None,
            },
            user_context.user_id
        )
        _notify_result(user, approved=False, reason=reason)

    current_app.audit_middleware.log_action(
        "PROFILE_VERIFICATION_REJECTED",
        f"Rejected PSA profile verification for {(user or {}).get('username', 'user')}: {reason}",
        entity="ProfileVerification",
        entity_id=path.item_id,
        user_context=user_context
    )

    return ResponseBuilder.success(_load_verification(path.item_id), message="Profile verification rejected")


@profile_verification_bp.post('/admin/send-reminders')
@require_super_admin
def send_deadline_reminders(user_context: UserContext):
    """Email residents whose deadline enters the 30, 14 or 7 day window; each reminder goes out once."""
    mongo = current_app.mongodb_service
    residents = mongo.find(
        USERS,
        {
            "role": Role.RESIDENT.value,
            "psaCompletion.isComplete": {"$ne": True},
            "psaCompletion.deadline": {"$ne": None},
            "profileVerification.status": {"$ne": ProfileVerificationStatus.PENDING.value},
        },
        projection={"passwordHash": 0}
    )

    sent = 0
    for user in residents:
        due = verification_rules.due_reminder(user)
        if not due:
            continue
        reminder_type, flag, days_left = due
        try:
            current_app.email_service.send_psa_reminder(
                user["email"], days_left, reminder_type, name=user.get("firstName")
            )
        except EmailDeliveryError as e:
            logger.warning("Deadline reminder not sent", extra={"user_id": user["id"], "error": str(e)})
            continue
        mongo.update_by_id(USERS, user["id"], {f"psaCompletion.{flag}": True})
        sent += 1

    logger.info("Deadline reminders sent", extra={"count": sent})
    return ResponseBuilder.success({"remindersSent": sent}, message=f"Sent {sent} reminder emails")
