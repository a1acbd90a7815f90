# SPDX-License-Identifier: Apache-2.0

"""
Profile change requests reviewed by staff.
"""

import logging
from datetime import datetime
from typing import Any, Dict

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from domain import profile_updates as update_domain
from middleware.auth import require_auth, require_admin
from middleware.error_handler import ConflictException, NotFoundException, ValidationException
from middleware.validation import parse_json_body, parse_query_params, to_validation_exception
from models.entities import ProfileUpdate, UserContext
from models.enums import ProfileUpdateStatus
from models.requests import (
    ItemIdPath,
    PaginationParams,
    ProfileUpdateFilters,
    ReviewProfileUpdateRequest,
    SubmitProfileUpdateRequest,
)
from routes.auth import USERS, load_user, public_user
from services.mongodb import DuplicateDocumentError
from utils.request import ResponseBuilder, build_search_filter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "profile_updates"
PENDING = {"status": ProfileUpdateStatus.PENDING.value}

profile_updates_tag = Tag(name="Profile Updates", description="Reviewed profile change requests")
profile_updates_bp = APIBlueprint(
    'profile_updates',
    __name__,
    url_prefix='/api/profile-updates',
    abp_tags=[profile_updates_tag]
)


def _load_update(update_id: str) -> Dict[str, Any]:
    update = current_app.mongodb_service.find_by_id(COLLECTION, update_id)
    if not update:
        raise NotFoundException("Profile update request not found")
    return update


def _with_requester(update: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(update)
    requester = current_app.mongodb_service.find_by_id(USERS, update.get("user"), projection={"passwordHash": 0})
    if requester:
        data["requester"] = {
            key: requester.get(key)
            for key in ("id", "username", "email", "firstName", "middleName", "lastName", "phoneNumber")
        }
    return data


@profile_updates_bp.get('/my-profile')
@require_auth
def get_my_profile(user_context: UserContext):
    return ResponseBuilder.success(public_user(load_user(user_context.user_id)))


@profile_updates_bp.post('/submit')
@require_auth
def submit_profile_update(user_context: UserContext):
    """
    Propose new values for one group of profile fields.

    Only one pending request per update type is allowed; a second one is
    rejected with 409.
    """
    with tracer.start_as_current_span("profile_updates.submit") as span:
        body = parse_json_body(SubmitProfileUpdateRequest)
        update_type = body.update_type
        span.set_attribute("profile_update.type", update_type)

        new_data = update_domain.filter_new_data(update_type, body.new_data)
        if not new_data:
            raise ValidationException(
                f"No {update_domain.describe_type(update_type)} fields provided"
            )

        user = load_user(user_context.user_id)
        old_data = update_domain.snapshot_old_data(update_type, user)
        changed_fields = update_domain.find_changed_fields(old_data, new_data)
        if not changed_fields:
            raise ValidationException("No changes detected")

        try:
            update = ProfileUpdate(
                user=user_context.user_id,
                update_type=update_type,
                old_data=old_data,
                new_data=new_data,
                changed_fields=changed_fields,
                update_reason=body.update_reason
            )
        except ValidationError as e:
            raise to_validation_exception(e)

        try:
            current_app.mongodb_service.create(COLLECTION, update.to_document(), user_context.user_id)
        except DuplicateDocumentError:
            raise ConflictException(
                f"You already have a pending {update_domain.describe_type(update_type)} update request. "
                "Please wait for admin review."
            )

        current_app.audit_middleware.log_action(
            "PROFILE_UPDATE_SUBMITTED",
            f"Submitted {update_domain.describe_type(update_type)} update request",
            entity="ProfileUpdate",
            entity_id=update.id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            {
                "id": update.id,
                "updateType": update_type,
                "status": update.status,
                "changedFieldsCount": len(changed_fields),
                "createdAt": update.created_at,
            },
            message="Profile update request submitted successfully. Please wait for admin review.",
            status_code=201
        )


@profile_updates_bp.get('/my-updates')
@require_auth
def get_my_updates(user_context: UserContext):
    filters = parse_query_params(ProfileUpdateFilters, exclude=["page", "limit"])
    pagination = parse_query_params(PaginationParams, exclude=["status", "updateType", "search"])

    query: Dict[str, Any] = {"user": user_context.user_id}
    if filters.status:
        query["status"] = filters.status
    if filters.update_type:
        query["updateType"] = filters.update_type

    result = current_app.mongodb_service.paginate(
        COLLECTION, page=pagination.page, page_size=pagination.limit, filters=query
    )
    return ResponseBuilder.paginated(result.items, result.to_dict())


def _cancel(user_context: UserContext, update_id: str):
    update = current_app.mongodb_service.find_by_id(COLLECTION, update_id)
    if (not update or update.get("user") != user_context.user_id
            or update.get("status") != ProfileUpdateStatus.PENDING.value):
        raise NotFoundException("Pending update request not found")

    current_app.mongodb_service.delete_by_id(COLLECTION, update_id)
    current_app.audit_middleware.log_action(
        "PROFILE_UPDATE_CANCELLED",
        f"Cancelled {update_domain.describe_type(update['updateType'])} update request",
        entity="ProfileUpdate",
        entity_id=update_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="Profile update request cancelled successfully")


@profile_updates_bp.put('/cancel/<item_id>')
@require_auth
def cancel_profile_update(user_context: UserContext, path: ItemIdPath):
    return _cancel(user_context, path.item_id)


@profile_updates_bp.delete('/cancel/<item_id>')
@require_auth
def delete_profile_update(user_context: UserContext, path: ItemIdPath):
    return _cancel(user_context, path.item_id)


@profile_updates_bp.get('/admin/all')
@require_admin
def list_profile_updates(user_context: UserContext):
    """All change requests with per-status counts (staff only)."""
    filters = parse_query_params(ProfileUpdateFilters, exclude=["page", "limit"])
    pagination = parse_query_params(PaginationParams, exclude=["status", "updateType", "search"])
    mongo = current_app.mongodb_service

    query: Dict[str, Any] = {}
    if filters.status:
        query["status"] = filters.status
    if filters.update_type:
        query["updateType"] = filters.update_type
    if filters.search:
        users = mongo.find(
            USERS,
            build_search_filter(filters.search, ("firstName", "lastName", "email")),
            projection={"_id": 1}
        )
        query["user"] = {"$in": [user["id"] for user in users]}

    result = mongo.paginate(COLLECTION, page=pagination.page, page_size=pagination.limit, filters=query)
    stats = update_domain.summarize_by_status(
        mongo.aggregate(COLLECTION, [{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    )

    response, status_code = ResponseBuilder.paginated(
        [_with_requester(update) for update in result.items], result.to_dict()
    )
    response["stats"] = stats
    return response, status_code


@profile_updates_bp.get('/admin/<item_id>')
@require_admin
def get_profile_update(user_context: UserContext, path: ItemIdPath):
    return ResponseBuilder.success(_with_requester(_load_update(path.item_id)))


@profile_updates_bp.put('/admin/<item_id>/approve')
@require_admin
def approve_profile_update(user_context: UserContext, path: ItemIdPath):
    """Apply the proposed values to the user and close the request."""
    with tracer.start_as_current_span("profile_updates.approve") as span:
        body = parse_json_body(ReviewProfileUpdateRequest, allow_empty=True)
        update = _load_update(path.item_id)
        span.set_attribute("profile_update.id", path.item_id)

        if update.get("status") != ProfileUpdateStatus.PENDING.value:
            raise ValidationException(f"This request has already been {update.get('status')}")

        mongo = current_app.mongodb_service
        user = load_user(update["user"])
        changes = update_domain.build_user_changes(user, update.get("newData") or {})

        now = datetime.utcnow()
        reviewed = mongo.update_by_id(
            COLLECTION,
            path.item_id,
            {
                "status": ProfileUpdateStatus.APPROVED.value,
                "reviewedBy": user_context.user_id,
                "reviewedAt": now,
                "reviewNotes": body.review_notes,
                "appliedAt": now,
            },
            user_context.user_id,
            conditions=PENDING
        )
        if not reviewed:
            raise ConflictException("Profile update request was already reviewed")

        try:
            mongo.update_by_id(USERS, user["id"], changes, user_context.user_id)
        except DuplicateDocumentError:
            mongo.update_by_id(COLLECTION, path.item_id, {"status": ProfileUpdateStatus.PENDING.value},
                               unset=["reviewedBy", "reviewedAt", "appliedAt"])
            raise ConflictException("The new values conflict with another account")

        current_app.audit_middleware.log_action(
            "PROFILE_UPDATE_APPROVED",
            f"Approved {update_domain.describe_type(update['updateType'])} update for user {user['id']}",
            entity="ProfileUpdate",
            entity_id=path.item_id,
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            _load_update(path.item_id),
            message="Profile update approved and applied successfully"
        )


@profile_updates_bp.put('/admin/<item_id>/reject')
@require_admin
def reject_profile_update(user_context: UserContext, path: ItemIdPath):
    body = parse_json_body(ReviewProfileUpdateRequest, allow_empty=True)
    if not body.rejection_reason or not body.rejection_reason.strip():
        raise ValidationException("Rejection reason is required")

    update = _load_update(path.item_id)
    if update.get("status") != ProfileUpdateStatus.PENDING.value:
        raise ValidationException(f"This request has already been {update.get('status')}")

    reviewed = current_app.mongodb_service.update_by_id(
        COLLECTION,
        path.item_id,
        {
            "status": ProfileUpdateStatus.REJECTED.value,
            "reviewedBy": user_context.user_id,
            "reviewedAt": datetime.utcnow(),
            "reviewNotes": body.review_notes,
            "rejectionReason": body.rejection_reason.strip(),
        },
        user_context.user_id,
        conditions=PENDING
    )
    if not reviewed:
        raise ConflictException("Profile update request was already reviewed")

    current_app.audit_middleware.log_action(
        "PROFILE_UPDATE_REJECTED",
        f"Rejected {update_domain.describe_type(update['updateType'])} update: {body.rejection_reason.strip()}",
        entity="ProfileUpdate",
        entity_id=path.item_id,
        user_context=user_context
    )

    return ResponseBuilder.success(_load_update(path.item_id), message="Profile update request rejected")
