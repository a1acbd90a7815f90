# SPDX-License-Identifier: Apache-2.0

"""
Public contact form and the staff inbox behind it.
"""

import html
import logging
from typing import Any, Dict, Optional

from flask import current_app, request
from flask_openapi3 import APIBlueprint, Tag
from pydantic import ValidationError

from middleware.auth import optional_auth, require_admin
from middleware.error_handler import NotFoundException, ValidationException
from middleware.validation import parse_json_body, parse_query_params, to_validation_exception
from models.entities import ContactMessage, ContactResponse, UserContext
from models.enums import ContactCategory, ContactStatus
from models.requests import (
    ContactFilters,
    CreateContactMessageRequest,
    ItemIdPath,
    PaginationParams,
    RespondContactRequest,
    UpdateContactStatusRequest,
)
from services.email import EmailDeliveryError
from utils.request import ResponseBuilder, build_search_filter

logger = logging.getLogger(__name__)

COLLECTION = "contact_messages"

SUBJECT_CATEGORIES = (
    ("document", ContactCategory.DOCUMENT_REQUEST.value),
    ("complaint", ContactCategory.COMPLAINT.value),
    ("suggestion", ContactCategory.SUGGESTION.value),
    ("emergency", ContactCategory.EMERGENCY.value),
)

contact_tag = Tag(name="Contact Messages", description="Public contact form")
contact_messages_bp = APIBlueprint(
    'contact_messages',
    __name__,
    url_prefix='/api/contact-messages',
    abp_tags=[contact_tag]
)


def category_from_subject(subject: str) -> str:
    lowered = subject.lower()
    for keyword, category in SUBJECT_CATEGORIES:
        if keyword in lowered:
            return category
    return ContactCategory.GENERAL_INQUIRY.value


def _load_message(message_id: str) -> Dict[str, Any]:
    message = current_app.mongodb_service.find_by_id(COLLECTION, message_id)
    if not message:
        raise NotFoundException("Message not found")
    return message


@contact_messages_bp.post('')
@optional_auth
def submit_contact_message(user_context: Optional[UserContext]):
    """Anyone may write in; a signed-in sender is linked to their account."""
    body = parse_json_body(CreateContactMessageRequest)
    data = body.model_dump(exclude={"category"})

    try:
        message = ContactMessage(
            **data,
            category=body.category or category_from_subject(body.subject),
            user_id=user_context.user_id if user_context else None,
            ip_address=request.headers.get("X-Forwarded-For", request.remote_addr),
            user_agent=request.headers.get("User-Agent")
        )
    except ValidationError as e:
        raise to_validation_exception(e)

    current_app.mongodb_service.create(COLLECTION, message.to_document())
    logger.info("Contact message received", extra={"message_id": message.id, "category": message.category})

    return ResponseBuilder.success(
        {"id": message.id, "status": message.status, "createdAt": message.created_at},
        message="Your message has been submitted successfully. We will get back to you soon.",
        status_code=201
    )


@contact_messages_bp.get('')
@require_admin
def list_contact_messages(user_context: UserContext):
    filters = parse_query_params(ContactFilters)
    pagination = parse_query_params(PaginationParams)

    query = filters.model_dump(by_alias=True, exclude_none=True, exclude={"search"})
    query.update(build_search_filter(
        filters.search, ("firstName", "lastName", "email", "subject", "message")
    ))

    result = current_app.mongodb_service.paginate(
        COLLECTION, page=pagination.page, page_size=pagination.limit, filters=query
    )
    return ResponseBuilder.paginated(result.items, result.to_dict())


@contact_messages_bp.get('/stats')
@require_admin
def contact_message_stats(user_context: UserContext):
    mongo = current_app.mongodb_service
    by_status = {status.value: 0 for status in ContactStatus}
    for row in mongo.aggregate(COLLECTION, [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]):
        by_status[row["_id"]] = row["count"]

    by_category = {
        row["_id"]: row["count"]
        for row in mongo.aggregate(COLLECTION, [{"$group": {"_id": "$category", "count": {"$sum": 1}}}])
    }
    return ResponseBuilder.success({
        "total": sum(by_status.values()),
        "byStatus": by_status,
        "byCategory": by_category,
    })


@contact_messages_bp.get('/<item_id>')
@require_admin
def get_contact_message(user_context: UserContext, path: ItemIdPath):
    """Opening a new message marks it read."""
    message = _load_message(path.item_id)
    if message.get("status") == ContactStatus.NEW.value:
        current_app.mongodb_service.update_by_id(
            COLLECTION, path.item_id, {"status": ContactStatus.READ.value}, user_context.user_id,
            conditions={"status": ContactStatus.NEW.value}
        )
        message["status"] = ContactStatus.READ.value
    return ResponseBuilder.success(message)


@contact_messages_bp.put('/<item_id>/status')
@require_admin
def update_contact_status(user_context: UserContext, path: ItemIdPath):
    body = parse_json_body(UpdateContactStatusRequest)
    updates = body.model_dump(by_alias=True, exclude_none=True)
    if not updates:
        raise ValidationException("Status or priority is required")

    _load_message(path.item_id)
    current_app.mongodb_service.update_by_id(COLLECTION, path.item_id, updates, user_context.user_id)
    current_app.audit_middleware.log_action(
        "CONTACT_MESSAGE_UPDATED",
        f"Contact message {path.item_id} set to {updates}",
        entity="ContactMessage",
        entity_id=path.item_id,
        user_context=user_context
    )
    return ResponseBuilder.success(_load_message(path.item_id), message="Status updated successfully")


@contact_messages_bp.post('/<item_id>/response')
@require_admin
def respond_to_message(user_context: UserContext, path: ItemIdPath):
    """Record a staff reply, resolve the message and email the sender."""
    body = parse_json_body(RespondContactRequest)
    message = _load_message(path.item_id)

    response = ContactResponse(message=body.message, responded_by=user_context.user_id)
    current_app.mongodb_service.update_by_id(
        COLLECTION,
        path.item_id,
        {"response": response.to_camel_dict(), "status": ContactStatus.RESOLVED.value},
        user_context.user_id
    )

    email_sent = False
    try:
        current_app.email_service.send(
            message["email"],
            f"Re: {message.get('subject', 'Your message')}",
            f"<p>Hello {html.escape(message.get('firstName', ''))},</p>"
            f"<p>{html.escape(body.message)}</p>"
            "<p>Barangay Culiat</p>"
        )
        email_sent = True
    except EmailDeliveryError as e:
        logger.warning("Failed to email contact response", extra={"message_id": path.item_id, "error": str(e)})

    current_app.audit_middleware.log_action(
        "CONTACT_MESSAGE_RESPONDED",
        f"Response added to contact message: {path.item_id}",
        entity="ContactMessage",
        entity_id=path.item_id,
        user_context=user_context
    )
    return ResponseBuilder.success(_load_message(path.item_id), message="Response added successfully",
                                   emailSent=email_sent)


@contact_messages_bp.delete('/<item_id>')
@require_admin
def delete_contact_message(user_context: UserContext, path: ItemIdPath):
    _load_message(path.item_id)
    current_app.mongodb_service.delete_by_id(COLLECTION, path.item_id)
    current_app.audit_middleware.log_action(
        "CONTACT_MESSAGE_DELETED",
        f"Deleted contact message {path.item_id}",
        entity="ContactMessage",
        entity_id=path.item_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="Message deleted successfully")
