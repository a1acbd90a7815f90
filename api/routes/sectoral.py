# SPDX-License-Identifier: Apache-2.0

"""
Sectoral group membership (seniors, PWD, solo parents, women and children).

Staff manage registrations; a resident may read their own memberships.
"""

import logging

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import ValidationError

from middleware.auth import require_admin, require_auth
from middleware.error_handler import AuthorizationException, ConflictException, NotFoundException
from middleware.validation import parse_json_body, to_validation_exception
from models.entities import BenefitRecord, SectoralGroup, UserContext
from models.requests import (
    AddBenefitRequest,
    ItemIdPath,
    RegisterSectorRequest,
    SectorTypePath,
    UpdateSectorRequest,
    UserIdPath,
)
from routes.auth import load_user
from routes.content import is_staff
from services.mongodb import DuplicateDocumentError
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)

COLLECTION = "sectoral_groups"

sectoral_tag = Tag(name="Sectoral Groups", description="Sectoral program membership")
sectoral_bp = APIBlueprint(
    'sectoral',
    __name__,
    url_prefix='/api/sectoral',
    abp_tags=[sectoral_tag]
)


def _load_registration(item_id: str):
    registration = current_app.mongodb_service.find_by_id(COLLECTION, item_id)
    if not registration:
        raise NotFoundException("Sectoral registration not found")
    return registration


@sectoral_bp.post('/register')
@require_admin
def register_to_sector(user_context: UserContext):
    """Enroll a user in a sector; a user appears at most once per sector."""
    body = parse_json_body(RegisterSectorRequest)
    load_user(body.user_id)

    try:
        registration = SectoralGroup(**body.model_dump(), registered_by=user_context.user_id)
    except ValidationError as e:
        raise to_validation_exception(e)

    try:
        current_app.mongodb_service.create(COLLECTION, registration.to_document(), user_context.user_id)
    except DuplicateDocumentError:
        raise ConflictException(f"User is already registered in {body.sector_type} sector")

    current_app.audit_middleware.log_action(
        "SECTORAL_REGISTERED",
        f"Registered user {body.user_id} to {body.sector_type} sector",
        entity="SectoralGroup",
        entity_id=registration.id,
        user_context=user_context
    )
    return ResponseBuilder.success(
        _load_registration(registration.id),
        message="User registered to sectoral group successfully",
        status_code=201
    )


@sectoral_bp.get('/statistics')
@require_admin
def sectoral_statistics(user_context: UserContext):
    rows = current_app.mongodb_service.aggregate(COLLECTION, [
        {"$group": {
            "_id": "$sectorType",
            "total": {"$sum": 1},
            "active": {"$sum": {"$cond": [{"$eq": ["$status", "active"]}, 1, 0]}},
            "inactive": {"$sum": {"$cond": [{"$eq": ["$status", "inactive"]}, 1, 0]}},
            "pending": {"$sum": {"$cond": [{"$eq": ["$status", "pending"]}, 1, 0]}},
        }},
        {"$project": {"_id": 0, "sectorType": "$_id", "total": 1, "active": 1, "inactive": 1, "pending": 1}}
    ])
    return ResponseBuilder.success(rows)


@sectoral_bp.get('/user/<user_id>')
@require_auth
def user_sectoral_groups(user_context: UserContext, path: UserIdPath):
    if path.user_id != user_context.user_id and not is_staff(user_context):
        raise AuthorizationException("Not authorized to view these memberships")

    groups = current_app.mongodb_service.find(COLLECTION, {"userId": path.user_id}, sort_by="dateRegistered")
    return ResponseBuilder.success(groups, count=len(groups))


@sectoral_bp.get('/<sector_type>')
@require_admin
def sector_members(user_context: UserContext, path: SectorTypePath):
    mongo = current_app.mongodb_service
    members = mongo.find(COLLECTION, {"sectorType": path.sector_type.value}, sort_by="dateRegistered")
    for member in members:
        user = mongo.find_by_id("users", member.get("userId"),
                                projection={"firstName": 1, "lastName": 1, "email": 1, "phoneNumber": 1})
        member["user"] = user
    return ResponseBuilder.success(members, count=len(members))


@sectoral_bp.put('/<item_id>')
@require_admin
def update_registration(user_context: UserContext, path: ItemIdPath):
    body = parse_json_body(UpdateSectorRequest)
    _load_registration(path.item_id)

    updates = body.model_dump(by_alias=True, exclude_unset=True)
    if updates:
        current_app.mongodb_service.update_by_id(COLLECTION, path.item_id, updates, user_context.user_id)
        current_app.audit_middleware.log_action(
            "SECTORAL_UPDATED",
            f"Updated sectoral registration {path.item_id}",
            entity="SectoralGroup",
            entity_id=path.item_id,
            user_context=user_context
        )

    return ResponseBuilder.success(_load_registration(path.item_id),
                                   message="Sectoral registration updated successfully")


@sectoral_bp.delete('/<item_id>')
@require_admin
def remove_registration(user_context: UserContext, path: ItemIdPath):
    registration = _load_registration(path.item_id)
    current_app.mongodb_service.delete_by_id(COLLECTION, path.item_id)
    current_app.audit_middleware.log_action(
        "SECTORAL_REMOVED",
        f"Removed user {registration.get('userId')} from {registration.get('sectorType')} sector",
        entity="SectoralGroup",
        entity_id=path.item_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="User removed from sectoral group successfully")


@sectoral_bp.post('/<item_id>/benefit')
@require_admin
def add_benefit(user_context: UserContext, path: ItemIdPath):
    body = parse_json_body(AddBenefitRequest)
    _load_registration(path.item_id)

    values = body.model_dump(exclude_none=True)
    record = BenefitRecord(**values)
    current_app.mongodb_service.push_by_id(
        COLLECTION, path.item_id, "benefitsReceived", record.to_camel_dict()
    )
    return ResponseBuilder.success(_load_registration(path.item_id), message="Benefit record added successfully")
