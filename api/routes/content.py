# SPDX-License-Identifier: Apache-2.0

"""
Public site content: announcements, officials, services and FAQs.

Each content type gets the same set of endpoints from
``create_content_blueprint``. Anyone can read visible items; staff can
list everything and create, edit, toggle or delete items.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple, Type

from flask import current_app, request
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from pydantic import ValidationError

from middleware.auth import STAFF_ROLES, optional_auth, require_admin
from middleware.error_handler import NotFoundException, ValidationException
from middleware.validation import get_json_body, parse_query_params, to_validation_exception
from models.base import BaseEntity
from models.entities import FAQ, Announcement, Official, Service, UserContext
from models.enums import AnnouncementStatus
from models.requests import ItemIdPath, PaginationParams
from utils.request import ResponseBuilder, build_search_filter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

READ_ONLY_FIELDS = {"id", "_id", "createdAt", "createdBy", "updatedAt", "updatedBy", "views", "schemaVersion"}
ENTITY_FIELDS = {"id", "created_at", "updated_at", "schema_version"}


def is_staff(user_context: Optional[UserContext]) -> bool:
    return user_context is not None and user_context.role in STAFF_ROLES


def create_content_blueprint(
    name: str,
    url_prefix: str,
    model: Type[BaseEntity],
    collection: str,
    label: str,
    visibility: Tuple[str, Any, Any],
    toggle_path: str,
    sort_by: str = "createdAt",
    sort_order: int = -1,
    search_fields: Iterable[str] = (),
    count_views: bool = False,
    stamp_publish: bool = False
) -> APIBlueprint:
    """
    Build a CRUD blueprint for one content type.

    Args:
        visibility: ``(field, visible value, hidden value)``; the public only
            sees items whose field holds the visible value
        toggle_path: suffix of the endpoint that flips visibility
        count_views: increment ``views`` on each public detail read
        stamp_publish: record ``publishDate``/``publishedBy`` when made visible
    """
    field, visible_value, hidden_value = visibility
    search_fields = tuple(search_fields)
    entity_name = model.__name__

    blueprint = APIBlueprint(
        name,
        __name__,
        url_prefix=url_prefix,
        abp_tags=[Tag(name=label, description=f"{label} content")]
    )

    def load_item(item_id: str) -> Dict[str, Any]:
        item = current_app.mongodb_service.find_by_id(collection, item_id)
        if not item:
            raise NotFoundException(f"{entity_name} not found")
        return item

    def list_items(query: Dict[str, Any]):
        pagination = parse_query_params(PaginationParams)
        category = request.args.get("category", "").strip()
        if category:
            query["category"] = category
        query.update(build_search_filter(request.args.get("search"), search_fields))

        result = current_app.mongodb_service.paginate(
            collection,
            page=pagination.page,
            page_size=pagination.limit,
            filters=query,
            sort_by=sort_by,
            sort_order=sort_order
        )
        return ResponseBuilder.paginated(result.items, result.to_dict())

    def publish_stamp(user_context: UserContext) -> Dict[str, Any]:
        if not stamp_publish:
            return {}
        return {"publishDate": datetime.utcnow(), "publishedBy": user_context.user_id}

    @blueprint.get('')
    def list_visible():
        return list_items({field: visible_value})

    @blueprint.get('/all')
    @require_admin
    def list_all(user_context: UserContext):
        query = {}
        if request.args.get(field):
            query[field] = _coerce(request.args.get(field), visible_value)
        return list_items(query)

    @blueprint.get('/<item_id>')
    @optional_auth
    def get_item(user_context: Optional[UserContext], path: ItemIdPath):
        item = load_item(path.item_id)
        if item.get(field) != visible_value and not is_staff(user_context):
            raise NotFoundException(f"{entity_name} not found")

        if count_views and not is_staff(user_context):
            current_app.mongodb_service.increment_by_id(collection, path.item_id, "views")
            item["views"] = item.get("views", 0) + 1

        return ResponseBuilder.success(item)

    @blueprint.post('')
    @require_admin
    def create_item(user_context: UserContext):
        body = {key: value for key, value in get_json_body().items() if key not in READ_ONLY_FIELDS}
        try:
            item = model.model_validate(body)
        except ValidationError as e:
            raise to_validation_exception(e)

        document = item.to_document()
        if document.get(field) == visible_value:
            document.update(publish_stamp(user_context))

        item_id = current_app.mongodb_service.create(collection, document, user_context.user_id)
        current_app.audit_middleware.log_action(
            f"{entity_name.upper()}_CREATED",
            f"Created {entity_name.lower()} {item_id}",
            entity=entity_name,
            entity_id=item_id,
            user_context=user_context
        )
        return ResponseBuilder.success(load_item(item_id), message=f"{entity_name} created successfully",
                                       status_code=201)

    @blueprint.put('/<item_id>')
    @require_admin
    def update_item(user_context: UserContext, path: ItemIdPath):
        existing = load_item(path.item_id)
        body = {key: value for key, value in get_json_body().items() if key not in READ_ONLY_FIELDS}
        if not body:
            raise ValidationException("No fields to update")

        try:
            merged = model.from_document({**existing, **body})
        except ValidationError as e:
            raise to_validation_exception(e)

        dumped = merged.model_dump(by_alias=True, exclude=ENTITY_FIELDS)
        updates = {key: dumped[key] for key in body if key in dumped}
        if not updates:
            raise ValidationException("No known fields to update")
        if updates.get(field) == visible_value and existing.get(field) != visible_value:
            updates.update(publish_stamp(user_context))

        current_app.mongodb_service.update_by_id(collection, path.item_id, updates, user_context.user_id)
        current_app.audit_middleware.log_action(
            f"{entity_name.upper()}_UPDATED",
            f"Updated {entity_name.lower()} {path.item_id}: {', '.join(sorted(updates))}",
            entity=entity_name,
            entity_id=path.item_id,
            user_context=user_context
        )
        return ResponseBuilder.success(load_item(path.item_id), message=f"{entity_name} updated successfully")

    @blueprint.put(f'/<item_id>/{toggle_path}')
    @require_admin
    def toggle_item(user_context: UserContext, path: ItemIdPath):
        item = load_item(path.item_id)
        now_visible = item.get(field) != visible_value
        updates = {field: visible_value if now_visible else hidden_value}
        if now_visible:
            updates.update(publish_stamp(user_context))

        current_app.mongodb_service.update_by_id(collection, path.item_id, updates, user_context.user_id)
        current_app.audit_middleware.log_action(
            f"{entity_name.upper()}_TOGGLED",
            f"Set {field} of {entity_name.lower()} {path.item_id} to {updates[field]}",
            entity=entity_name,
            entity_id=path.item_id,
            user_context=user_context
        )
        return ResponseBuilder.success(load_item(path.item_id),
                                       message=f"{entity_name} {'shown' if now_visible else 'hidden'}")

    @blueprint.delete('/<item_id>')
    @require_admin
    def delete_item(user_context: UserContext, path: ItemIdPath):
        load_item(path.item_id)
        current_app.mongodb_service.delete_by_id(collection, path.item_id)
        current_app.audit_middleware.log_action(
            f"{entity_name.upper()}_DELETED",
            f"Deleted {entity_name.lower()} {path.item_id}",
            entity=entity_name,
            entity_id=path.item_id,
            user_context=user_context
        )
        return ResponseBuilder.success(message=f"{entity_name} deleted successfully")

    return blueprint


def _coerce(raw: str, sample: Any) -> Any:
    """Interpret a query string value with the type of the visibility field."""
    if isinstance(sample, bool):
        return raw.lower() in ("true", "1", "yes", "on")
    return raw


announcements_bp = create_content_blueprint(
    'announcements', '/api/announcements', Announcement, "announcements", "Announcements",
    visibility=("status", AnnouncementStatus.PUBLISHED.value, AnnouncementStatus.DRAFT.value),
    toggle_path="publish",
    search_fields=("title", "content"),
    count_views=True,
    stamp_publish=True
)

officials_bp = create_content_blueprint(
    'officials', '/api/officials', Official, "officials", "Officials",
    visibility=("isActive", True, False),
    toggle_path="toggle-active",
    sort_by="displayOrder",
    sort_order=1,
    search_fields=("firstName", "lastName", "position")
)

services_bp = create_content_blueprint(
    'services', '/api/services', Service, "services", "Services",
    visibility=("isActive", True, False),
    toggle_path="toggle-active",
    sort_by="displayOrder",
    sort_order=1,
    search_fields=("title", "description")
)

faqs_bp = create_content_blueprint(
    'faqs', '/api/faqs', FAQ, "faqs", "FAQs",
    visibility=("isPublished", True, False),
    toggle_path="publish",
    sort_by="displayOrder",
    sort_order=1,
    search_fields=("question", "answer"),
    count_views=True
)
