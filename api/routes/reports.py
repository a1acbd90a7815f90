# SPDX-License-Identifier: Apache-2.0

"""
Resident incident reports.
"""

import logging
from typing import Any, Dict

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import ValidationError

from middleware.auth import require_admin, require_auth
from middleware.error_handler import AuthorizationException, NotFoundException
from middleware.validation import parse_json_body, parse_query_params, to_validation_exception
from models.entities import Report, ReportComment, UserContext
from models.requests import (
    AddCommentRequest,
    CreateReportRequest,
    ItemIdPath,
    PaginationParams,
    ReportFilters,
    UpdateReportStatusRequest,
)
from routes.content import is_staff
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)

COLLECTION = "reports"

reports_tag = Tag(name="Reports", description="Resident incident reports")
reports_bp = APIBlueprint(
    'reports',
    __name__,
    url_prefix='/api/reports',
    abp_tags=[reports_tag]
)


def _load_report(report_id: str) -> Dict[str, Any]:
    report = current_app.mongodb_service.find_by_id(COLLECTION, report_id)
    if not report:
        raise NotFoundException("Report not found")
    return report


def _check_access(report: Dict[str, Any], user_context: UserContext, action: str) -> None:
    if report.get("reportedBy") != user_context.user_id and not is_staff(user_context):
        raise AuthorizationException(f"Not authorized to {action} this report")


@reports_bp.post('')
@require_auth
def create_report(user_context: UserContext):
    body = parse_json_body(CreateReportRequest)
    try:
        report = Report(**body.model_dump(), reported_by=user_context.user_id)
    except ValidationError as e:
        raise to_validation_exception(e)

    current_app.mongodb_service.create(COLLECTION, report.to_document(), user_context.user_id)
    current_app.audit_middleware.log_action(
        "REPORT_CREATED",
        f"Filed {report.category} report: {report.title}",
        entity="Report",
        entity_id=report.id,
        user_context=user_context
    )
    return ResponseBuilder.success(_load_report(report.id), message="Report created successfully", status_code=201)


@reports_bp.get('')
@require_admin
def list_reports(user_context: UserContext):
    filters = parse_query_params(ReportFilters)
    pagination = parse_query_params(PaginationParams)

    query = filters.model_dump(by_alias=True, exclude_none=True)
    result = current_app.mongodb_service.paginate(
        COLLECTION, page=pagination.page, page_size=pagination.limit, filters=query
    )
    return ResponseBuilder.paginated(result.items, result.to_dict())


@reports_bp.get('/my-reports')
@require_auth
def my_reports(user_context: UserContext):
    reports = current_app.mongodb_service.find(COLLECTION, {"reportedBy": user_context.user_id})
    return ResponseBuilder.success(reports, count=len(reports))


@reports_bp.get('/<item_id>')
@require_auth
def get_report(user_context: UserContext, path: ItemIdPath):
    report = _load_report(path.item_id)
    _check_access(report, user_context, "view")
    return ResponseBuilder.success(report)


@reports_bp.put('/<item_id>/status')
@require_admin
def update_report_status(user_context: UserContext, path: ItemIdPath):
    """Change status, optionally assigning staff and recording a comment."""
    body = parse_json_body(UpdateReportStatusRequest)
    report = _load_report(path.item_id)

    updates: Dict[str, Any] = {"status": body.status}
    if body.assigned_to:
        updates["assignedTo"] = body.assigned_to

    mongo = current_app.mongodb_service
    if body.comment:
        comment = ReportComment(user=user_context.user_id, comment=body.comment)
        mongo.push_by_id(COLLECTION, path.item_id, "comments", comment.to_camel_dict(), updates=updates)
    else:
        mongo.update_by_id(COLLECTION, path.item_id, updates, user_context.user_id)

    current_app.audit_middleware.log_action(
        "REPORT_STATUS_UPDATED",
        f"Report {path.item_id} moved from {report.get('status')} to {body.status}",
        entity="Report",
        entity_id=path.item_id,
        user_context=user_context
    )
    return ResponseBuilder.success(_load_report(path.item_id), message="Report updated successfully")


@reports_bp.post('/<item_id>/comments')
@require_auth
def add_comment(user_context: UserContext, path: ItemIdPath):
    body = parse_json_body(AddCommentRequest)
    report = _load_report(path.item_id)
    _check_access(report, user_context, "comment on")

    comment = ReportComment(user=user_context.user_id, comment=body.comment)
    current_app.mongodb_service.push_by_id(COLLECTION, path.item_id, "comments", comment.to_camel_dict())
    return ResponseBuilder.success(_load_report(path.item_id), message="Comment added successfully")


@reports_bp.delete('/<item_id>')
@require_admin
def delete_report(user_context: UserContext, path: ItemIdPath):
    _load_report(path.item_id)
    current_app.mongodb_service.delete_by_id(COLLECTION, path.item_id)
    current_app.audit_middleware.log_action(
        "REPORT_DELETED",
        f"Deleted report {path.item_id}",
        entity="Report",
        entity_id=path.item_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="Report deleted successfully")
