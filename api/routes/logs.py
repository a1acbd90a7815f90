# SPDX-License-Identifier: Apache-2.0

"""
Audit log endpoints for querying and exporting the activity trail.
"""

import csv
import io
import logging
from datetime import datetime

from flask import Response, current_app, request
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from middleware.auth import require_admin, require_super_admin
from middleware.error_handler import NotFoundException, ValidationException
from middleware.validation import parse_query_params
from models.entities import UserContext
from models.requests import ItemIdPath, LogFilters, PaginationParams
from services.audit import AuditFilters
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COLLECTION = "logs"
EXPORT_LIMIT = 10000
CSV_FIELDS = ("timestamp", "action", "description", "performedBy", "performedByRole",
              "entity", "entityId", "ipAddress", "traceId")

logs_tag = Tag(name="Audit Logs", description="Activity trail")
logs_bp = APIBlueprint(
    'logs',
    __name__,
    url_prefix='/api/logs',
    abp_tags=[logs_tag]
)


def _audit_filters() -> AuditFilters:
    filters = parse_query_params(LogFilters)
    return AuditFilters(
        performed_by=filters.performed_by,
        entity=filters.entity,
        action=filters.action,
        start_date=filters.start_date,
        end_date=filters.end_date
    )


@logs_bp.get('')
@require_admin
def list_logs(user_context: UserContext):
    """Log entries newest first, filtered by action, user, entity and date range."""
    with tracer.start_as_current_span("logs.list") as span:
        pagination = parse_query_params(PaginationParams)
        filters = _audit_filters()

        result = current_app.audit_service.query_logs(filters, page=pagination.page, page_size=pagination.limit)
        span.set_attribute("audit.results", len(result.items))
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.paginated(result.items, result.to_dict())


@logs_bp.get('/statistics')
@require_admin
def log_statistics(user_context: UserContext):
    try:
        days = int(request.args.get('days', 30))
    except ValueError:
        raise ValidationException("Days parameter must be a number")
    if days <= 0 or days > 365:
        raise ValidationException("Days parameter must be between 1 and 365")

    return ResponseBuilder.success(current_app.audit_service.get_statistics(days))


@logs_bp.get('/export')
@require_admin
def export_logs(user_context: UserContext):
    """Download matching entries as CSV or JSON."""
    with tracer.start_as_current_span("logs.export") as span:
        format_type = request.args.get('format', 'csv').lower()
        if format_type not in ('csv', 'json'):
            raise ValidationException("Invalid format. Supported formats: json, csv")

        try:
            limit = int(request.args.get('limit', 1000))
        except ValueError:
            raise ValidationException("Invalid limit parameter")
        if limit <= 0 or limit > EXPORT_LIMIT:
            raise ValidationException(f"Limit must be between 1 and {EXPORT_LIMIT}")

        logs = current_app.audit_service.export_logs(_audit_filters(), limit=limit)
        span.set_attributes({"audit.export.format": format_type, "audit.export.records_count": len(logs)})

        filename = f"audit_logs_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.{format_type}"
        logger.info(
            "Audit logs exported",
            extra={"user_id": user_context.user_id, "format": format_type, "records_count": len(logs)}
        )

        if format_type == 'json':
            return ResponseBuilder.success(logs, count=len(logs), exportedAt=datetime.utcnow())

        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, extrasaction='ignore')
        writer.writeheader()
        for entry in logs:
            writer.writerow({
                field: entry[field].isoformat() if isinstance(entry.get(field), datetime) else entry.get(field, "")
                for field in CSV_FIELDS
            })

        return Response(
            output.getvalue(),
            mimetype='text/csv',
            headers={'Content-Disposition': f'attachment; filename="{filename}"'}
        )


@logs_bp.get('/<item_id>')
@require_admin
def get_log(user_context: UserContext, path: ItemIdPath):
    entry = current_app.mongodb_service.find_by_id(COLLECTION, path.item_id)
    if not entry:
        raise NotFoundException("Log entry not found")
    return ResponseBuilder.success(entry)


@logs_bp.delete('/<item_id>')
@require_super_admin
def delete_log(user_context: UserContext, path: ItemIdPath):
    if not current_app.mongodb_service.delete_by_id(COLLECTION, path.item_id):
        raise NotFoundException("Log entry not found")
    logger.warning("Audit log entry deleted", extra={"log_id": path.item_id, "user_id": user_context.user_id})
    return ResponseBuilder.success(message="Log entry deleted successfully")
