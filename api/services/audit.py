# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit service for action logging with OpenTelemetry correlation.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from opentelemetry import trace

from .mongodb import MongoDBService, PaginationResult
from models.entities import LogEntry, UserContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AuditFilters:
    """Filters for audit log queries."""

    def __init__(
        self,
        performed_by: Optional[str] = None,
        entity: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        entity_id: Optional[str] = None
    ):
        self.performed_by = performed_by
        self.entity = entity
        self.action = action
        self.start_date = start_date
        self.end_date = end_date
        self.entity_id = entity_id

    def to_mongo_query(self) -> Dict[str, Any]:
        """Convert filters to MongoDB query."""
        query = {}

        if self.performed_by:
            query["performedBy"] = self.performed_by

        if self.entity:
            query["entity"] = self.entity

        if self.action:
            query["action"] = self.action

        if self.entity_id:
            query["entityId"] = self.entity_id

        if self.start_date or self.end_date:
            date_filter = {}
            if self.start_date:
                date_filter["$gte"] = self.start_date
            if self.end_date:
                date_filter["$lte"] = self.end_date
            query["timestamp"] = date_filter

        return query


class AuditService:
    """Service for audit logging into the ``logs`` collection."""

    def __init__(self, mongo_service: MongoDBService):
        """Initialize audit service with MongoDB dependency."""
        self.mongo_service = mongo_service
        self.collection_name = "logs"
        logger.info("Audit service initialized")

    def log_action(
        self,
        action: str,
        description: str,
        user_context: Optional[UserContext] = None,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None
    ) -> str:
        """
        Write one audit trail entry with trace correlation.

        Args:
            action: Action identifier, e.g. ``DOCUMENT_REQUEST_CREATED``
            description: Human-readable description
            user_context: Acting user with request details (optional)
            entity: Type of entity acted upon
            entity_id: ID of the entity

        Returns:
            ID of the created log entry
        """
        with tracer.start_as_current_span("audit.log_action") as span:
            try:
                span_context = span.get_span_context()

                entry = LogEntry(
                    action=action,
                    description=description,
                    entity=entity,
                    entity_id=entity_id
                )

                if span_context.is_valid:
                    entry.trace_id = format(span_context.trace_id, "032x")
                    entry.span_id = format(span_context.span_id, "016x")

                if user_context:
                    entry.performed_by = user_context.user_id
                    entry.performed_by_role = user_context.role_name
                    entry.ip_address = user_context.ip_address
                    entry.user_agent = user_context.user_agent

                span.set_attributes({
                    "audit.action": action,
                    "audit.entity": entity or "",
                    "audit.entity_id": entity_id or ""
                })

                log_id = self.mongo_service.create(self.collection_name, entry.to_document())

                logger.info(
                    "Audit trail entry created",
                    extra={
                        "log_id": log_id,
                        "action": action,
                        "entity": entity,
                        "entity_id": entity_id,
                        "user_id": entry.performed_by,
                        "trace_id": entry.trace_id,
                        "audit_category": "business_action"
                    }
                )

                return log_id

            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Failed to create audit trail entry",
                    extra={
                        "action": action,
                        "entity": entity,
                        "entity_id": entity_id,
                        "error": str(e)
                    },
                    exc_info=True
                )
                raise

    def query_logs(self, filters: AuditFilters, page: int = 1, page_size: int = 20) -> PaginationResult:
        """Query log entries, newest first."""
        with tracer.start_as_current_span("audit.query_logs") as span:
            query = filters.to_mongo_query()
            span.set_attributes({
                "audit.page": page,
                "audit.page_size": page_size,
                "audit.filter_count": len(query)
            })

            return self.mongo_service.paginate(
                collection=self.collection_name,
                page=page,
                page_size=page_size,
                filters=query,
                sort_by="timestamp",
                sort_order=-1
            )

    def export_logs(self, filters: AuditFilters, limit: int = 1000) -> List[Dict[str, Any]]:
        """Matching entries, newest first, capped at ``limit``."""
        with tracer.start_as_current_span("audit.export_logs") as span:
            logs = self.mongo_service.find(
                self.collection_name,
                filters.to_mongo_query(),
                sort_by="timestamp",
                limit=limit
            )
            span.set_attribute("audit.export.records_count", len(logs))
            return logs

    def get_statistics(self, days: int = 30) -> Dict[str, Any]:
        """
        Summarize the last ``days`` days of activity.

        Returns:
            Totals per action and entity, and the most active users
        """
        since = datetime.utcnow() - timedelta(days=days)
        match = {"$match": {"timestamp": {"$gte": since}}}

        def grouped(field: str, limit: int = 0) -> List[Dict[str, Any]]:
            pipeline = [match, {"$group": {"_id": f"${field}", "count": {"$sum": 1}}}, {"$sort": {"count": -1}}]
            if limit:
                pipeline.append({"$limit": limit})
            return [
                {"name": row["_id"], "count": row["count"]}
                for row in self.mongo_service.aggregate(self.collection_name, pipeline)
                if row["_id"] is not None
            ]

        actions = grouped("action")
        return {
            "periodDays": days,
            "since": since,
            "totalActions": sum(row["count"] for row in actions),
            "actions": actions,
            "entities": grouped("entity"),
            "topUsers": grouped("performedBy", limit=10),
        }


def get_audit_service(mongo_service: MongoDBService) -> AuditService:
    """Create an audit service bound to a MongoDB service."""
    return AuditService(mongo_service)
