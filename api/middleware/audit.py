# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Best-effort audit logging for state-changing operations.

Audit writes never fail the request that triggered them: any error is logged
to the operational log and swallowed here.
"""

import logging
from typing import Optional
from flask import g
from opentelemetry import trace

from services.audit import AuditService
from models.entities import UserContext

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AuditMiddleware:
    """Wraps AuditService so that logging failures stay out of the response path."""

    def __init__(self, audit_service: AuditService):
        """Initialize audit middleware with audit service dependency."""
        self.audit_service = audit_service
        logger.info("Audit middleware initialized")

    def log_action(
        self,
        action: str,
        description: str,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        user_context: Optional[UserContext] = None
    ) -> Optional[str]:
        """
        Log an audit action for the current user.

        Args:
            action: Action identifier
            description: Human-readable description
            entity: Type of entity being acted upon
            entity_id: ID of the specific entity
            user_context: Acting user; defaults to the one on ``g``

        Returns:
            Log entry ID if successful, None otherwise
        """
        with tracer.start_as_current_span("audit.best_effort") as span:
            span.set_attribute("audit.action", action)
            try:
                context = user_context or getattr(g, 'user_context', None)
                return self.audit_service.log_action(
                    action=action,
                    description=description,
                    user_context=context,
                    entity=entity,
                    entity_id=entity_id
                )

            except Exception as e:
                span.set_attribute("audit.result", "failed")
                logger.error(
                    "Failed to log audit action",
                    extra={
                        "action": action,
                        "entity": entity,
                        "entity_id": entity_id,
                        "error": str(e)
                    },
                    exc_info=True
                )
                return None
