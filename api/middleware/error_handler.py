# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with a uniform JSON error shape.
Every failure leaves the API as ``{"success": false, "message", "error"}``.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from pydantic import ValidationError
from typing import Any, Dict, List, Optional, Tuple
from opentelemetry import trace
import logging
import traceback

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class ApiException(Exception):
    """Base class for application exceptions rendered as JSON errors."""

    def __init__(self, message: str, status_code: int = 500, error: Any = "application_error"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message, "error": self.error}


class ValidationException(ApiException):
    """Exception for validation errors."""

    def __init__(self, message: str, validation_errors: Optional[List[Dict[str, Any]]] = None,
                 error: str = "validation_error"):
        super().__init__(message, 400, error)
        self.validation_errors = validation_errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.validation_errors:
            data["errors"] = self.validation_errors
        return data


class AuthenticationException(ApiException):
    """Exception for authentication errors."""

    def __init__(self, message: str, error: str = "authentication_required"):
        super().__init__(message, 401, error)


class AuthorizationException(ApiException):
    """Exception for authorization errors."""

    def __init__(self, message: str, error: str = "forbidden"):
        super().__init__(message, 403, error)


class NotFoundException(ApiException):
    """Exception for resource not found errors."""

    def __init__(self, message: str, error: str = "not_found"):
        super().__init__(message, 404, error)


class ConflictException(ApiException):
    """Exception for state and uniqueness conflicts."""

    def __init__(self, message: str, error: str = "conflict"):
        super().__init__(message, 409, error)


class UpstreamServiceException(ApiException):
    """Exception for payment gateway or mail failures; carries the upstream payload."""

    def __init__(self, message: str, upstream_error: Any = None):
        super().__init__(message, 500, upstream_error if upstream_error is not None else "upstream_error")


class ServiceUnavailableException(ApiException):
    """Exception for service unavailable errors."""

    def __init__(self, message: str, error: str = "service_unavailable"):
        super().__init__(message, 503, error)


class ErrorHandlerMiddleware:
    """Centralized error handling middleware."""

    def __init__(self, app: Flask):
        self.app = app
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(ApiException)
        def handle_api_exception(error):
            return self.handle_api_exception(error)

        @self.app.errorhandler(ValidationError)
        def handle_pydantic_error(error):
            from middleware.validation import to_validation_exception
            return self.handle_api_exception(to_validation_exception(error))

        @self.app.errorhandler(400)
        def handle_bad_request(error):
            return self.handle_client_error(error, "bad_request", "Bad Request")

        @self.app.errorhandler(401)
        def handle_unauthorized(error):
            return self.handle_client_error(error, "authentication_required", "Authentication Required")

        @self.app.errorhandler(403)
        def handle_forbidden(error):
            return self.handle_client_error(error, "forbidden", "Forbidden")

        @self.app.errorhandler(404)
        def handle_not_found(error):
            return self.handle_client_error(error, "not_found", "Resource Not Found")

        @self.app.errorhandler(405)
        def handle_method_not_allowed(error):
            return self.handle_client_error(error, "method_not_allowed", "Method Not Allowed")

        @self.app.errorhandler(409)
        def handle_conflict(error):
            return self.handle_client_error(error, "conflict", "Resource Conflict")

        @self.app.errorhandler(413)
        def handle_payload_too_large(error):
            return self.handle_client_error(error, "payload_too_large", "Payload Too Large")

        @self.app.errorhandler(422)
        def handle_unprocessable_entity(error):
            return self.handle_client_error(error, "validation_error", "Validation Error")

        @self.app.errorhandler(500)
        def handle_internal_server_error(error):
            return self.handle_server_error(error, "internal_error", "Internal Server Error")

        @self.app.errorhandler(503)
        def handle_service_unavailable(error):
            return self.handle_server_error(error, "service_unavailable", "Service Unavailable")

        # Handle generic exceptions
        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            if isinstance(error, HTTPException):
                if error.code and error.code >= 500:
                    return self.handle_server_error(error, "server_error", error.name)
                return self.handle_client_error(error, "http_error", error.name)
            return self.handle_unexpected_error(error)

    def handle_api_exception(self, error: ApiException) -> Tuple[Any, int]:
        """Render an application exception."""
        with tracer.start_as_current_span("error_handler.api_exception") as span:
            span.set_attributes({
                "error.class": error.__class__.__name__,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"API error: {error.message}",
                extra={
                    "error_class": error.__class__.__name__,
                    "status_code": error.status_code,
                    "path": request.path,
                    "method": request.method
                }
            )

            return jsonify(error.to_dict()), error.status_code

    def handle_client_error(
        self,
        error: HTTPException,
        error_type: str,
        title: str
    ) -> Tuple[Any, int]:
        """
        Handle client errors (4xx status codes).

        Args:
            error: HTTP exception
            error_type: Error type identifier
            title: Error title

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.client_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": error.code,
                "http.method": request.method,
                "http.path": request.path
            })

            detail = str(error.description) if error.description else title

            logger.warning(
                f"Client error: {title}",
                extra={
                    "error_type": error_type,
                    "status_code": error.code,
                    "detail": detail,
                    "path": request.path,
                    "method": request.method,
                    "user_agent": request.headers.get('User-Agent'),
                    "ip_address": request.remote_addr
                }
            )

            return jsonify({"success": False, "message": title, "error": detail}), error.code

    def handle_server_error(
        self,
        error: HTTPException,
        error_type: str,
        title: str
    ) -> Tuple[Any, int]:
        """Handle server errors (5xx status codes)."""
        with tracer.start_as_current_span("error_handler.server_error") as span:
            span.set_attributes({
                "error.type": error_type,
                "error.status": error.code,
                "http.method": request.method,
                "http.path": request.path
            })

            detail = str(error.description) if error.description else title

            logger.error(
                f"Server error: {title}",
                extra={
                    "error_type": error_type,
                    "status_code": error.code,
                    "detail": detail,
                    "path": request.path,
                    "method": request.method
                },
                exc_info=True
            )

            # Don't expose internal error details in production
            if self.app.config.get('ENVIRONMENT') == 'production':
                detail = "An internal server error occurred"

            return jsonify({"success": False, "message": title, "error": detail}), error.code

    def handle_unexpected_error(self, error: Exception) -> Tuple[Any, int]:
        """
        Handle unexpected exceptions not caught by specific handlers.

        Args:
            error: Unexpected exception

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected_error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_type": "unexpected_error",
                    "error_class": error.__class__.__name__,
                    "error_message": str(error),
                    "path": request.path,
                    "method": request.method,
                    "user_agent": request.headers.get('User-Agent'),
                    "ip_address": request.remote_addr,
                    "traceback": traceback.format_exc()
                },
                exc_info=True
            )

            detail = "An unexpected error occurred"
            if self.app.config.get('ENVIRONMENT') != 'production':
                detail = f"{error.__class__.__name__}: {str(error)}"

            return jsonify({"success": False, "message": "Internal server error", "error": detail}), 500
