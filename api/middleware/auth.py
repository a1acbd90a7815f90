# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

This module provides Flask decorators that validate bearer tokens, check the
logout blocklist, build the user context and enforce role codes.
"""

from functools import wraps
from flask import request, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from middleware.error_handler import AuthenticationException, AuthorizationException
from models.entities import UserContext
from models.enums import Role, get_role_name
from services.auth import TokenValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

STAFF_ROLES = (Role.SUPER_ADMIN.value, Role.ADMIN.value)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking, and user context
    building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from the Authorization header.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        Returns:
            True if token is blocked, False otherwise
        """
        if not self.redis_service or not self.redis_service.is_available():
            return False

        try:
            token_id = self.auth_service.extract_token_id(token)
        except TokenValidationError:
            return True
        return self.redis_service.is_token_blocked(token_id)

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """
        Build user context from validated token payload and request information.

        Returns:
            UserContext object for request processing
        """
        return UserContext(
            user_id=token_payload["sub"],
            role=int(token_payload.get("role") or Role.RESIDENT.value),
            email=token_payload.get("email"),
            name=token_payload.get("name"),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent"),
            session_id=request_info.get("session_id")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for user context."""
        return {
            "ip_address": request.headers.get('X-Forwarded-For', request.remote_addr or '').split(',')[0].strip(),
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID'),
            "request_id": request.headers.get('X-Request-ID')
        }

    def authenticate(self) -> UserContext:
        """
        Validate the request token and store the user context on ``g``.

        Raises:
            AuthenticationException: token missing, revoked or invalid
        """
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            span.set_attribute("auth.operation", "validate_request")

            token = self.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                raise AuthenticationException("Not authorized, no token")

            if self.is_token_blocked(token):
                span.set_attribute("auth.result", "token_blocked")
                logger.warning("Authentication failed: token is blocked")
                raise AuthenticationException("Token has been revoked", error="token_revoked")

            try:
                token_payload = self.auth_service.validate_token(token)
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {str(e)}")
                raise AuthenticationException("Not authorized, token failed", error=str(e))

            user_context = self.build_user_context(token_payload, self.get_request_info())
            g.user_context = user_context
            g.auth_token = token

            span.set_attributes({
                "auth.result": "success",
                "user.id": user_context.user_id,
                "user.role": user_context.role_name
            })
            return user_context


def require_auth(f: Callable) -> Callable:
    """Require a valid bearer token; the route receives the user context first."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_context = current_app.auth_middleware.authenticate()
        return f(user_context, *args, **kwargs)

    return decorated_function


def require_roles(*roles: int) -> Callable:
    """
    Require a valid token whose role code is one of ``roles``.

    Args:
        roles: Allowed numeric role codes
    """
    allowed = [int(role) for role in roles]

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_context = current_app.auth_middleware.authenticate()

            with tracer.start_as_current_span("auth.middleware.check_role") as span:
                span.set_attributes({
                    "auth.operation": "check_role",
                    "user.id": user_context.user_id,
                    "user.role": user_context.role_name
                })

                if user_context.role not in allowed:
                    span.set_attribute("auth.role_result", "denied")
                    logger.warning(
                        "Authorization failed: role not allowed",
                        extra={
                            "user_id": user_context.user_id,
                            "role": user_context.role_name,
                            "allowed_roles": [get_role_name(role) for role in allowed]
                        }
                    )
                    raise AuthorizationException(
                        f"User role {user_context.role_name} is not authorized to access this route"
                    )

                span.set_attribute("auth.role_result", "granted")

            return f(user_context, *args, **kwargs)

        return decorated_function
    return decorator


require_admin = require_roles(*STAFF_ROLES)
require_super_admin = require_roles(Role.SUPER_ADMIN.value)


def optional_auth(f: Callable) -> Callable:
    """Pass the user context when a valid token is present, otherwise None."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_context = None
        auth_middleware = current_app.auth_middleware

        if auth_middleware.extract_token_from_request():
            try:
                user_context = auth_middleware.authenticate()
            except AuthenticationException as e:
                logger.debug(f"Ignoring invalid token on optional auth route: {e.message}")

        return f(user_context, *args, **kwargs)

    return decorated_function
