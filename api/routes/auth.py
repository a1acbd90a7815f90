# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Account endpoints: registration with admin approval, login, profile,
password change, logout and staff account management.
"""

import logging
from datetime import datetime
from typing import Any, Dict

from flask import request, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from domain import profile_verification as verification_rules
from middleware.auth import require_auth, require_admin, require_super_admin
from middleware.error_handler import (
    AuthenticationException,
    AuthorizationException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from middleware.validation import parse_json_body, parse_query_params, to_validation_exception
from models.entities import User, UserContext
from models.enums import RegistrationStatus, Role, get_role_name
from models.requests import (
    AdminRegisterRequest,
    ChangePasswordRequest,
    LoginRequest,
    PaginationParams,
    RegisterRequest,
    RejectRegistrationRequest,
    UpdateProfileRequest,
    UserFilters,
    UserIdPath,
)
from services.email import EmailDeliveryError
from services.mongodb import DuplicateDocumentError
from utils.request import ResponseBuilder, build_search_filter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

USERS = "users"
MIN_PASSWORD_LENGTH = 6
HIDDEN_FIELDS = {"passwordHash": 0}

auth_tag = Tag(name="Authentication", description="Accounts, login and registration approval")
auth_bp = APIBlueprint(
    'auth',
    __name__,
    url_prefix='/api/auth',
    abp_tags=[auth_tag]
)


def public_user(document: Dict[str, Any]) -> Dict[str, Any]:
    """Stored user without the password hash, with the role name added."""
    data = {key: value for key, value in document.items() if key != "passwordHash"}
    data["roleName"] = get_role_name(document.get("role"))
    return data


def load_user(user_id: str) -> Dict[str, Any]:
    user = current_app.mongodb_service.find_by_id(USERS, user_id)
    if not user:
        raise NotFoundException("User not found")
    return user


def _create_account(body: RegisterRequest, role: int, registration_status: str,
                    created_by: str = None) -> User:
    mongo = current_app.mongodb_service

    existing = mongo.find_one(USERS, {"$or": [{"username": body.username}, {"email": body.email}]})
    if existing:
        raise ConflictException("User with this username or email already exists")

    data = body.model_dump(by_alias=True, exclude_none=True, exclude={"password", "role"})
    data.update({
        "passwordHash": current_app.auth_service.hash_password(body.password),
        "role": role,
        "registrationStatus": registration_status,
    })
    if registration_status == RegistrationStatus.APPROVED.value:
        data["approvedBy"] = created_by
        data["approvedAt"] = datetime.utcnow()
    if role == Role.RESIDENT.value:
        data["psaCompletion"] = {"deadline": verification_rules.initial_deadline()}

    try:
        user = User.model_validate(data)
    except ValidationError as e:
        raise to_validation_exception(e)

    try:
        mongo.create(USERS, user.to_document(), created_by)
    except DuplicateDocumentError:
        raise ConflictException("User with this username or email already exists")

    return user


@auth_bp.post('/register')
def register():
    """Resident self-registration; the account stays pending until an admin approves it."""
    with tracer.start_as_current_span("auth.register") as span:
        body = parse_json_body(RegisterRequest)
        user = _create_account(body, Role.RESIDENT.value, RegistrationStatus.PENDING.value)

        span.set_attribute("user.id", user.id)
        logger.info("Resident registered", extra={"user_id": user.id, "username": user.username})

        current_app.audit_middleware.log_action(
            "USER_REGISTERED",
            f"New resident registration: {user.username}",
            entity="User",
            entity_id=user.id
        )

        return ResponseBuilder.success(
            user.to_public_dict(),
            message="Registration submitted. Please wait for admin approval.",
            status_code=201
        )


@auth_bp.post('/login')
def login():
    """
    Authenticate by username or email and return a bearer token.

    Pending and rejected registrations cannot log in.
    """
    with tracer.start_as_current_span(
        "auth.login",
        attributes={"operation": "login", "ip_address": request.remote_addr or ""}
    ) as span:
        body = parse_json_body(LoginRequest)
        identifier = (body.username or body.email or "").strip()

        if not identifier or not body.password:
            raise ValidationException("Please provide username/email and password")

        user = current_app.mongodb_service.find_one(
            USERS,
            {"$or": [{"username": identifier}, {"email": identifier.lower()}]}
        )

        if not user or not current_app.auth_service.verify_password(body.password, user.get("passwordHash", "")):
            span.set_status(Status(StatusCode.ERROR, "Invalid credentials"))
            logger.warning("Login failed", extra={"identifier": identifier, "ip_address": request.remote_addr})
            raise AuthenticationException("Invalid credentials", error="authentication_failed")

        registration_status = user.get("registrationStatus")
        if registration_status == RegistrationStatus.PENDING.value:
            raise AuthorizationException(
                "Your registration is pending approval. Please wait for an administrator to review it.",
                error="registration_pending"
            )
        if registration_status == RegistrationStatus.REJECTED.value:
            reason = user.get("rejectionReason")
            message = "Your registration has been rejected"
            raise AuthorizationException(f"{message}: {reason}" if reason else message, error="registration_rejected")
        if user.get("isActive") is False:
            raise AuthorizationException("Your account has been deactivated", error="account_inactive")

        token = current_app.auth_service.generate_token(user)
        current_app.mongodb_service.update_by_id(USERS, user["id"], {"lastLogin": datetime.utcnow()})

        context = UserContext(user_id=user["id"], role=user.get("role"), email=user.get("email"),
                              ip_address=request.remote_addr)
        current_app.audit_middleware.log_action(
            "USER_LOGIN",
            f"{user.get('username')} logged in",
            entity="User",
            entity_id=user["id"],
            user_context=context
        )

        span.set_attributes({"user.id": user["id"], "user.role": get_role_name(user.get("role"))})
        span.set_status(Status(StatusCode.OK))

        return ResponseBuilder.success(
            {
                "user": public_user(user),
                "token": token["token"],
                "tokenType": token["token_type"],
                "expiresAt": token["expires_at"]
            },
            message="Login successful",
            token=token["token"]
        )


@auth_bp.get('/me')
@require_auth
def get_me(user_context: UserContext):
    return ResponseBuilder.success(public_user(load_user(user_context.user_id)))


@auth_bp.put('/profile')
@require_auth
def update_profile(user_context: UserContext):
    """Update the contact and address fields a resident may change without review."""
    body = parse_json_body(UpdateProfileRequest)
    updates = body.model_dump(by_alias=True, exclude_unset=True)
    if not updates:
        raise ValidationException("No profile fields provided")

    load_user(user_context.user_id)
    current_app.mongodb_service.update_by_id(USERS, user_context.user_id, updates, user_context.user_id)

    current_app.audit_middleware.log_action(
        "PROFILE_UPDATED",
        f"Updated profile fields: {', '.join(sorted(updates))}",
        entity="User",
        entity_id=user_context.user_id,
        user_context=user_context
    )
    return ResponseBuilder.success(public_user(load_user(user_context.user_id)), message="Profile updated successfully")


@auth_bp.put('/change-password')
@require_auth
def change_password(user_context: UserContext):
    body = parse_json_body(ChangePasswordRequest)
    if not body.current_password or not body.new_password:
        raise ValidationException("Please provide current and new password")
    if len(body.new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationException(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    user = load_user(user_context.user_id)
    auth_service = current_app.auth_service
    if not auth_service.verify_password(body.current_password, user.get("passwordHash", "")):
        raise AuthenticationException("Current password is incorrect", error="invalid_password")

    current_app.mongodb_service.update_by_id(
        USERS, user_context.user_id, {"passwordHash": auth_service.hash_password(body.new_password)},
        user_context.user_id
    )

    current_app.audit_middleware.log_action(
        "PASSWORD_CHANGED",
        "Password changed",
        entity="User",
        entity_id=user_context.user_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="Password changed successfully")


@auth_bp.post('/logout')
@require_auth
def logout(user_context: UserContext):
    """Block the current token until it would have expired."""
    payload = user_context.token_payload or {}
    jti = payload.get("jti")
    redis_service = current_app.redis_service

    if jti and payload.get("exp"):
        if not redis_service.add_to_blocklist(jti, int(payload["exp"])):
            logger.warning("Token could not be blocklisted on logout", extra={"user_id": user_context.user_id})

    current_app.audit_middleware.log_action(
        "USER_LOGOUT",
        "Logged out",
        entity="User",
        entity_id=user_context.user_id,
        user_context=user_context
    )
    return ResponseBuilder.success(message="Logged out successfully")


@auth_bp.post('/admin/register')
@require_super_admin
def register_staff(user_context: UserContext):
    """Create an approved account with any role (SuperAdmin only)."""
    body = parse_json_body(AdminRegisterRequest)
    user = _create_account(body, body.role, RegistrationStatus.APPROVED.value, created_by=user_context.user_id)

    current_app.audit_middleware.log_action(
        "STAFF_ACCOUNT_CREATED",
        f"Created {get_role_name(user.role)} account {user.username}",
        entity="User",
        entity_id=user.id,
        user_context=user_context
    )
    return ResponseBuilder.success(user.to_public_dict(), message="Account created successfully", status_code=201)


@auth_bp.get('/users')
@require_admin
def list_users(user_context: UserContext):
    filters = parse_query_params(UserFilters)
    pagination = parse_query_params(PaginationParams)

    query: Dict[str, Any] = {}
    if filters.role is not None:
        query["role"] = filters.role
    if filters.registration_status:
        query["registrationStatus"] = filters.registration_status
    query.update(build_search_filter(filters.search, ("username", "email", "firstName", "lastName")))

    result = current_app.mongodb_service.paginate(
        USERS, page=pagination.page, page_size=pagination.limit, filters=query, projection=HIDDEN_FIELDS
    )
    return ResponseBuilder.paginated([public_user(doc) for doc in result.items], result.to_dict())


@auth_bp.get('/pending-registrations')
@require_admin
def list_pending_registrations(user_context: UserContext):
    users = current_app.mongodb_service.find(
        USERS,
        {"registrationStatus": RegistrationStatus.PENDING.value},
        projection=HIDDEN_FIELDS
    )
    return ResponseBuilder.success([public_user(doc) for doc in users], count=len(users))


def _notify_registration(user: Dict[str, Any], approved: bool, reason: str = None) -> None:
    try:
        current_app.email_service.send_registration_result(
            user["email"], approved, name=user.get("firstName"), reason=reason
        )
    except EmailDeliveryError as e:
        logger.warning("Registration notice not sent", extra={"user_id": user["id"], "error": str(e)})


@auth_bp.put('/approve-registration/<user_id>')
@require_admin
def approve_registration(user_context: UserContext, path: UserIdPath):
    user = load_user(path.user_id)
    if user.get("registrationStatus") != RegistrationStatus.PENDING.value:
        raise ValidationException("Registration is not pending")

    current_app.mongodb_service.update_by_id(
        USERS,
        path.user_id,
        {
            "registrationStatus": RegistrationStatus.APPROVED.value,
            "approvedBy": user_context.user_id,
            "approvedAt": datetime.utcnow(),
            "rejectionReason": None
        },
        user_context.user_id
    )
    _notify_registration(user, approved=True)

    current_app.audit_middleware.log_action(
        "REGISTRATION_APPROVED",
        f"Approved registration of {user.get('username')}",
        entity="User",
        entity_id=path.user_id,
        user_context=user_context
    )
    return ResponseBuilder.success(public_user(load_user(path.user_id)), message="Registration approved")


@auth_bp.put('/reject-registration/<user_id>')
@require_admin
def reject_registration(user_context: UserContext, path: UserIdPath):
    body = parse_json_body(RejectRegistrationRequest, allow_empty=True)
    user = load_user(path.user_id)
    if user.get("registrationStatus") != RegistrationStatus.PENDING.value:
        raise ValidationException("Registration is not pending")

    reason = body.reason or "No reason provided"
    current_app.mongodb_service.update_by_id(
        USERS,
        path.user_id,
        {"registrationStatus": RegistrationStatus.REJECTED.value, "rejectionReason": reason},
        user_context.user_id
    )
    _notify_registration(user, approved=False, reason=reason)

    current_app.audit_middleware.log_action(
        "REGISTRATION_REJECTED",
        f"Rejected registration of {user.get('username')}: {reason}",
        entity="User",
        entity_id=path.user_id,
        user_context=user_context
    )
    return ResponseBuilder.success(public_user(load_user(path.user_id)), message="Registration rejected")
