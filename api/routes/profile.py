# SPDX-License-Identifier: Apache-2.0

"""
Self-service profile changes.

Sensitive fields (password, email, username, phone, name) change only after
the user confirms a six-digit code sent by email.
"""

import logging
import re
from typing import Any, Dict, Optional

from flask import current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from middleware.auth import require_auth
from middleware.error_handler import (
    AuthenticationException,
    ConflictException,
    UpstreamServiceException,
    ServiceUnavailableException,
    ValidationException,
)
from middleware.validation import parse_json_body
from models.entities import EMAIL_PATTERN, UserContext
from models.enums import VerificationPurpose
from models.requests import BasicProfileRequest, RequestVerificationRequest, VerifyAndUpdateRequest
from routes.auth import USERS, MIN_PASSWORD_LENGTH, load_user, public_user
from services.email import EmailDeliveryError
from services.mongodb import DuplicateDocumentError
from services.verification_codes import VerificationCodeError
from utils.request import ResponseBuilder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

profile_tag = Tag(name="Profile", description="Self-service profile changes")
profile_bp = APIBlueprint(
    'profile',
    __name__,
    url_prefix='/api/profile',
    abp_tags=[profile_tag]
)

SUMMARY_FIELDS = ("id", "username", "email", "firstName", "lastName", "middleName", "phoneNumber")


def _ensure_available(field: str, value: str, user_id: str, message: str) -> None:
    other = current_app.mongodb_service.find_one(USERS, {field: value})
    if other and other["id"] != user_id:
        raise ConflictException(message)


@profile_bp.get('/admin')
@require_auth
def get_own_profile(user_context: UserContext):
    return ResponseBuilder.success(public_user(load_user(user_context.user_id)))


@profile_bp.put('/basic')
@require_auth
def update_basic_profile(user_context: UserContext):
    """Update address and birth details; no code needed."""
    body = parse_json_body(BasicProfileRequest)
    updates = body.model_dump(by_alias=True, exclude_unset=True)
    if not updates:
        raise ValidationException("No profile fields provided")

    load_user(user_context.user_id)
    current_app.mongodb_service.update_by_id(USERS, user_context.user_id, updates, user_context.user_id)

    current_app.audit_middleware.log_action(
        "PROFILE_UPDATED",
        "Basic profile information updated",
        entity="User",
        entity_id=user_context.user_id,
        user_context=user_context
    )
    return ResponseBuilder.success(public_user(load_user(user_context.user_id)),
                                   message="Profile updated successfully")


@profile_bp.post('/request-verification')
@require_auth
def request_verification_code(user_context: UserContext):
    """
    Email a verification code for a profile change.

    For an email change the code goes to the new address, otherwise to the
    current one. A new request replaces any earlier code for the same purpose.
    """
    with tracer.start_as_current_span("profile.request_verification") as span:
        body = parse_json_body(RequestVerificationRequest)
        if not body.purpose:
            raise ValidationException("Purpose is required")

        purpose = body.purpose
        span.set_attribute("verification.purpose", purpose)
        user = load_user(user_context.user_id)

        new_value = body.new_value.strip() if isinstance(body.new_value, str) else body.new_value
        if purpose == VerificationPurpose.EMAIL.value and new_value:
            new_value = new_value.lower()
            if not re.match(EMAIL_PATTERN, new_value):
                raise ValidationException("Invalid email format")
            _ensure_available("email", new_value, user["id"], "Email already in use by another account")
        if purpose == VerificationPurpose.USERNAME.value and new_value:
            _ensure_available("username", new_value, user["id"], "Username already taken")

        target_email = new_value if purpose == VerificationPurpose.EMAIL.value and new_value else user["email"]

        codes = current_app.verification_code_service
        try:
            code = codes.issue(user["id"], purpose, new_value)
        except VerificationCodeError as e:
            raise ServiceUnavailableException(e.message)

        try:
            current_app.email_service.send_verification_code(target_email, code, purpose, name=user.get("firstName"))
        except EmailDeliveryError as e:
            current_app.redis_service.delete(codes.key_for(user["id"], purpose))
            span.set_status(Status(StatusCode.ERROR, "email delivery failed"))
            raise UpstreamServiceException(
                "Failed to send verification code. Please check email configuration.",
                str(e) if current_app.config['ENVIRONMENT'] == 'development' else None
            )

        current_app.audit_middleware.log_action(
            "VERIFICATION_CODE_REQUESTED",
            f"Verification code requested for {purpose} change",
            entity="User",
            entity_id=user["id"],
            user_context=user_context
        )

        return ResponseBuilder.success(
            message=f"Verification code sent to {target_email}",
            expiresIn=codes.ttl
        )


def _name_changes(body: VerifyAndUpdateRequest, stored_value: Any) -> Dict[str, Any]:
    source: Dict[str, Any] = {}
    for candidate in (stored_value, body.new_value):
        if isinstance(candidate, dict):
            source.update(candidate)
    for key, value in (("firstName", body.first_name), ("lastName", body.last_name),
                       ("middleName", body.middle_name), ("suffix", body.suffix)):
        if value is not None:
            source[key] = value

    if not source.get("firstName") or not source.get("lastName"):
        raise ValidationException("First name and last name are required")

    return {key: source[key] for key in ("firstName", "lastName", "middleName", "suffix") if key in source}


def _build_changes(purpose: str, body: VerifyAndUpdateRequest, user: Dict[str, Any],
                   stored_value: Optional[Any]) -> Dict[str, Any]:
    """Translate a verified request into user field updates."""
    new_value = body.new_value if body.new_value is not None else stored_value

    if purpose == VerificationPurpose.PASSWORD.value:
        new_password = body.new_password or (new_value if isinstance(new_value, str) else None)
        if not new_password or not body.current_password:
            raise ValidationException("Current password and new password are required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationException(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        auth_service = current_app.auth_service
        if not auth_service.verify_password(body.current_password, user.get("passwordHash", "")):
            raise AuthenticationException("Current password is incorrect", error="invalid_password")
        return {"passwordHash": auth_service.hash_password(new_password)}

    if purpose == VerificationPurpose.EMAIL.value:
        if not new_value:
            raise ValidationException("New email is required")
        email = str(new_value).strip().lower()
        _ensure_available("email", email, user["id"], "Email already in use by another account")
        return {"email": email}

    if purpose == VerificationPurpose.USERNAME.value:
        if not new_value:
            raise ValidationException("New username is required")
        _ensure_available("username", str(new_value).strip(), user["id"], "Username already taken")
        return {"username": str(new_value).strip()}

    if purpose == VerificationPurpose.PHONE.value:
        if not new_value:
            raise ValidationException("New phone number is required")
        return {"phoneNumber": str(new_value).strip()}

    return _name_changes(body, stored_value)


@profile_bp.post('/verify-and-update')
@require_auth
def verify_and_update(user_context: UserContext):
    """Check the emailed code and apply the change it was issued for."""
    with tracer.start_as_current_span("profile.verify_and_update") as span:
        body = parse_json_body(VerifyAndUpdateRequest)
        if not body.purpose or not body.code:
            raise ValidationException("Purpose and verification code are required")

        purpose = body.purpose
        span.set_attribute("verification.purpose", purpose)
        user = load_user(user_context.user_id)

        result = current_app.verification_code_service.check(user["id"], purpose, body.code.strip())
        if not result.valid:
            span.set_attribute("verification.result", "rejected")
            response = {"success": False, "message": result.message, "error": "verification_failed"}
            if result.attempts_left is not None:
                response["attemptsLeft"] = result.attempts_left
            return response, 400

        changes = _build_changes(purpose, body, user, result.new_value)

        try:
            current_app.mongodb_service.update_by_id(USERS, user["id"], changes, user["id"])
        except DuplicateDocumentError:
            raise ConflictException(f"That {purpose} is already in use")

        current_app.audit_middleware.log_action(
            "PROFILE_VERIFIED_UPDATE",
            f"{purpose} updated successfully",
            entity="User",
            entity_id=user["id"],
            user_context=user_context
        )
        span.set_status(Status(StatusCode.OK))

        updated = load_user(user["id"])
        return ResponseBuilder.success(
            {key: updated.get(key) for key in SUMMARY_FIELDS},
            message=f"{purpose.capitalize() if purpose != 'phone' else 'Phone number'} updated successfully"
        )
