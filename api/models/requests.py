# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator

from .base import ApiModel
from .entities import Address, EmergencyContact, BusinessInfo, FileAttachment, EMAIL_PATTERN
from .enums import (
    DocumentType,
    RequestStatus,
    Gender,
    CivilStatus,
    VerificationPurpose,
    ProfileUpdateType,
    ReportStatus,
    ContactStatus,
    ContactCategory,
    Priority,
    ReportCategory,
    SectorStatus,
    SectorType,
    Role
)


# Path parameters

class RequestIdPath(BaseModel):
    request_id: str = Field(..., description="Document request ID")


class UserIdPath(BaseModel):
    user_id: str = Field(..., description="User ID")


class ItemIdPath(BaseModel):
    item_id: str = Field(..., description="Resource ID")


class TokenPath(BaseModel):
    token: str = Field(..., description="Verification token")


class ControlNumberPath(BaseModel):
    control_number: str = Field(..., description="Document control number")


# Document requests

class CreateDocumentRequest(ApiModel):
    """
    Request model for submitting a document request.

    With ``auto_fill`` (the default) personal and address fields are copied
    from the requester's profile; anything supplied here overrides them.
    Staff may submit on behalf of a walk-in applicant by setting
    ``auto_fill`` to false and providing the applicant fields.
    """

    document_type: DocumentType = Field(..., description="Requested document")
    auto_fill: bool = Field(default=True, description="Copy personal fields from the profile")
    use_stored_valid_id: bool = Field(default=False, alias="useStoredValidID")
    use_stored_photo1x1: bool = Field(default=False)

    last_name: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    salutation: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    place_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    civil_status: Optional[CivilStatus] = None
    nationality: Optional[str] = None
    address: Optional[Address] = None
    contact_number: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None

    business_info: Optional[BusinessInfo] = None
    purpose_of_request: Optional[str] = Field(None, max_length=500)
    preferred_pickup_date: Optional[datetime] = None
    remarks: Optional[str] = Field(None, max_length=1000)

    photo1x1: Optional[FileAttachment] = None
    valid_id: Optional[FileAttachment] = Field(None, alias="validID")
    supporting_documents: List[FileAttachment] = Field(default_factory=list)


class UpdateDocumentRequest(ApiModel):
    """Owner edits to a pending request. Identity fields are checked separately."""

    document_type: Optional[DocumentType] = None
    applicant: Optional[str] = None
    status: Optional[RequestStatus] = None

    last_name: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    salutation: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    place_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    civil_status: Optional[CivilStatus] = None
    nationality: Optional[str] = None
    address: Optional[Address] = None
    contact_number: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None

    business_info: Optional[BusinessInfo] = None
    purpose_of_request: Optional[str] = Field(None, max_length=500)
    preferred_pickup_date: Optional[datetime] = None
    remarks: Optional[str] = Field(None, max_length=1000)

    photo1x1: Optional[FileAttachment] = None
    valid_id: Optional[FileAttachment] = Field(None, alias="validID")
    supporting_documents: Optional[List[FileAttachment]] = None


class UpdateStatusRequest(ApiModel):
    """Admin status change."""

    status: str = Field(..., description="Target status")
    rejection_reason: Optional[str] = Field(None, max_length=500)
    remarks: Optional[str] = Field(None, max_length=1000)


class DocumentRequestFilters(ApiModel):
    status: Optional[RequestStatus] = None
    document_type: Optional[DocumentType] = None
    applicant: Optional[str] = None
    payment_status: Optional[str] = None
    search: Optional[str] = Field(None, description="Match name or control number")
    start_date: Optional[datetime] = Field(None, description="Created on or after (ISO format)")
    end_date: Optional[datetime] = Field(None, description="Created on or before (ISO format)")


# Payments

class CreatePaymentLinkRequest(ApiModel):
    request_id: str = Field(..., min_length=1, description="Document request ID")


class ConfirmPaymentRequest(ApiModel):
    payment_method: str = Field(default="cash", min_length=1)
    reference_number: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class WaivePaymentRequest(ApiModel):
    reason: str = Field(..., description="Reason for the waiver")

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        if not v.strip():
            raise ValueError('Waiver reason is required')
        return v.strip()


# Accounts

class RegisterRequest(ApiModel):
    """Resident self-registration."""

    username: str = Field(..., min_length=3, max_length=50, description="Login name")
    email: str = Field(..., description="Email address")
    password: str = Field(..., min_length=6, description="Password")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    salutation: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    place_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    civil_status: Optional[CivilStatus] = None
    nationality: Optional[str] = None
    occupation: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    valid_id: Optional[FileAttachment] = Field(None, alias="validID")
    photo1x1: Optional[FileAttachment] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        if not re.match(EMAIL_PATTERN, v.strip().lower()):
            raise ValueError('Invalid email format')
        return v.strip().lower()

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        if not re.match(r'^[A-Za-z0-9_.-]+$', v):
            raise ValueError('Username may contain only letters, numbers, dots, dashes and underscores')
        return v


class AdminRegisterRequest(RegisterRequest):
    """Staff account creation by a SuperAdmin."""

    role: int = Field(default=Role.ADMIN.value, description="Numeric role code")

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in [role.value for role in Role]:
            raise ValueError(f'Invalid role code: {v}')
        return v


class LoginRequest(ApiModel):
    """Login by username or email."""

    username: Optional[str] = Field(None, description="Username or email")
    email: Optional[str] = Field(None, description="Email address")
    password: Optional[str] = Field(None, description="Password")


class ChangePasswordRequest(ApiModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class UpdateProfileRequest(ApiModel):
    """Fields a resident may change directly without review."""

    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    salutation: Optional[str] = None
    occupation: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    valid_id: Optional[FileAttachment] = Field(None, alias="validID")
    photo1x1: Optional[FileAttachment] = None


class RejectRegistrationRequest(ApiModel):
    reason: Optional[str] = Field(None, max_length=500)


class UserFilters(ApiModel):
    role: Optional[int] = None
    registration_status: Optional[str] = Field(None, alias="status")
    search: Optional[str] = None


# Email verification codes

class RequestVerificationRequest(ApiModel):
    purpose: Optional[VerificationPurpose] = None
    new_value: Optional[str] = None


class VerifyAndUpdateRequest(ApiModel):
    purpose: Optional[VerificationPurpose] = None
    code: Optional[str] = None
    new_value: Optional[Any] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    suffix: Optional[str] = None


# Profile update requests

class SubmitProfileUpdateRequest(ApiModel):
    update_type: ProfileUpdateType
    new_data: Dict[str, Any] = Field(..., description="Proposed values")
    update_reason: Optional[str] = Field(None, max_length=500)

    @field_validator('new_data')
    @classmethod
    def validate_new_data(cls, v):
        if not v:
            raise ValueError('New data cannot be empty')
        return v


class ReviewProfileUpdateRequest(ApiModel):
    review_notes: Optional[str] = Field(None, max_length=500)
    rejection_reason: Optional[str] = Field(None, max_length=500)


# Profile verification

class SubmitProfileVerificationRequest(ApiModel):
    """Birth certificate fields; the scan comes as a file part or a previously uploaded URL."""

    certificate_number: Optional[str] = None
    registry_number: Optional[str] = None
    date_issued: Optional[datetime] = None
    place_of_registration: Optional[str] = None
    father_first_name: Optional[str] = None
    father_middle_name: Optional[str] = None
    father_last_name: Optional[str] = None
    father_nationality: Optional[str] = None
    mother_first_name: Optional[str] = None
    mother_middle_name: Optional[str] = None
    mother_maiden_last_name: Optional[str] = None
    mother_nationality: Optional[str] = None
    document_url: Optional[str] = None


class ReviewProfileVerificationRequest(ApiModel):
    admin_notes: Optional[str] = Field(None, max_length=500)
    rejection_reason: Optional[str] = Field(None, max_length=500)


class ProfileVerificationFilters(ApiModel):
    status: Optional[str] = Field(None, description="Filter by status; 'all' disables the filter")


# Audit log

class LogFilters(ApiModel):
    """Filters for audit log queries."""

    action: Optional[str] = Field(None, description="Filter by action")
    performed_by: Optional[str] = Field(None, description="Filter by acting user ID")
    entity: Optional[str] = Field(None, description="Filter by entity type")
    start_date: Optional[datetime] = Field(None, description="Filter from date (ISO format)")
    end_date: Optional[datetime] = Field(None, description="Filter to date (ISO format)")


# Reports and contact messages

class CreateReportRequest(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: ReportCategory
    priority: Priority = Field(default=Priority.MEDIUM)
    location: Optional[str] = None
    images: List[FileAttachment] = Field(default_factory=list)
    is_private: bool = Field(default=False)


class UpdateReportStatusRequest(ApiModel):
    status: ReportStatus
    comment: Optional[str] = Field(None, max_length=1000)
    assigned_to: Optional[str] = None


class CreateContactMessageRequest(ApiModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str
    phone_number: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    category: Optional[ContactCategory] = None


class UpdateContactStatusRequest(ApiModel):
    status: Optional[ContactStatus] = None
    priority: Optional[Priority] = None


class RespondContactRequest(ApiModel):
    message: str = Field(..., min_length=1, max_length=5000)


# Settings and terms

class AcceptTermsRequest(ApiModel):
    terms_version: Optional[str] = Field(None, description="Defaults to the current version")
    signature: Optional[str] = Field(None, description="Drawn signature as a data URL")


class PaginationParams(BaseModel):
    """Pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=10, ge=1, le=100, description="Items per page")


class BasicProfileRequest(ApiModel):
    """Personal details a user may change without a verification code."""

    address: Optional[Address] = None
    date_of_birth: Optional[datetime] = None
    place_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    civil_status: Optional[CivilStatus] = None


class ProfileUpdateFilters(ApiModel):
    status: Optional[str] = None
    update_type: Optional[ProfileUpdateType] = None
    search: Optional[str] = Field(None, description="Match requester name or email")


class ReportFilters(ApiModel):
    status: Optional[ReportStatus] = None
    category: Optional[ReportCategory] = None
    priority: Optional[Priority] = None


class ContactFilters(ApiModel):
    status: Optional[ContactStatus] = None
    category: Optional[ContactCategory] = None
    priority: Optional[Priority] = None
    search: Optional[str] = None


class UpdateSettingsRequest(ApiModel):
    """Settings sections; each given section is merged into the stored one."""

    site_info: Optional[Dict[str, Any]] = None
    contact_info: Optional[Dict[str, Any]] = None
    social_media: Optional[Dict[str, Any]] = None
    theme: Optional[Dict[str, Any]] = None
    system: Optional[Dict[str, Any]] = None


# Sectoral groups

class RegisterSectorRequest(ApiModel):
    user_id: str = Field(..., min_length=1)
    sector_type: SectorType
    status: SectorStatus = Field(default=SectorStatus.ACTIVE)
    senior_citizen_id: Optional[str] = None
    pwd_id: Optional[str] = None
    disability_type: Optional[str] = None
    solo_parent_id: Optional[str] = None
    number_of_children: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class UpdateSectorRequest(ApiModel):
    status: Optional[SectorStatus] = None
    senior_citizen_id: Optional[str] = None
    pwd_id: Optional[str] = None
    disability_type: Optional[str] = None
    solo_parent_id: Optional[str] = None
    number_of_children: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class AddBenefitRequest(ApiModel):
    benefit_type: str = Field(..., min_length=1)
    date_received: Optional[datetime] = None
    amount: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None


class SectorTypePath(BaseModel):
    sector_type: SectorType = Field(..., description="Sector")


class AddCommentRequest(ApiModel):
    comment: str = Field(..., min_length=1, max_length=1000)
