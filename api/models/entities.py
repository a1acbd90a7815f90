# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Barangay Records platform.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from domain.files import validate_attachment, summarize_attachment
from .base import ApiModel, BaseEntity
from .enums import (
    Role,
    DocumentType,
    RequestStatus,
    PaymentStatus,
    Gender,
    CivilStatus,
    BusinessApplicationType,
    RegistrationStatus,
    ProfileUpdateType,
    ProfileUpdateStatus,
    ProfileVerificationStatus,
    ReportCategory,
    ReportStatus,
    Priority,
    ContactCategory,
    ContactStatus,
    AnnouncementStatus,
    AnnouncementPriority,
    OfficialPosition,
    ServiceCategory,
    FAQCategory,
    SectorType,
    SectorStatus,
    get_role_name
)


PHOTO_REQUIRED_TYPES = (
    DocumentType.CLEARANCE.value,
    DocumentType.BUSINESS_PERMIT.value,
    DocumentType.BUSINESS_CLEARANCE.value,
)

BUSINESS_TYPES = (
    DocumentType.BUSINESS_PERMIT.value,
    DocumentType.BUSINESS_CLEARANCE.value,
)

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


# Embedded records

class Address(ApiModel):
    """Residential address; the locality fields are fixed to the barangay."""

    country: str = Field(default="Philippines")
    region: str = Field(default="National Capital Region")
    province: str = Field(default="Metro Manila")
    city: str = Field(default="Quezon City")
    barangay: str = Field(default="Culiat")
    postal_code: str = Field(default="1128")
    subdivision: Optional[str] = None
    street: Optional[str] = None
    house_number: Optional[str] = None
    area: Optional[str] = None


class EmergencyContact(ApiModel):
    full_name: Optional[str] = None
    relationship: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None


class BusinessInfo(ApiModel):
    """Business details required for business permits and clearances."""

    business_name: Optional[str] = None
    business_address: Optional[str] = None
    application_type: Optional[BusinessApplicationType] = None
    nature_of_business: Optional[str] = None
    owner_representative: Optional[str] = None
    owner_contact_number: Optional[str] = None
    representative_contact_number: Optional[str] = None


class FileAttachment(ApiModel):
    """Descriptor of a stored image file."""

    url: str = Field(..., description="Public URL or /uploads path")
    filename: Optional[str] = Field(None, description="Stored filename")
    original_name: Optional[str] = Field(None, description="Client filename")
    mime_type: str = Field(..., description="Content type")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)


# Document requests

class DocumentRequest(BaseEntity):
    """A resident's application for an official certificate or permit."""

    applicant: Optional[str] = Field(None, description="Owning user ID; None for staff-entered requests")

    # Personal snapshot captured at submission time
    last_name: str = Field(..., min_length=1, description="Applicant last name")
    first_name: str = Field(..., min_length=1, description="Applicant first name")
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    salutation: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    place_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    civil_status: Optional[CivilStatus] = None
    nationality: str = Field(default="Filipino")
    address: Address = Field(default_factory=Address)
    contact_number: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None

    # Request details
    document_type: DocumentType = Field(..., description="Requested document")
    business_info: Optional[BusinessInfo] = None
    purpose_of_request: Optional[str] = Field(None, max_length=500)
    preferred_pickup_date: Optional[datetime] = None
    remarks: Optional[str] = Field(None, max_length=1000)

    # Attachments
    photo1x1: Optional[FileAttachment] = None
    valid_id: Optional[FileAttachment] = Field(None, alias="validID")
    supporting_documents: List[FileAttachment] = Field(default_factory=list)

    # Workflow
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    # Payment
    fees: float = Field(default=0, ge=0, description="Base fee in PHP")
    payment_status: PaymentStatus = Field(default=PaymentStatus.UNPAID)
    payment_reference: Optional[str] = None
    payment_link: Optional[str] = None
    payment_amount: Optional[float] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    waived_reason: Optional[str] = None
    waived_by: Optional[str] = None
    waived_at: Optional[datetime] = None

    # Issuance
    control_number: Optional[str] = None
    verification_token: Optional[str] = None
    security_hash: Optional[str] = None
    verification_generated_at: Optional[datetime] = None

    created_by: Optional[str] = None

    @field_validator('last_name', 'first_name')
    @classmethod
    def validate_name(cls, v):
        """Names cannot be blank."""
        if not v.strip():
            raise ValueError('Name cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_requirements(self):
        """Enforce the conditional field and attachment rules for the document type."""
        errors = self.collect_requirement_errors()
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def collect_requirement_errors(self) -> List[str]:
        """List every violated requirement for this request."""
        errors = []

        if self.is_business_document():
            business = self.business_info or BusinessInfo()
            if not (business.business_name or "").strip():
                errors.append("Business name is required for business permits and clearances")
            if not (business.nature_of_business or "").strip():
                errors.append("Nature of business is required for business permits and clearances")

        if self.valid_id is None:
            errors.append("Valid ID is required")
        else:
            result = validate_attachment(self.valid_id.to_camel_dict())
            if not result.is_valid:
                errors.append(f"Valid ID validation failed: {', '.join(result.errors)}")

        if self.photo1x1 is None:
            if self.requires_photo():
                errors.append("Photo 1x1 is required for this document type")
        else:
            result = validate_attachment(self.photo1x1.to_camel_dict())
            if not result.is_valid:
                errors.append(f"Photo 1x1 validation failed: {', '.join(result.errors)}")

        for index, document in enumerate(self.supporting_documents, start=1):
            result = validate_attachment(document.to_camel_dict())
            if not result.is_valid:
                errors.append(f"Supporting document {index} validation failed: {', '.join(result.errors)}")

        return errors

    def is_business_document(self) -> bool:
        return self.document_type in BUSINESS_TYPES

    def requires_photo(self) -> bool:
        return self.document_type in PHOTO_REQUIRED_TYPES

    def has_required_documents(self) -> Tuple[bool, List[str]]:
        """Return whether every required attachment is present, and which are missing."""
        missing = []
        if self.valid_id is None:
            missing.append("validID")
        if self.requires_photo() and self.photo1x1 is None:
            missing.append("photo1x1")
        return not missing, missing

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name, self.suffix]
        return " ".join(part for part in parts if part).strip()

    @property
    def full_address(self) -> str:
        parts = [
            self.address.house_number,
            self.address.street,
            self.address.subdivision,
            self.address.barangay,
            self.address.city,
            self.address.province,
        ]
        return ", ".join(part for part in parts if part)

    def files_summary(self) -> Dict[str, Any]:
        """Summarize attached files for detail views."""
        valid_id = self.valid_id.to_camel_dict() if self.valid_id else None
        photo = self.photo1x1.to_camel_dict() if self.photo1x1 else None
        supporting = [document.to_camel_dict() for document in self.supporting_documents]

        files = [f for f in [valid_id, photo] if f] + supporting
        return {
            "validID": summarize_attachment(valid_id),
            "photo1x1": summarize_attachment(photo),
            "supportingDocuments": [summarize_attachment(doc) for doc in supporting],
            "totalFiles": len(files),
            "totalSize": sum(f.get("fileSize") or 0 for f in files),
        }


# Accounts

class PsaCompletion(ApiModel):
    """Deadline and reminder bookkeeping for the birth certificate requirement."""

    deadline: Optional[datetime] = None
    is_complete: bool = False
    first_reminder_sent: bool = False
    second_reminder_sent: bool = False
    final_reminder_sent: bool = False
    warning_dismissed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class VerificationState(ApiModel):
    """Latest birth certificate review outcome, copied onto the user."""

    status: ProfileVerificationStatus = Field(default=ProfileVerificationStatus.NONE)
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None


class User(BaseEntity):
    """Resident or staff account."""

    username: str = Field(..., min_length=3, max_length=50, description="Unique login name")
    email: str = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="bcrypt password hash")
    role: int = Field(default=Role.RESIDENT.value, description="Numeric role code")

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    middle_name: Optional[str] = None
    suffix: Optional[str] = None
    salutation: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    place_of_birth: Optional[str] = None
    gender: Optional[Gender] = None
    civil_status: Optional[CivilStatus] = None
    nationality: str = Field(default="Filipino")
    occupation: Optional[str] = None
    phone_number: Optional[str] = None
    address: Address = Field(default_factory=Address)
    emergency_contact: Optional[EmergencyContact] = None

    valid_id: Optional[FileAttachment] = Field(None, alias="validID")
    photo1x1: Optional[FileAttachment] = None

    registration_status: RegistrationStatus = Field(default=RegistrationStatus.PENDING)
    rejection_reason: Optional[str] = None
    is_active: bool = Field(default=True)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    birth_certificate: Optional[Dict[str, Any]] = None
    psa_completion: PsaCompletion = Field(default_factory=PsaCompletion)
    profile_verification: VerificationState = Field(default_factory=VerificationState)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        if not re.match(EMAIL_PATTERN, v.strip().lower()):
            raise ValueError('Invalid email format')
        return v.strip().lower()

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in [role.value for role in Role]:
            raise ValueError(f'Invalid role code: {v}')
        return v

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name, self.suffix]
        return " ".join(part for part in parts if part).strip()

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize without the password hash, adding the role name."""
        data = self.model_dump(by_alias=True, exclude={"password_hash"})
        data["roleName"] = get_role_name(self.role)
        return data


class UserContext(BaseModel):
    """User context for request processing with authentication data."""

    user_id: str = Field(..., description="Authenticated user ID")
    role: int = Field(..., description="Numeric role code")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="User display name")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")

    model_config = ConfigDict(
        use_enum_values=True
    )

    @property
    def role_name(self) -> str:
        return get_role_name(self.role)

    @property
    def is_admin(self) -> bool:
        """SuperAdmin and Admin both count as staff."""
        return self.role in (Role.SUPER_ADMIN.value, Role.ADMIN.value)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN.value

    def has_role(self, *roles: int) -> bool:
        """Check if the user holds any of the given role codes."""
        return self.role in [int(role) for role in roles]


class ProfileUpdate(BaseEntity):
    """Resident request to change profile data, applied after admin review."""

    user: str = Field(..., description="Requesting user ID")
    update_type: ProfileUpdateType
    status: ProfileUpdateStatus = Field(default=ProfileUpdateStatus.PENDING)
    old_data: Dict[str, Any] = Field(default_factory=dict)
    new_data: Dict[str, Any] = Field(...)
    changed_fields: List[Dict[str, Any]] = Field(default_factory=list)
    update_reason: Optional[str] = Field(None, max_length=500)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    applied_at: Optional[datetime] = None

    @field_validator('new_data')
    @classmethod
    def validate_new_data(cls, v):
        if not v:
            raise ValueError('New data cannot be empty')
        return v


class BirthCertificateData(ApiModel):
    """PSA birth certificate details submitted for review."""

    certificate_number: str = Field(..., min_length=1)
    registry_number: str = Field(..., min_length=1)
    date_issued: datetime
    place_of_registration: str = Field(..., min_length=1)
    father_first_name: str = Field(..., min_length=1)
    father_middle_name: Optional[str] = None
    father_last_name: str = Field(..., min_length=1)
    father_nationality: Optional[str] = None
    mother_first_name: str = Field(..., min_length=1)
    mother_middle_name: Optional[str] = None
    mother_maiden_last_name: str = Field(..., min_length=1)
    mother_nationality: Optional[str] = None
    document_url: str = Field(..., min_length=1)
    document_filename: Optional[str] = None


class ProfileVerification(BaseEntity):
    """A resident's birth certificate submission awaiting or past admin review."""

    user: str = Field(..., description="Submitting user ID")
    submitted_data: BirthCertificateData
    user_data_snapshot: Dict[str, Any] = Field(default_factory=dict)
    status: ProfileVerificationStatus = Field(default=ProfileVerificationStatus.PENDING)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v == ProfileVerificationStatus.NONE:
            raise ValueError('A submission cannot have status none')
        return v


# Audit trail

class LogEntry(BaseEntity):
    """Audit trail entry."""

    action: str = Field(..., min_length=1, description="Action identifier")
    description: str = Field(..., min_length=1, description="Human-readable description")
    performed_by: Optional[str] = Field(None, description="Acting user ID")
    performed_by_role: Optional[str] = Field(None, description="Acting user role name")
    entity: Optional[str] = Field(None, description="Entity type acted upon")
    entity_id: Optional[str] = Field(None, description="Entity ID acted upon")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


# Content

class Announcement(BaseEntity):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    category: str = Field(default="General")
    priority: AnnouncementPriority = Field(default=AnnouncementPriority.NORMAL)
    status: AnnouncementStatus = Field(default=AnnouncementStatus.DRAFT)
    location: Optional[str] = None
    image: Optional[str] = None
    event_date: Optional[datetime] = None
    publish_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    views: int = Field(default=0, ge=0)
    published_by: Optional[str] = None


class Official(BaseEntity):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    middle_name: Optional[str] = None
    position: OfficialPosition
    committee: Optional[str] = None
    is_active: bool = Field(default=True)
    contact_number: Optional[str] = None
    email: Optional[str] = None
    photo: Optional[str] = None
    bio: Optional[str] = None
    display_order: int = Field(default=0)


class Service(BaseEntity):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: ServiceCategory
    requirements: List[str] = Field(default_factory=list)
    processing_time: Optional[str] = None
    fees: Optional[str] = None
    office_in_charge: Optional[str] = None
    contact_person: Optional[str] = None
    contact_number: Optional[str] = None
    available_hours: Optional[str] = None
    is_active: bool = Field(default=True)
    display_order: int = Field(default=0)
    created_by: Optional[str] = None


class FAQ(BaseEntity):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: FAQCategory
    display_order: int = Field(default=0)
    is_published: bool = Field(default=True)
    views: int = Field(default=0, ge=0)
    created_by: Optional[str] = None


class BenefitRecord(ApiModel):
    benefit_type: str = Field(..., min_length=1)
    date_received: datetime = Field(default_factory=datetime.utcnow)
    amount: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None


class SectoralGroup(BaseEntity):
    """Membership of a resident in a sectoral program."""

    user_id: str = Field(..., description="Member user ID")
    sector_type: SectorType
    status: SectorStatus = Field(default=SectorStatus.PENDING)
    date_registered: datetime = Field(default_factory=datetime.utcnow)
    senior_citizen_id: Optional[str] = None
    pwd_id: Optional[str] = None
    disability_type: Optional[str] = None
    solo_parent_id: Optional[str] = None
    number_of_children: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None
    registered_by: Optional[str] = None
    benefits_received: List[BenefitRecord] = Field(default_factory=list)


class ReportComment(ApiModel):
    user: str
    comment: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Report(BaseEntity):
    """Resident incident or issue report."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: ReportCategory
    status: ReportStatus = Field(default=ReportStatus.PENDING)
    priority: Priority = Field(default=Priority.MEDIUM)
    location: Optional[str] = None
    images: List[FileAttachment] = Field(default_factory=list)
    reported_by: str = Field(..., description="Reporting user ID")
    assigned_to: Optional[str] = None
    comments: List[ReportComment] = Field(default_factory=list)
    is_private: bool = Field(default=False)


class ContactResponse(ApiModel):
    message: str = Field(..., min_length=1)
    responded_by: str
    responded_at: datetime = Field(default_factory=datetime.utcnow)


class ContactMessage(BaseEntity):
    """Message sent through the public contact form."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str
    phone_number: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    category: ContactCategory = Field(default=ContactCategory.GENERAL_INQUIRY)
    status: ContactStatus = Field(default=ContactStatus.NEW)
    priority: Priority = Field(default=Priority.MEDIUM)
    user_id: Optional[str] = None
    response: Optional[ContactResponse] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if not re.match(EMAIL_PATTERN, v.strip().lower()):
            raise ValueError('Invalid email format')
        return v.strip().lower()


class TermsAcceptance(BaseEntity):
    user_id: str
    terms_version: str = Field(..., min_length=1)
    accepted_at: datetime = Field(default_factory=datetime.utcnow)
    signature: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
