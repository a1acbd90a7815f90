# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Barangay Records platform.
"""

from enum import Enum


class Role(int, Enum):
    """Numeric role codes carried in user records and access tokens."""
    SUPER_ADMIN = 74932
    ADMIN = 74933
    RESIDENT = 74934


ROLE_NAMES = {
    Role.SUPER_ADMIN: "SuperAdmin",
    Role.ADMIN: "Admin",
    Role.RESIDENT: "Resident",
}


def get_role_name(role_code) -> str:
    """Return the display name for a role code, or 'Unknown'."""
    try:
        return ROLE_NAMES[Role(int(role_code))]
    except (ValueError, TypeError):
        return "Unknown"


class DocumentType(str, Enum):
    """Documents a resident can request."""
    INDIGENCY = "indigency"
    RESIDENCY = "residency"
    CLEARANCE = "clearance"
    BUSINESS_PERMIT = "business_permit"
    BUSINESS_CLEARANCE = "business_clearance"
    GOOD_MORAL = "good_moral"
    BARANGAY_ID = "barangay_id"
    LIQUOR_PERMIT = "liquor_permit"
    MISSIONARY = "missionary"
    REHAB = "rehab"
    CTC = "ctc"
    BUILDING_PERMIT = "building_permit"


class RequestStatus(str, Enum):
    """Document request workflow status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Document request payment status."""
    UNPAID = "unpaid"
    PAID = "paid"
    WAIVED = "waived"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNSPECIFIED = "unspecified"


class CivilStatus(str, Enum):
    SINGLE = "single"
    MARRIED = "married"
    WIDOWED = "widowed"
    SEPARATED = "separated"
    DIVORCED = "divorced"


class BusinessApplicationType(str, Enum):
    NEW = "new"
    RENEWAL = "renewal"


class RegistrationStatus(str, Enum):
    """Resident account approval status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VerificationPurpose(str, Enum):
    """Profile changes that require an emailed verification code."""
    PASSWORD = "password"
    EMAIL = "email"
    USERNAME = "username"
    PHONE = "phone"
    NAME = "name"


class ProfileUpdateType(str, Enum):
    PERSONAL_INFO = "personal_info"
    CONTACT_INFO = "contact_info"
    ADDRESS = "address"
    EMERGENCY_CONTACT = "emergency_contact"
    ADDITIONAL_INFO = "additional_info"


class ProfileUpdateStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProfileVerificationStatus(str, Enum):
    """Review state of a birth certificate submission; users start at none."""
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReportCategory(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    SAFETY = "safety"
    HEALTH = "health"
    SANITATION = "sanitation"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ContactCategory(str, Enum):
    GENERAL_INQUIRY = "general_inquiry"
    DOCUMENT_REQUEST = "document_request"
    COMPLAINT = "complaint"
    SUGGESTION = "suggestion"
    EMERGENCY = "emergency"
    OTHER = "other"


class ContactStatus(str, Enum):
    NEW = "new"
    READ = "read"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    SPAM = "spam"


class AnnouncementStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class AnnouncementPriority(str, Enum):
    NORMAL = "normal"
    IMPORTANT = "important"
    URGENT = "urgent"


class OfficialPosition(str, Enum):
    BARANGAY_CAPTAIN = "barangay_captain"
    BARANGAY_KAGAWAD = "barangay_kagawad"
    SK_CHAIRMAN = "sk_chairman"
    BARANGAY_SECRETARY = "barangay_secretary"
    BARANGAY_TREASURER = "barangay_treasurer"
    ADMINISTRATIVE_OFFICER = "administrative_officer"
    DEPUTY_OFFICER = "deputy_officer"
    OTHER = "other"


class ServiceCategory(str, Enum):
    DOCUMENT_ISSUANCE = "document_issuance"
    PERMITS_CLEARANCE = "permits_clearance"
    HEALTH_SERVICES = "health_services"
    SOCIAL_SERVICES = "social_services"
    EMERGENCY_SERVICES = "emergency_services"
    PUBLIC_SAFETY = "public_safety"
    OTHER = "other"


class FAQCategory(str, Enum):
    GENERAL = "general"
    DOCUMENTS = "documents"
    SERVICES = "services"
    PERMITS = "permits"
    COMPLAINTS = "complaints"
    PROGRAMS = "programs"
    OTHER = "other"


class SectorType(str, Enum):
    SENIOR = "senior"
    WOMEN_CHILDREN = "women_children"
    SOLO_PARENT = "solo_parent"
    PWD = "pwd"


class SectorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
