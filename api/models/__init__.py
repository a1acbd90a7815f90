# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Barangay Records API.
"""

# Base models
from .base import ApiModel, BaseEntity

# Enumerations
from .enums import (
    Role,
    DocumentType,
    RequestStatus,
    PaymentStatus,
    RegistrationStatus,
    VerificationPurpose,
    ProfileUpdateType,
    ProfileUpdateStatus
)

# Core entities
from .entities import (
    Address,
    EmergencyContact,
    BusinessInfo,
    FileAttachment,
    DocumentRequest,
    User,
    UserContext,
    ProfileUpdate,
    LogEntry,
    Announcement,
    Official,
    Service,
    FAQ,
    SectoralGroup,
    Report,
    ContactMessage,
    TermsAcceptance
)

__all__ = [
    # Base models
    "ApiModel",
    "BaseEntity",

    # Enumerations
    "Role",
    "DocumentType",
    "RequestStatus",
    "PaymentStatus",
    "RegistrationStatus",
    "VerificationPurpose",
    "ProfileUpdateType",
    "ProfileUpdateStatus",

    # Core entities
    "Address",
    "EmergencyContact",
    "BusinessInfo",
    "FileAttachment",
    "DocumentRequest",
    "User",
    "UserContext",
    "ProfileUpdate",
    "LogEntry",
    "Announcement",
    "Official",
    "Service",
    "FAQ",
    "SectoralGroup",
    "Report",
    "ContactMessage",
    "TermsAcceptance"
]
