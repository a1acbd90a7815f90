# SPDX-License-Identifier: Apache-2.0

"""
Birth certificate (PSA) verification of resident profiles.

Residents get a deadline at registration to submit their PSA birth
certificate. Staff review each submission; approval marks the profile
complete, rejection clears the stored certificate so the resident can
submit again.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from models.enums import ProfileVerificationStatus, Role


PSA_COMPLETION_DAYS = 90
APPROACHING_DAYS = 14

REQUIRED_FIELDS = (
    "certificateNumber",
    "registryNumber",
    "dateIssued",
    "placeOfRegistration",
    "fatherFirstName",
    "fatherLastName",
    "motherFirstName",
    "motherMaidenLastName",
)

SNAPSHOT_FIELDS = ("firstName", "lastName", "middleName", "dateOfBirth", "placeOfBirth")

# (reminder type, flag on psaCompletion, applies while days left is above this)
REMINDER_WINDOWS = (
    ("first", "firstReminderSent", 14, 30),
    ("second", "secondReminderSent", 7, 14),
    ("final", "finalReminderSent", 0, 7),
)

DEFAULT_CITIZENSHIP = "Filipino"


def initial_deadline(now: Optional[datetime] = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(days=PSA_COMPLETION_DAYS)


def missing_required_fields(data: Dict[str, Any]) -> List[str]:
    return [name for name in REQUIRED_FIELDS if not str(data.get(name) or "").strip()]


def is_profile_complete(user: Dict[str, Any]) -> bool:
    """
    A profile counts as complete once any core group of certificate data is present.

    The groups are: a registry number; the child's name and birth date; or both
    parents' first names.
    """
    certificate = user.get("birthCertificate") or {}
    if not certificate:
        return False

    child = certificate.get("yourInfo") or {}
    mother = (certificate.get("mother") or {}).get("maidenName") or {}
    father = (certificate.get("father") or {}).get("name") or {}

    has_registry = bool(certificate.get("registryNumber"))
    has_child = bool(child.get("firstName") and child.get("lastName") and child.get("dateOfBirth"))
    has_parents = bool(mother.get("firstName") and father.get("firstName"))
    return has_registry or has_child or has_parents


def days_until_deadline(user: Dict[str, Any], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days left before the deadline, rounded up; ``None`` when no deadline is set."""
    deadline = (user.get("psaCompletion") or {}).get("deadline")
    if not deadline:
        return None
    if isinstance(deadline, str):
        deadline = datetime.fromisoformat(deadline.replace("Z", ""))
    remaining = (deadline - (now or datetime.utcnow())).total_seconds()
    return math.ceil(remaining / 86400)


def is_deadline_approaching(days_left: Optional[int]) -> bool:
    return days_left is not None and 0 < days_left <= APPROACHING_DAYS


def is_deadline_passed(days_left: Optional[int]) -> bool:
    return days_left is not None and days_left <= 0


def completion_status(user: Dict[str, Any], has_pending: bool, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summary shown to a resident about their PSA requirement."""
    if user.get("role") != Role.RESIDENT.value:
        return {
            "requiresCompletion": False,
            "message": "PSA completion not required for admin users",
        }

    psa = user.get("psaCompletion") or {}
    verification = user.get("profileVerification") or {}
    complete = is_profile_complete(user)
    days_left = days_until_deadline(user, now)

    return {
        "requiresCompletion": bool(not complete and psa.get("deadline")),
        "isComplete": complete,
        "deadline": psa.get("deadline"),
        "daysLeft": days_left,
        "isApproaching": is_deadline_approaching(days_left),
        "isPassed": is_deadline_passed(days_left),
        "verificationStatus": verification.get("status") or ProfileVerificationStatus.NONE.value,
        "hasPendingVerification": has_pending,
        "rejectionReason": verification.get("rejectionReason"),
        "birthCertificate": user.get("birthCertificate"),
    }


def user_snapshot(user: Dict[str, Any]) -> Dict[str, Any]:
    """Personal fields at submission time, kept for side-by-side review."""
    return {name: user.get(name) for name in SNAPSHOT_FIELDS}


def birth_certificate_record(submitted: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Nested certificate record stored on the user from a submission."""
    return {
        "certificateNumber": submitted.get("certificateNumber"),
        "registryNumber": submitted.get("registryNumber"),
        "dateIssued": submitted.get("dateIssued"),
        "placeOfRegistration": submitted.get("placeOfRegistration"),
        "mother": {
            "maidenName": {
                "firstName": submitted.get("motherFirstName"),
                "middleName": submitted.get("motherMiddleName"),
                "lastName": submitted.get("motherMaidenLastName"),
            },
            "citizenship": submitted.get("motherNationality") or DEFAULT_CITIZENSHIP,
        },
        "father": {
            "name": {
                "firstName": submitted.get("fatherFirstName"),
                "middleName": submitted.get("fatherMiddleName"),
                "lastName": submitted.get("fatherLastName"),
            },
            "citizenship": submitted.get("fatherNationality") or DEFAULT_CITIZENSHIP,
        },
        "documentUrl": submitted.get("documentUrl"),
        "documentFilename": submitted.get("documentFilename"),
        "documentUploadedAt": now or datetime.utcnow(),
    }


def verification_state(status: str, submitted_at: Optional[datetime] = None,
                       reviewed_by: Optional[str] = None, rejection_reason: Optional[str] = None,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    """The ``profileVerification`` sub-document written onto the user."""
    reviewed = status != ProfileVerificationStatus.PENDING.value
    return {
        "status": status,
        "submittedAt": submitted_at or (now or datetime.utcnow()),
        "reviewedAt": (now or datetime.utcnow()) if reviewed else None,
        "reviewedBy": reviewed_by if reviewed else None,
        "rejectionReason": rejection_reason,
    }


def due_reminder(user: Dict[str, Any], now: Optional[datetime] = None) -> Optional[Tuple[str, str, int]]:
    """
    Pick the deadline reminder a resident should get now, if any.

    Returns:
        (reminder type, psaCompletion flag to set, days left), or ``None``
    """
    psa = user.get("psaCompletion") or {}
    if psa.get("isComplete") or not psa.get("deadline"):
        return None

    days_left = days_until_deadline(user, now)
    if days_left is None or days_left <= 0:
        return None

    for reminder_type, flag, lower, upper in REMINDER_WINDOWS:
        if lower < days_left <= upper:
            if psa.get(flag):
                return None
            return reminder_type, flag, days_left
    return None
