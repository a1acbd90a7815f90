# SPDX-License-Identifier: Apache-2.0

"""
Document request lifecycle rules.

Pure functions for fee lookup, the status transition table, owner edit and
delete rules, profile auto-fill and issuance numbering. Persistence and HTTP
concerns live in the routes and services that call these.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.entities import DocumentRequest, UserContext
from models.enums import DocumentType, RequestStatus, PaymentStatus


FEE_TABLE: Dict[str, float] = {
    DocumentType.INDIGENCY.value: 0,
    DocumentType.RESIDENCY.value: 50,
    DocumentType.CLEARANCE.value: 100,
    DocumentType.BUSINESS_PERMIT.value: 500,
    DocumentType.BUSINESS_CLEARANCE.value: 200,
    DocumentType.GOOD_MORAL.value: 75,
    DocumentType.BARANGAY_ID.value: 150,
    DocumentType.LIQUOR_PERMIT.value: 300,
    DocumentType.MISSIONARY.value: 50,
    DocumentType.REHAB.value: 50,
    DocumentType.CTC.value: 50,
    DocumentType.BUILDING_PERMIT.value: 500,
}

DOCUMENT_LABELS: Dict[str, str] = {
    DocumentType.INDIGENCY.value: "Certificate of Indigency",
    DocumentType.RESIDENCY.value: "Certificate of Residency",
    DocumentType.CLEARANCE.value: "Barangay Clearance",
    DocumentType.BUSINESS_PERMIT.value: "Business Permit",
    DocumentType.BUSINESS_CLEARANCE.value: "Business Clearance",
    DocumentType.GOOD_MORAL.value: "Good Moral Certificate",
    DocumentType.BARANGAY_ID.value: "Barangay ID",
    DocumentType.LIQUOR_PERMIT.value: "Liquor Permit",
    DocumentType.MISSIONARY.value: "Missionary Certificate",
    DocumentType.REHAB.value: "Rehabilitation Certificate",
    DocumentType.CTC.value: "Community Tax Certificate",
    DocumentType.BUILDING_PERMIT.value: "Building Permit",
}

# Gateway surcharge on top of the base fee, and the gateway minimum charge
COMMISSION_RATE = 0.025
MINIMUM_PAYMENT = 50.0

ALLOWED_TRANSITIONS: Dict[str, tuple] = {
    RequestStatus.PENDING.value: (
        RequestStatus.APPROVED.value,
        RequestStatus.REJECTED.value,
        RequestStatus.CANCELLED.value,
        RequestStatus.COMPLETED.value,
    ),
    RequestStatus.APPROVED.value: (
        RequestStatus.COMPLETED.value,
        RequestStatus.CANCELLED.value,
    ),
    RequestStatus.COMPLETED.value: (),
    RequestStatus.REJECTED.value: (),
    RequestStatus.CANCELLED.value: (),
}

OWNER_EDITABLE_STATUSES = (RequestStatus.PENDING.value,)
ISSUED_STATUSES = (RequestStatus.APPROVED.value, RequestStatus.COMPLETED.value)
PROTECTED_FIELDS = ("documentType", "applicant", "status")

# Personal snapshot fields copied from a user profile
PROFILE_FIELDS = (
    "lastName",
    "firstName",
    "middleName",
    "suffix",
    "salutation",
    "dateOfBirth",
    "placeOfBirth",
    "gender",
    "civilStatus",
    "nationality",
    "address",
    "emergencyContact",
)


@dataclass
class RuleCheck:
    """Outcome of a lifecycle rule check."""
    allowed: bool
    reason: Optional[str] = None
    errors: List[str] = field(default_factory=list)


def get_fee(document_type: str) -> float:
    """
    Look up the base fee in PHP for a document type.

    Raises:
        ValueError: if the document type is unknown
    """
    if document_type not in FEE_TABLE:
        raise ValueError(f"Invalid document type: {document_type}")
    return FEE_TABLE[document_type]


def get_document_label(document_type: str) -> str:
    return DOCUMENT_LABELS.get(document_type, document_type)


def gateway_total(base_fee: float) -> float:
    """Amount charged through the payment gateway: base plus commission, at least the minimum."""
    if base_fee <= 0:
        return 0.0
    return max(round(base_fee * (1 + COMMISSION_RATE), 2), MINIMUM_PAYMENT)


def to_centavos(amount: float) -> int:
    return int(round(amount * 100))


def is_valid_status(status: Optional[str]) -> bool:
    return status in ALLOWED_TRANSITIONS


def check_transition(current: str, target: str) -> RuleCheck:
    """
    Check a status change against the transition table.

    Returns:
        RuleCheck; a same-status move and a move out of a terminal state are
        both rejected
    """
    if not is_valid_status(target):
        return RuleCheck(allowed=False, reason=f"Invalid status: {target}")
    if current == target:
        return RuleCheck(allowed=False, reason=f"Request is already {current}")
    if target not in ALLOWED_TRANSITIONS.get(current, ()):
        return RuleCheck(
            allowed=False,
            reason=f"Cannot change status from {current} to {target}"
        )
    return RuleCheck(allowed=True)


def is_owner(document: Dict[str, Any], user_context: UserContext) -> bool:
    applicant = document.get("applicant")
    return applicant is not None and str(applicant) == user_context.user_id


def can_view(document: Dict[str, Any], user_context: UserContext) -> bool:
    return user_context.is_admin or is_owner(document, user_context)


def check_owner_edit(document: Dict[str, Any], user_context: UserContext) -> RuleCheck:
    """Only the owner may edit, and only while the request is pending."""
    if not is_owner(document, user_context):
        return RuleCheck(allowed=False, reason="Not authorized to update this request")
    if document.get("status") not in OWNER_EDITABLE_STATUSES:
        return RuleCheck(
            allowed=False,
            reason=f"Cannot update a request that is {document.get('status')}"
        )
    return RuleCheck(allowed=True)


def check_delete(document: Dict[str, Any], user_context: UserContext) -> RuleCheck:
    """Admins may delete at any time; owners only while pending."""
    if user_context.is_admin:
        return RuleCheck(allowed=True)
    if not is_owner(document, user_context):
        return RuleCheck(allowed=False, reason="Not authorized to delete this request")
    if document.get("status") not in OWNER_EDITABLE_STATUSES:
        return RuleCheck(
            allowed=False,
            reason=f"Cannot delete a request that is {document.get('status')}"
        )
    return RuleCheck(allowed=True)


def check_protected_fields(document: Dict[str, Any], changes: Dict[str, Any]) -> RuleCheck:
    """Reject owner edits that try to change the document type, applicant or status."""
    errors = []
    for name in PROTECTED_FIELDS:
        if name in changes and changes[name] is not None and changes[name] != document.get(name):
            errors.append(f"{name} cannot be changed")
    if errors:
        return RuleCheck(allowed=False, reason="; ".join(errors), errors=errors)
    return RuleCheck(allowed=True)


def extract_profile_fields(user_document: Dict[str, Any]) -> Dict[str, Any]:
    """Copy the personal snapshot fields from a stored user document."""
    data = {name: user_document.get(name) for name in PROFILE_FIELDS if user_document.get(name) is not None}
    if user_document.get("phoneNumber"):
        data["contactNumber"] = user_document["phoneNumber"]
    return data


def build_request_document(
    payload: Dict[str, Any],
    applicant_id: Optional[str],
    profile: Optional[Dict[str, Any]] = None,
    use_stored_valid_id: bool = False,
    use_stored_photo: bool = False,
    created_by: Optional[str] = None
) -> DocumentRequest:
    """
    Assemble and validate a new document request.

    Args:
        payload: Client fields using the camelCase wire names, None values removed
        applicant_id: Owning user ID, or None for staff-entered requests
        profile: Stored user document to auto-fill from
        use_stored_valid_id: Reuse the profile's valid ID
        use_stored_photo: Reuse the profile's 1x1 photo
        created_by: Acting user ID

    Returns:
        Validated DocumentRequest in pending/unpaid state with its fee

    Raises:
        ValueError: unknown document type
        pydantic.ValidationError: any field or conditional requirement fails
    """
    data: Dict[str, Any] = {}
    if profile:
        data.update(extract_profile_fields(profile))
        if use_stored_valid_id and profile.get("validID"):
            data["validID"] = profile["validID"]
        if use_stored_photo and profile.get("photo1x1"):
            data["photo1x1"] = profile["photo1x1"]

    data.update(payload)

    document_type = data.get("documentType")
    data["fees"] = get_fee(document_type)
    data["applicant"] = applicant_id
    data["createdBy"] = created_by
    data["status"] = RequestStatus.PENDING.value
    data["paymentStatus"] = PaymentStatus.UNPAID.value

    return DocumentRequest.model_validate(data)


def merge_update(document: Dict[str, Any], changes: Dict[str, Any]) -> DocumentRequest:
    """
    Apply owner changes to a stored request and re-validate the result.

    Raises:
        pydantic.ValidationError: the merged request breaks a requirement
    """
    merged = dict(document)
    for name, value in changes.items():
        if name in PROTECTED_FIELDS:
            continue
        merged[name] = value
    merged["updatedAt"] = datetime.utcnow()
    return DocumentRequest.from_document(merged)


def sync_with_profile(document: Dict[str, Any], profile: Dict[str, Any]) -> DocumentRequest:
    """Re-copy personal snapshot fields from the current profile."""
    merged = dict(document)
    merged.update(extract_profile_fields(profile))
    merged["updatedAt"] = datetime.utcnow()
    return DocumentRequest.from_document(merged)


def format_control_number(document_type: str, year: int, sequence: int) -> str:
    """Format ``PREFIX-YEAR-SEQ``, e.g. IND-2025-00001."""
    return f"{control_prefix(document_type)}-{year}-{sequence:05d}"


def control_prefix(document_type: str) -> str:
    return document_type.upper()[:3]


def build_status_update(
    document: Dict[str, Any],
    target: str,
    user_context: UserContext,
    rejection_reason: Optional[str] = None,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build the ``$set`` fields for an admin status change.

    Issuance fields are added separately by the caller because they need a
    sequence number from the store.
    """
    now = now or datetime.utcnow()
    update = {
        "status": target,
        "processedBy": user_context.user_id,
        "processedAt": now,
        "updatedAt": now,
    }
    if target == RequestStatus.REJECTED.value and rejection_reason:
        update["rejectionReason"] = rejection_reason
    if remarks:
        update["remarks"] = remarks
    return update


def needs_issuance(document: Dict[str, Any], target: str) -> bool:
    """Control number and verification token are assigned once, on approval or completion."""
    return target in ISSUED_STATUSES and not document.get("controlNumber")


def summarize_stats(status_counts: List[Dict[str, Any]], type_counts: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Shape aggregation results into totals by status and by type."""
    by_status = {status.value: 0 for status in RequestStatus}
    for row in status_counts:
        by_status[row["_id"]] = row["count"]

    by_type = {row["_id"]: row["count"] for row in type_counts}

    return {
        "total": sum(by_status.values()),
        "byStatus": by_status,
        "byType": by_type,
    }
