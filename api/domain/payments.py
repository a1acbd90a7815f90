# SPDX-License-Identifier: Apache-2.0

"""
Payment rules for document requests.

Covers the payment status transitions, the gateway webhook signature check
and extraction of payment references from webhook events.
"""

import hashlib
import hmac
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.enums import PaymentStatus
from .document_requests import RuleCheck, gateway_total, get_document_label


PAID_EVENT_TYPES = (
    "link.payment.paid",
    "payment.paid",
    "checkout_session.payment.paid",
)


def parse_signature_header(header: Optional[str]) -> Dict[str, str]:
    """
    Split a ``Paymongo-Signature`` header into its parts.

    ``t=1496734173,te=abc,li=`` becomes ``{"t": "1496734173", "te": "abc", "li": ""}``.
    """
    parts = {}
    if not header:
        return parts
    for item in header.split(","):
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        parts[key.strip()] = value.strip()
    return parts


def compute_signature(secret: str, timestamp: str, raw_body: bytes) -> str:
    """HMAC-SHA256 hex digest of ``{timestamp}.{raw body}``."""
    message = timestamp.encode("utf-8") + b"." + raw_body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(header: Optional[str], raw_body: bytes, secret: Optional[str]) -> bool:
    """
    Check a webhook signature against the live and test signatures in the header.

    Returns:
        True when the computed digest equals ``li`` or ``te``
    """
    if not secret:
        return False

    parts = parse_signature_header(header)
    timestamp = parts.get("t")
    if not timestamp:
        return False

    expected = compute_signature(secret, timestamp, raw_body)
    for key in ("li", "te"):
        candidate = parts.get(key)
        if candidate and hmac.compare_digest(candidate.encode("utf-8"), expected.encode("ascii")):
            return True
    return False


def get_event_type(event: Dict[str, Any]) -> Optional[str]:
    return ((event.get("data") or {}).get("attributes") or {}).get("type")


def is_paid_event(event: Dict[str, Any]) -> bool:
    return get_event_type(event) in PAID_EVENT_TYPES


def extract_references(event: Dict[str, Any]) -> List[str]:
    """
    Collect the identifiers a paid event may carry.

    Link events carry the link ID, checkout events the session ID, and payment
    events may name the link through ``external_reference_number`` or metadata.
    """
    resource = ((event.get("data") or {}).get("attributes") or {}).get("data") or {}
    attributes = resource.get("attributes") or {}
    metadata = attributes.get("metadata") or {}

    candidates = [
        resource.get("id"),
        attributes.get("reference_number"),
        attributes.get("external_reference_number"),
        metadata.get("paymentReference"),
    ]

    references = []
    for candidate in candidates:
        if candidate and candidate not in references:
            references.append(candidate)
    return references


def extract_request_id(event: Dict[str, Any]) -> Optional[str]:
    """Return the document request ID stored in the event metadata, if any."""
    resource = ((event.get("data") or {}).get("attributes") or {}).get("data") or {}
    metadata = (resource.get("attributes") or {}).get("metadata") or {}
    return metadata.get("requestId")


def check_can_create_link(document: Dict[str, Any]) -> RuleCheck:
    status = document.get("paymentStatus")
    if status == PaymentStatus.PAID.value:
        return RuleCheck(allowed=False, reason="This request is already paid")
    if status == PaymentStatus.WAIVED.value:
        return RuleCheck(allowed=False, reason="Payment for this request has been waived")
    return RuleCheck(allowed=True)


def check_can_settle(document: Dict[str, Any]) -> RuleCheck:
    """Manual confirmation and waivers only apply to unpaid requests."""
    status = document.get("paymentStatus")
    if status == PaymentStatus.PAID.value:
        return RuleCheck(allowed=False, reason="This request is already paid")
    if status == PaymentStatus.WAIVED.value:
        return RuleCheck(allowed=False, reason="Payment for this request has already been waived")
    return RuleCheck(allowed=True)


def build_paid_update(
    amount: Optional[float],
    payment_method: str,
    confirmed_by: Optional[str] = None,
    reference: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    update = {
        "paymentStatus": PaymentStatus.PAID.value,
        "paidAt": now,
        "paymentMethod": payment_method,
        "updatedAt": now,
    }
    if amount is not None:
        update["paymentAmount"] = amount
    if confirmed_by:
        update["confirmedBy"] = confirmed_by
    if reference:
        update["paymentReference"] = reference
    return update


def build_waived_update(reason: str, waived_by: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    return {
        "paymentStatus": PaymentStatus.WAIVED.value,
        "waivedReason": reason,
        "waivedBy": waived_by,
        "waivedAt": now,
        "updatedAt": now,
    }


def build_link_payload(document: Dict[str, Any], request_id: str) -> Dict[str, Any]:
    """Gateway request body for a payment link; the amount is in centavos."""
    total = gateway_total(document.get("fees") or 0)
    label = get_document_label(document.get("documentType"))
    return {
        "data": {
            "attributes": {
                "amount": int(round(total * 100)),
                "description": f"Payment for {label} - Request #{request_id}",
                "remarks": f"Document Request: {document.get('documentType')}",
            }
        }
    }


def summarize_payments(summary_rows: List[Dict[str, Any]], breakdown_rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Revenue summary and per-type breakdown for paid requests."""
    summary = summary_rows[0] if summary_rows else {"totalRevenue": 0, "totalTransactions": 0}
    total_revenue = summary.get("totalRevenue") or 0
    total_transactions = summary.get("totalTransactions") or 0
    average = total_revenue / total_transactions if total_transactions else 0

    breakdown = [
        {
            "type": get_document_label(row["_id"]),
            "documentType": row["_id"],
            "count": row["count"],
            "revenue": row.get("revenue") or 0,
        }
        for row in breakdown_rows
    ]

    return {
        "summary": {
            "totalRevenue": total_revenue,
            "totalTransactions": total_transactions,
            "averageTransaction": round(average, 2),
            "topDocument": breakdown[0]["type"] if breakdown else "N/A",
        },
        "breakdown": breakdown,
    }
