# SPDX-License-Identifier: Apache-2.0

"""
Document verification tokens.

A token embeds the control number so that a scanned QR code can be checked
without authentication: ``VRF-<control number without dashes>-<8 hex>-<base36 ms>``.
"""

import hashlib
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .document_requests import get_document_label


TOKEN_PATTERN = re.compile(r"^VRF-[A-Z]{3}\d{9,}-[a-f0-9]{8}-[a-z0-9]+$")

ISSUER = {
    "name": "Barangay Culiat",
    "location": "Quezon City, Metro Manila",
    "contact": "barangayculiat@gmail.com",
    "website": "https://barangayculiat.online",
}

SECURITY_NOTE = (
    "This document has been digitally verified through the "
    "Barangay Culiat Document Verification System."
)

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass
class ParsedToken:
    control_number: str
    prefix: str
    year: str
    sequence: str
    unique_id: str
    timestamp: str


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_token(control_number: str, now_ms: Optional[int] = None) -> str:
    """Build a verification token for a control number such as IND-2025-00001."""
    unique_id = uuid.uuid4().hex[:8]
    timestamp = to_base36(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"VRF-{control_number.replace('-', '')}-{unique_id}-{timestamp}"


def generate_security_hash(control_number: str, token: str, secret: str) -> str:
    """First 16 hex characters of sha256(``controlNumber:token:secret``)."""
    data = f"{control_number}:{token}:{secret}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]


def is_valid_token_structure(token: Optional[str]) -> bool:
    return bool(token) and isinstance(token, str) and TOKEN_PATTERN.match(token) is not None


def parse_token(token: str) -> Optional[ParsedToken]:
    """
    Recover the control number and parts from a token.

    Returns:
        ParsedToken, or None when the token does not have four parts
    """
    parts = token.split("-")
    if len(parts) < 4 or parts[0] != "VRF":
        return None

    control_part = parts[1]
    if len(control_part) < 8:
        return None

    prefix = control_part[:3]
    year = control_part[3:7]
    sequence = control_part[7:]
    return ParsedToken(
        control_number=f"{prefix}-{year}-{sequence}",
        prefix=prefix,
        year=year,
        sequence=sequence,
        unique_id=parts[2],
        timestamp=parts[3],
    )


def build_issuance_fields(control_number: str, secret: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Control number plus verification token and hash, stored together on issuance."""
    token = generate_token(control_number)
    return {
        "controlNumber": control_number,
        "verificationToken": token,
        "securityHash": generate_security_hash(control_number, token, secret),
        "verificationGeneratedAt": now or datetime.utcnow(),
    }


def resident_name(document: Dict[str, Any]) -> str:
    parts = [document.get(name) for name in ("firstName", "middleName", "lastName", "suffix")]
    name = " ".join(part for part in parts if part)
    return " ".join(name.split()) or "Unknown"


def build_verified_document(document: Dict[str, Any], issued_by: Optional[str] = None) -> Dict[str, Any]:
    """Public view of an issued document; only the barangay and city of the address are shown."""
    address = document.get("address") or {}
    business = document.get("businessInfo") or {}

    data = {
        "controlNumber": document.get("controlNumber"),
        "documentType": document.get("documentType"),
        "documentTypeLabel": get_document_label(document.get("documentType")),
        "residentName": resident_name(document),
        "purpose": document.get("purposeOfRequest") or "N/A",
        "issuedAt": document.get("processedAt") or document.get("createdAt"),
        "issuedBy": issued_by or ISSUER["name"],
        "verificationGeneratedAt": document.get("verificationGeneratedAt"),
        "status": document.get("status"),
        "barangay": address.get("barangay") or "Culiat",
        "city": address.get("city") or "Quezon City",
    }
    if business.get("businessName"):
        data["businessName"] = business["businessName"]
        data["businessAddress"] = business.get("businessAddress")
    return data


def build_verification_info(parsed: ParsedToken, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "verifiedAt": (now or datetime.utcnow()).isoformat() + "Z",
        "tokenPrefix": parsed.prefix,
        "year": parsed.year,
        "securityNote": SECURITY_NOTE,
    }
