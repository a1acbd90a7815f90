# SPDX-License-Identifier: Apache-2.0

"""
File attachment validation rules.

Pure functions shared by the upload endpoints and the document request
entity validators. The same checks run when a file is accepted and again
when the entity holding it is saved.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png")
ALLOWED_EXTENSIONS = ("jpg", "jpeg", "png")
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5242880 bytes

FILE_URL_PATTERN = re.compile(
    r"^(https?://.+|/uploads/.+|/.+\.(jpg|jpeg|png))$",
    re.IGNORECASE
)

INVALID_TYPE_MESSAGE = "Only JPG, JPEG, and PNG files are allowed"
TOO_LARGE_MESSAGE = "File size must not exceed 5MB"
INVALID_URL_MESSAGE = "Invalid file URL format"
INVALID_EXTENSION_MESSAGE = "Invalid file extension. Only .jpg, .jpeg, .png are allowed"
NO_FILE_MESSAGE = "No file provided"


@dataclass
class ValidationResult:
    """Outcome of a validation pass."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def get_extension(filename: Optional[str]) -> str:
    """Return the lower-cased extension of a filename without the dot."""
    if not filename:
        return ""
    return os.path.splitext(filename)[1].lstrip(".").lower()


def validate_upload(
    mime_type: Optional[str],
    file_size: Optional[int],
    filename: Optional[str] = None
) -> ValidationResult:
    """
    Validate an incoming upload descriptor.

    Args:
        mime_type: Declared content type of the upload
        file_size: Size in bytes
        filename: Original filename; the extension is checked when given

    Returns:
        ValidationResult listing every failed rule
    """
    errors = []

    if (mime_type or "").lower() not in ALLOWED_MIME_TYPES:
        errors.append(INVALID_TYPE_MESSAGE)

    if file_size is None or file_size > MAX_FILE_SIZE:
        errors.append(TOO_LARGE_MESSAGE)

    if filename is not None and get_extension(filename) not in ALLOWED_EXTENSIONS:
        errors.append(INVALID_EXTENSION_MESSAGE)

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_attachment(attachment: Optional[Dict[str, Any]]) -> ValidationResult:
    """
    Validate a stored attachment descriptor (url, mimeType, fileSize).

    Args:
        attachment: Attachment dictionary using the persisted field names

    Returns:
        ValidationResult listing every failed rule
    """
    if not attachment:
        return ValidationResult(is_valid=False, errors=[NO_FILE_MESSAGE])

    errors = []

    url = attachment.get("url") or ""
    if not FILE_URL_PATTERN.match(url):
        errors.append(INVALID_URL_MESSAGE)

    result = validate_upload(attachment.get("mimeType"), attachment.get("fileSize"))
    errors.extend(result.errors)

    return ValidationResult(is_valid=not errors, errors=errors)


def summarize_attachment(attachment: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Reduce an attachment to the fields shown in file summaries."""
    if not attachment:
        return None
    return {
        "url": attachment.get("url"),
        "originalName": attachment.get("originalName"),
        "mimeType": attachment.get("mimeType"),
        "fileSize": attachment.get("fileSize"),
        "uploadedAt": attachment.get("uploadedAt"),
    }
