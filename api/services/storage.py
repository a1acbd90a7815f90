# SPDX-License-Identifier: Apache-2.0

"""
Local disk storage for uploaded images.

Files are saved under the upload folder as ``<field>-<timestamp>-<random>.<ext>``
and served back from ``/uploads/<name>``.
"""

import os
import random
import time
import logging
from datetime import datetime
from typing import Any, Dict

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from domain.files import ValidationResult, get_extension, validate_upload

logger = logging.getLogger(__name__)


class FileRejectedError(Exception):
    """Raised when an upload fails validation."""

    def __init__(self, result: ValidationResult):
        super().__init__("; ".join(result.errors))
        self.result = result


class StorageService:
    """Validates and stores uploaded files on local disk."""

    def __init__(self, upload_folder: str = None, public_prefix: str = "/uploads"):
        self.upload_folder = upload_folder or os.getenv("UPLOAD_FOLDER", "uploads")
        self.public_prefix = public_prefix.rstrip("/")

    def _file_size(self, file: FileStorage) -> int:
        stream = file.stream
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        return size

    def _unique_name(self, field_name: str, filename: str) -> str:
        suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}"
        return f"{secure_filename(field_name) or 'file'}-{suffix}.{get_extension(filename)}"

    def save(self, file: FileStorage, field_name: str) -> Dict[str, Any]:
        """
        Validate and store an uploaded file.

        Returns:
            Attachment descriptor using the persisted field names

        Raises:
            FileRejectedError: the MIME type, size or extension is not allowed
        """
        original_name = file.filename or ""
        size = self._file_size(file)

        result = validate_upload(file.mimetype, size, secure_filename(original_name) or original_name)
        if not result.is_valid:
            logger.warning(
                "Upload rejected",
                extra={"field": field_name, "errors": result.errors, "size": size}
            )
            raise FileRejectedError(result)

        os.makedirs(self.upload_folder, exist_ok=True)
        stored_name = self._unique_name(field_name, original_name)
        file.save(os.path.join(self.upload_folder, stored_name))

        logger.info("Upload stored", extra={"field": field_name, "stored_name": stored_name, "size": size})
        return {
            "url": f"{self.public_prefix}/{stored_name}",
            "filename": stored_name,
            "originalName": original_name,
            "mimeType": file.mimetype,
            "fileSize": size,
            "uploadedAt": datetime.utcnow(),
        }

    def path_for(self, stored_name: str) -> str:
        """Absolute path of a stored file, or empty string when the name is unsafe."""
        safe_name = secure_filename(stored_name)
        if not safe_name or safe_name != stored_name:
            return ""
        return os.path.abspath(os.path.join(self.upload_folder, safe_name))
