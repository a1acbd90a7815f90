# SPDX-License-Identifier: Apache-2.0

"""
Short-lived email verification codes stored in Redis.

One code per (user, purpose). A code expires after ten minutes and is
discarded after three wrong guesses.
"""

import secrets
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from opentelemetry import trace

from services.redis import RedisService

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

CODE_TTL_SECONDS = 600
MAX_ATTEMPTS = 3


class VerificationCodeError(Exception):
    """Raised when a code cannot be issued or checked."""

    def __init__(self, message: str, attempts_left: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.attempts_left = attempts_left


@dataclass
class CodeCheck:
    """Outcome of checking a submitted code."""
    valid: bool
    message: str
    new_value: Any = None
    attempts_left: Optional[int] = None


def generate_code() -> str:
    """Six random digits."""
    return f"{secrets.randbelow(1000000):06d}"


class VerificationCodeService:

    def __init__(self, redis_service: RedisService, ttl: int = CODE_TTL_SECONDS,
                 max_attempts: int = MAX_ATTEMPTS):
        self.redis_service = redis_service
        self.ttl = ttl
        self.max_attempts = max_attempts

    @staticmethod
    def key_for(user_id: str, purpose: str) -> str:
        return f"verification:{user_id}:{purpose}"

    def issue(self, user_id: str, purpose: str, new_value: Any = None) -> str:
        """
        Store a fresh code, replacing any previous one for the same purpose.

        Raises:
            VerificationCodeError: Redis is unavailable
        """
        if not self.redis_service or not self.redis_service.is_available():
            raise VerificationCodeError("Verification service is unavailable")

        code = generate_code()
        record = {
            "code": code,
            "purpose": purpose,
            "newValue": new_value,
            "attempts": 0,
            "expiresAt": (datetime.utcnow() + timedelta(seconds=self.ttl)).isoformat(),
        }

        with tracer.start_as_current_span("verification_codes.issue") as span:
            span.set_attribute("verification.purpose", purpose)
            if not self.redis_service.set(self.key_for(user_id, purpose), record, self.ttl):
                raise VerificationCodeError("Failed to store verification code")

        logger.info("Verification code issued", extra={"user_id": user_id, "purpose": purpose})
        return code

    def check(self, user_id: str, purpose: str, code: str) -> CodeCheck:
        """Compare ``code`` with the stored one, counting failed attempts."""
        key = self.key_for(user_id, purpose)
        record = self.redis_service.get(key) if self.redis_service else None

        if not isinstance(record, dict):
            return CodeCheck(False, "No verification code found or code has expired. Please request a new code.")

        if record.get("attempts", 0) >= self.max_attempts:
            self.redis_service.delete(key)
            return CodeCheck(False, "Too many failed attempts. Please request a new code.", attempts_left=0)

        if not secrets.compare_digest(str(record.get("code")), str(code or "")):
            attempts = record.get("attempts", 0) + 1
            attempts_left = max(0, self.max_attempts - attempts)

            if attempts >= self.max_attempts:
                self.redis_service.delete(key)
                logger.warning("Verification code locked out", extra={"user_id": user_id, "purpose": purpose})
                return CodeCheck(False, "Too many failed attempts. Please request a new code.", attempts_left=0)

            record["attempts"] = attempts
            remaining = self.redis_service.ttl(key) or self.ttl
            self.redis_service.set(key, record, remaining)
            return CodeCheck(False, "Invalid verification code", attempts_left=attempts_left)

        self.redis_service.delete(key)
        return CodeCheck(True, "Code verified", new_value=record.get("newValue"))
