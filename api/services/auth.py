# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT token management and password hashing.

This module provides JWT issuance and validation using RS256 signing and
bcrypt password hashing. Tokens are valid for 30 days and carry the user ID
and numeric role code.
"""

import os
import uuid
import jwt
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

from models.enums import get_role_name

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when token issuance fails."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with RS256 signing and bcrypt password hashing.
    """

    def __init__(self, private_key: Optional[str] = None, public_key: Optional[str] = None,
                 expire_days: int = 30):
        """
        Initialize the authentication service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
            expire_days: Token lifetime in days
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            # Both halves must come from the same pair
            logger.warning("JWT key pair not configured, generating development key pair")
            private_key, public_key = self._generate_dev_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.token_expire_days = expire_days

    def _generate_dev_key_pair(self) -> Tuple[str, str]:
        """Generate RSA key pair for development use."""
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048
        )

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')

        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt with salt.

        Args:
            password: Plain text password to hash

        Returns:
            Hashed password string
        """
        with tracer.start_as_current_span("auth.hash_password") as span:
            span.set_attribute("auth.operation", "hash_password")

            salt = bcrypt.gensalt(rounds=12)
            hashed = bcrypt.hashpw(password.encode('utf-8'), salt)

            logger.debug("Password hashed successfully")
            return hashed.decode('utf-8')

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Returns:
            True if password matches, False otherwise
        """
        with tracer.start_as_current_span("auth.verify_password") as span:
            span.set_attribute("auth.operation", "verify_password")

            try:
                result = bcrypt.checkpw(
                    password.encode('utf-8'),
                    hashed_password.encode('utf-8')
                )

                span.set_attribute("auth.verification_result", "success" if result else "failed")
                return result
            except (ValueError, TypeError, AttributeError) as e:
                span.set_attribute("auth.verification_result", "error")
                logger.error(f"Password verification error: {str(e)}")
                return False

    def generate_token(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Generate an access token for a stored user.

        Args:
            user: User document with ``id``, ``role``, ``email`` and name fields

        Returns:
            Dictionary containing the token and its expiry
        """
        with tracer.start_as_current_span("auth.generate_token") as span:
            span.set_attributes({
                "auth.operation": "generate_token",
                "user.id": user["id"]
            })

            now = datetime.now(timezone.utc)
            expires_at = now + timedelta(days=self.token_expire_days)

            payload = {
                "sub": user["id"],
                "id": user["id"],
                "role": user.get("role"),
                "email": user.get("email"),
                "name": " ".join(
                    part for part in (user.get("firstName"), user.get("lastName")) if part
                ),
                "iat": now,
                "exp": expires_at,
                "jti": uuid.uuid4().hex,
                "type": "access"
            }

            try:
                token = jwt.encode(payload, self.private_key, algorithm=self.algorithm)
            except Exception as e:
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate token: {str(e)}")

            logger.info(
                "JWT token generated successfully",
                extra={
                    "user_id": user["id"],
                    "role": get_role_name(user.get("role")),
                    "expires_at": expires_at.isoformat()
                }
            )

            return {
                "token": token,
                "token_type": "Bearer",
                "expires_in": self.token_expire_days * 24 * 60 * 60,
                "expires_at": expires_at.isoformat()
            }

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attribute("auth.operation", "validate_token")

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "exp"]}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != "access":
                raise TokenValidationError("Invalid token type")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub")
            })
            return payload

    def extract_token_id(self, token: str) -> str:
        """
        Extract a unique identifier from a token for blocklist purposes.

        Raises:
            TokenValidationError: If the token cannot be decoded
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        return payload.get("jti") or f"{payload.get('sub')}:{payload.get('iat')}"

    def remaining_lifetime(self, payload: Dict[str, Any]) -> int:
        """Seconds until the token in ``payload`` expires, never negative."""
        exp = payload.get("exp")
        if not exp:
            return 0
        now = int(datetime.now(timezone.utc).timestamp())
        return max(int(exp) - now, 0)
