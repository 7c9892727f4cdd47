# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT token management and password hashing.

This module provides RS256 token generation and validation and bcrypt
password hashing. Tokens carry the session ID (``sid``) so that signing out
revokes the access and refresh tokens of a session together.
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

from ..exceptions import AuthenticationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TokenValidationError(AuthenticationException):
    """Raised when token validation fails."""
    pass


def generate_key_pair() -> Tuple[str, str]:
    """Generate an RSA key pair (PEM private, PEM public)."""
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


class AuthService:
    """
    JWT authentication service with RS256 signing and bcrypt password hashing.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        public_key: Optional[str] = None,
        access_token_expires: int = 900,
        refresh_token_expires: int = 604800,
        bcrypt_rounds: int = 12
    ):
        """
        Initialize the authentication service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
            access_token_expires: Access token lifetime in seconds
            refresh_token_expires: Refresh token lifetime in seconds
            bcrypt_rounds: bcrypt cost factor
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            # Both halves must come from the same pair
            logger.warning("JWT key pair not configured, generating development key pair")
            private_key, public_key = generate_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expires = access_token_expires
        self.refresh_token_expires = refresh_token_expires
        self.bcrypt_rounds = bcrypt_rounds

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

            salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
            hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
            return hashed.decode('utf-8')

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            password: Plain text password to verify
            hashed_password: Stored hashed password

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
            except ValueError as e:
                span.set_attribute("auth.verification_result", "error")
                logger.error(f"Password verification error: {str(e)}")
                return False

    def _encode(self, payload: Dict[str, Any]) -> str:
        return jwt.encode(payload, self.private_key, algorithm=self.algorithm)

    def generate_tokens(
        self,
        user_id: str,
        email: str,
        role: str,
        session_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Generate access and refresh tokens for a new session.

        Args:
            user_id: Authenticated user
            email: User email
            role: Role at sign-in time (re-resolved on every request)
            session_id: Existing session ID, a new one is minted when omitted

        Returns:
            Dictionary containing access_token, refresh_token and metadata
        """
        session_id = session_id or str(uuid.uuid4())

        with tracer.start_as_current_span("auth.generate_tokens") as span:
            span.set_attributes({
                "auth.operation": "generate_tokens",
                "user.id": user_id,
                "auth.session_id": session_id
            })

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(seconds=self.access_token_expires)
            refresh_exp = now + timedelta(seconds=self.refresh_token_expires)

            access_token = self._encode({
                "sub": user_id,
                "email": email,
                "role": role,
                "sid": session_id,
                "jti": str(uuid.uuid4()),
                "iat": now,
                "exp": access_exp,
                "type": "access"
            })
            refresh_token = self._encode({
                "sub": user_id,
                "email": email,
                "sid": session_id,
                "jti": str(uuid.uuid4()),
                "iat": now,
                "exp": refresh_exp,
                "type": "refresh"
            })

            logger.info(
                "JWT tokens generated successfully",
                extra={
                    "user_id": user_id,
                    "session_id": session_id,
                    "access_expires_at": access_exp.isoformat(),
                    "refresh_expires_at": refresh_exp.isoformat()
                }
            )

            return {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expires,
                "session_id": session_id,
                "user_id": user_id,
                "role": role
            }

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type ("access" or "refresh")

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "sid", "exp"]}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError("Invalid token")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub"),
                "auth.session_id": payload.get("sid")
            })
            return payload

    def issue_access_token(self, refresh_payload: Dict[str, Any], role: str) -> Dict[str, Any]:
        """
        Issue a new access token for the session of a validated refresh token.

        Args:
            refresh_payload: Decoded refresh token
            role: Current role of the user

        Returns:
            New access token and metadata
        """
        with tracer.start_as_current_span("auth.issue_access_token") as span:
            span.set_attributes({
                "user.id": refresh_payload["sub"],
                "auth.session_id": refresh_payload["sid"]
            })

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(seconds=self.access_token_expires)

            access_token = self._encode({
                "sub": refresh_payload["sub"],
                "email": refresh_payload.get("email"),
                "role": role,
                "sid": refresh_payload["sid"],
                "jti": str(uuid.uuid4()),
                "iat": now,
                "exp": access_exp,
                "type": "access"
            })

            logger.info(
                "Access token refreshed successfully",
                extra={
                    "user_id": refresh_payload["sub"],
                    "session_id": refresh_payload["sid"],
                    "new_expires_at": access_exp.isoformat()
                }
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expires,
                "expires_at": access_exp.isoformat()
            }
