"""
Single-user authentication.

One configured email/password pair. Tokens are ``base64("email:<epoch-ms>")``
and carry no signature or expiry.
"""
import base64
import binascii
import logging
import time
from typing import Optional

from folio.core.config import settings

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Login rejected; ``status_code`` is the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def issue_token(email: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return base64.b64encode(f"{email}:{now_ms}".encode("utf-8")).decode("ascii")


def decode_token(token: str) -> Optional[str]:
    """Return the email a token was issued for, or None when it does not decode."""
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    email, sep, _ = decoded.partition(":")
    return email if sep else None


class AuthService:
    def __init__(self, email: Optional[str] = None, password: Optional[str] = None):
        self.email = email if email is not None else settings.AUTH_EMAIL
        self.password = password if password is not None else settings.AUTH_PASSWORD

    def login(self, email: Optional[str], password: Optional[str]) -> dict:
        if not email or not password:
            raise AuthError("Email and password are required", 400)
        if email != self.email or password != self.password:
            logger.info("Rejected login for %s", email)
            raise AuthError("Invalid email or password", 401)

        return {"success": True, "token": issue_token(email), "user": {"email": email}}

    def verify(self, token: Optional[str]) -> Optional[str]:
        """Return the authenticated email, or None."""
        if not token:
            return None
        email = decode_token(token)
        if email != self.email:
            return None
        return email
