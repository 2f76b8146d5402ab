"""
Password hashing and JWT handling

Provides:
- bcrypt password hashing
- access and refresh token signing/verification
- one-time tokens for email verification and password reset
- profile completion scoring
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

import jwt
from passlib.context import CryptContext

from skills_bridge.config import Settings, get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

RESET_TOKEN_TTL = timedelta(minutes=10)

# Weights of the profile completion score
COMPLETION_WEIGHTS = {
    "basic_info": 20,
    "education": 15,
    "experience": 20,
    "skills": 20,
    "avatar": 10,
    "verification": 15,
}


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def _encode(user_id: str, secret: str, lifetime: timedelta, algorithm: str) -> str:
    now = datetime.utcnow()
    payload = {"id": user_id, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, secret, algorithm=algorithm)


def create_access_token(user_id: str, settings: Optional[Settings] = None) -> str:
    """Sign an access token carrying the user id in the ``id`` claim."""
    settings = settings or get_settings()
    return _encode(
        user_id,
        settings.jwt_secret,
        timedelta(days=settings.jwt_expire_days),
        settings.jwt_algorithm,
    )


def create_refresh_token(user_id: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _encode(
        user_id,
        settings.jwt_refresh_secret,
        timedelta(days=settings.jwt_refresh_expire_days),
        settings.jwt_algorithm,
    )


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    """
    Verify signature and expiry of a token.

    Raises:
        jwt.ExpiredSignatureError: The token is past its ``exp``
        jwt.InvalidTokenError: Any other signature or structure failure
    """
    return jwt.decode(token, secret, algorithms=[algorithm])


def generate_verification_token() -> str:
    return secrets.token_hex(20)


def generate_reset_token() -> tuple[str, str, datetime]:
    """
    Create a password reset token.

    Returns:
        (token sent to the user, sha256 hex stored in the database, expiry)
    """
    token = secrets.token_hex(20)
    return token, hash_reset_token(token), datetime.utcnow() + RESET_TOKEN_TTL


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def calculate_profile_completion(user: dict[str, Any]) -> int:
    """Score a user document from 0 to 100."""
    completion = 0
    location = user.get("location") or {}
    if user.get("name") and user.get("email") and user.get("phone") and location.get("country"):
        completion += COMPLETION_WEIGHTS["basic_info"]
    if user.get("education"):
        completion += COMPLETION_WEIGHTS["education"]
    if user.get("experience"):
        completion += COMPLETION_WEIGHTS["experience"]
    if len(user.get("skills") or []) >= 3:
        completion += COMPLETION_WEIGHTS["skills"]
    if (user.get("avatar") or {}).get("url"):
        completion += COMPLETION_WEIGHTS["avatar"]
    if user.get("isEmailVerified"):
        completion += COMPLETION_WEIGHTS["verification"]
    return min(completion, 100)
