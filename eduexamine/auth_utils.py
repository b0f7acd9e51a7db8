"""Authentication utilities: password hashing and JWT issuance."""

from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from eduexamine.config import Settings
from eduexamine.exceptions import AuthenticationFailed, Forbidden

# Configure bcrypt to avoid compatibility issues with bcrypt 4.0+
PWD_CONTEXT = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
    bcrypt__rounds=12,
)


def hash_password(plain_password: str) -> str:
    """Hash a plaintext password for storage."""
    return PWD_CONTEXT.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plaintext password against its hash."""
    return PWD_CONTEXT.verify(plain_password, password_hash)


def _claims(user_id: int, email: str, role: str, lifetime: timedelta) -> dict:
    return {
        "id": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + lifetime,
    }


def create_access_token(settings: Settings, user_id: int, email: str, role: str) -> str:
    claims = _claims(user_id, email, role, timedelta(minutes=settings.access_token_minutes))
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(settings: Settings, user_id: int, email: str, role: str) -> str:
    claims = _claims(user_id, email, role, timedelta(days=settings.refresh_token_days))
    return jwt.encode(claims, settings.refresh_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> dict:
    """Return the claims of a valid access token or raise 401."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationFailed("Access token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationFailed("Invalid access token") from exc


def decode_refresh_token(settings: Settings, token: str) -> dict:
    """Return the claims of a valid refresh token or raise 403."""
    try:
        return jwt.decode(token, settings.refresh_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError as exc:
        raise Forbidden("Invalid or expired refresh token") from exc
