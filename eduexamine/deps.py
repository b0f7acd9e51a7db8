"""Shared FastAPI dependencies for settings, database access and authentication."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eduexamine.auth_utils import decode_access_token
from eduexamine.config import Settings
from eduexamine.exceptions import AuthenticationFailed, Forbidden

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Caller identity taken from the access token claims."""

    id: int
    email: str
    role: str


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
) -> Identity:
    """Decode the bearer token into an Identity, or raise 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationFailed("Missing access token")
    claims = decode_access_token(settings, credentials.credentials)
    try:
        return Identity(id=int(claims["id"]), email=claims["email"], role=claims["role"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationFailed("Invalid access token") from exc


def require_role(required_roles: list[str]):
    """Dependency factory that enforces one of the given roles."""

    def wrapper(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in required_roles:
            raise Forbidden("Forbidden")
        return identity

    return wrapper


require_institute = require_role(["institute"])
require_student = require_role(["student"])
