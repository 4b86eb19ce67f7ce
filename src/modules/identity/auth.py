"""JWT authentication dependency for FastAPI.

Tokens are issued by the external identity provider; this module only
validates them and extracts the acting identity and its role.
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import ForbiddenException, UnauthorizedException
from src.models.enums import UserRole

logger = logging.getLogger(__name__)

# FastAPI security scheme: extracts Bearer token from Authorization header
_bearer_scheme = HTTPBearer(auto_error=False)

# Identity recorded on transitions the platform performs on its own (timers, sweeps)
SYSTEM_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")


@dataclass(frozen=True)
class AuthenticatedUser:
    """The acting identity behind a request, a socket, or a background job."""

    id: uuid.UUID
    role: UserRole
    email: str | None = None
    is_system: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def trigger_source(self) -> str:
        return "SYSTEM" if self.is_system else "USER"


SYSTEM_USER = AuthenticatedUser(id=SYSTEM_USER_ID, role=UserRole.ADMIN, is_system=True)


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedException on failure."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


def authenticate_token(token: str) -> AuthenticatedUser:
    """Build the acting identity from a raw bearer token."""
    payload = _decode_token(token)
    try:
        return AuthenticatedUser(
            id=uuid.UUID(payload["sub"]),
            role=UserRole(str(payload["role"]).upper()),
            email=payload.get("email"),
        )
    except (KeyError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthenticatedUser:
    """FastAPI dependency that extracts and validates the current user from JWT."""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    user = authenticate_token(credentials.credentials)
    request.state.user = user
    return user


def require_role(*roles: UserRole):
    """Dependency factory: the caller must hold one of ``roles`` (admins always pass)."""

    async def dependency(
        user: AuthenticatedUser = Depends(get_current_user),
    ) -> AuthenticatedUser:
        if user.role not in roles and not user.is_admin:
            allowed = ", ".join(r.value for r in roles)
            raise ForbiddenException(f"This action requires one of: {allowed}")
        return user

    return dependency
