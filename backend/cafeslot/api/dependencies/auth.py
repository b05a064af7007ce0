# backend/cafeslot/api/dependencies/auth.py
"""
Principal resolution for the HTTP boundary.

Tokens are issued by the identity service and signed with the shared
secret. cafeslot only verifies them and reads ``sub``, ``role`` and an
optional ``name`` claim.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt

from ...core.config import settings
from ...core.enums import PrincipalRole
from ...core.exceptions import NotAuthorizedException, UnauthorizedException
from ...core.ulid_helper import is_valid_ulid
from ...principal import Principal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry of a principal token."""
    return dict(
        jwt.decode(
            token,
            settings.secret_key.get_secret_value(),
            algorithms=[settings.algorithm],
            options={"verify_aud": False},
        )
    )


def create_access_token(
    principal_id: str,
    role: PrincipalRole,
    *,
    name: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a principal token.

    Used by local tooling and tests; production tokens come from the
    identity service.
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    claims: Dict[str, Any] = {"sub": principal_id, "role": role.value, "exp": expire}
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.secret_key.get_secret_value(), algorithm=settings.algorithm)


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """
    Dependency resolving the authenticated principal.

    Raises:
        UnauthorizedException: Missing, expired or invalid token
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError as exc:
        raise UnauthorizedException("Token has expired", code="TOKEN_EXPIRED") from exc
    except jwt.PyJWTError as exc:
        logger.info(f"Rejected principal token: {str(exc)}")
        raise UnauthorizedException(
            "Could not validate credentials", code="INVALID_TOKEN"
        ) from exc

    subject = payload.get("sub")
    try:
        role = PrincipalRole(payload.get("role"))
    except ValueError as exc:
        raise UnauthorizedException("Token carries an unknown role", code="INVALID_TOKEN") from exc
    if not is_valid_ulid(subject):
        raise UnauthorizedException("Token subject is not a valid id", code="INVALID_TOKEN")
    return Principal(id=str(subject), role=role, display_name=payload.get("name"))


def require_venue_owner(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_venue_owner:
        raise NotAuthorizedException("Venue owner access required")
    return principal
