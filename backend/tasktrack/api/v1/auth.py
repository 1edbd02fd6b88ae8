"""Caller identity for API requests.

Tokens are issued elsewhere; this module only verifies the bearer JWT and
turns it into the owner id every task operation is scoped to.
"""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tasktrack.config import get_settings

logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_owner(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> UUID:
    """Get the authenticated owner id from the bearer token."""
    if not credentials:
        raise _unauthorized("Not authenticated")

    # Dev token bypass for local development
    if credentials.credentials == settings.dev_token and settings.environment == "development":
        return UUID(settings.dev_owner_id)

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise _unauthorized("Invalid token")

    subject = payload.get("sub")
    if subject is None or payload.get("type") != "access":
        raise _unauthorized("Invalid token")

    try:
        owner_id = UUID(str(subject))
    except ValueError:
        logger.warning("token_subject_malformed", subject=str(subject))
        raise _unauthorized("Invalid token")

    structlog.contextvars.bind_contextvars(owner_id=str(owner_id))
    return owner_id


# Type alias for dependency injection
CurrentOwner = Annotated[UUID, Depends(get_current_owner)]
