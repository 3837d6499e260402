"""FastAPI dependencies."""

from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.core.exceptions import ForbiddenException
from cabinet.core.redis_client import CacheManager, get_redis_client
from cabinet.core.security import decode_access_token
from cabinet.database import get_db
from cabinet.services.user_service import UserService

# Security
security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> int:
    """
    Extract and validate user ID from JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Could not validate credentials")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise _unauthorized("Invalid user ID format")

    return int(subject)


async def get_current_user(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """
    Load the caller's account.

    Raises:
        HTTPException: If user not found or inactive
    """
    user = await UserService.get_user_by_id(db, user_id)

    if not user:
        raise _unauthorized("User not found")

    if not user["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def get_cache_manager() -> CacheManager | None:
    """Availability cache; None disables caching."""
    return CacheManager(get_redis_client())


def therapist_scope(user: dict[str, Any]) -> int | None:
    """
    Therapist id a caller is confined to, or None for clinic staff.

    Raises:
        ForbiddenException: For a therapist account not tied to a therapist
    """
    if user["role"] != "therapist":
        return None
    if user["therapist_id"] is None:
        raise ForbiddenException("Therapist account is not linked to a therapist")
    return user["therapist_id"]


def ensure_therapists_in_scope(user: dict[str, Any], therapist_ids: list[int]) -> None:
    """Reject a write touching another therapist's schedule."""
    scope = therapist_scope(user)
    if scope is not None and any(therapist_id != scope for therapist_id in therapist_ids):
        raise ForbiddenException("Therapists can only manage their own appointments")


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
