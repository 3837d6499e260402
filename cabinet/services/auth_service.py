"""Authentication service for password login and JWT issuance."""

from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.config import settings
from cabinet.core.exceptions import UnauthorizedException
from cabinet.core.security import create_access_token, verify_password
from cabinet.schemas.auth import TokenResponse
from cabinet.services.user_service import UserService

logger = structlog.get_logger(__name__)


class AuthService:
    """Authentication service for staff logins."""

    def __init__(self, db: AsyncSession):
        """Initialize auth service with database session."""
        self.db = db

    async def login(self, username: str, password: str) -> TokenResponse:
        """
        Check credentials and issue an access token.

        Args:
            username: Login name
            password: Plain password

        Returns:
            Bearer access token

        Raises:
            UnauthorizedException: If credentials are wrong or the account is disabled
        """
        user = await UserService.get_user_by_username(self.db, username)

        if user is None or not verify_password(password, user["password_hash"]):
            logger.warning("login_failed", username=username)
            raise UnauthorizedException("Invalid username or password")

        if not user["is_active"]:
            logger.warning("login_refused_inactive", user_id=user["id"])
            raise UnauthorizedException("User account is deactivated")

        expires = timedelta(minutes=settings.access_token_expire_minutes)
        token = create_access_token(
            {"sub": str(user["id"]), "role": user["role"]},
            expires_delta=expires,
        )
        await UserService.update_last_login(self.db, user["id"])

        logger.info("login_succeeded", user_id=user["id"], role=user["role"])
        return TokenResponse(
            access_token=token,
            expires_in=int(expires.total_seconds()),
        )
