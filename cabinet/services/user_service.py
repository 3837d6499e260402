"""User service for account lookups."""

from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cabinet.core.security import get_password_hash
from cabinet.models.users import users


class UserService:
    """Service for staff accounts."""

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> dict[str, Any] | None:
        result = await db.execute(select(users).where(users.c.id == user_id))
        row = result.fetchone()
        return dict(row._mapping) if row else None

    @staticmethod
    async def get_user_by_username(db: AsyncSession, username: str) -> dict[str, Any] | None:
        result = await db.execute(select(users).where(users.c.username == username))
        row = result.fetchone()
        return dict(row._mapping) if row else None

    @staticmethod
    async def create_user(
        db: AsyncSession,
        username: str,
        email: str,
        password: str,
        role: str = "secretariat",
        therapist_id: int | None = None,
    ) -> dict[str, Any]:
        """
        Create a staff account and commit.

        Args:
            db: Database session
            username: Login name
            email: Contact address
            password: Plain password, stored as a bcrypt hash
            role: admin, secretariat or therapist
            therapist_id: Therapist record a therapist account is tied to

        Returns:
            Created user data
        """
        stmt = (
            insert(users)
            .values(
                username=username,
                email=email,
                password_hash=get_password_hash(password),
                role=role,
                therapist_id=therapist_id,
            )
            .returning(users)
        )
        row = (await db.execute(stmt)).fetchone()
        await db.commit()
        return dict(row._mapping)

    @staticmethod
    async def update_last_login(db: AsyncSession, user_id: int) -> None:
        await db.execute(update(users).where(users.c.id == user_id).values(last_login=func.now()))
        await db.commit()
