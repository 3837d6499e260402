"""Authentication schemas."""

from enum import Enum

from pydantic import Field

from cabinet.schemas.common import CamelModel


class UserRole(str, Enum):
    """Account roles."""

    ADMIN = "admin"
    SECRETARIAT = "secretariat"
    THERAPIST = "therapist"


class LoginRequest(CamelModel):
    """Schema for username/password login."""

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class TokenResponse(CamelModel):
    """Schema for issued access token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(CamelModel):
    """Schema for the authenticated caller."""

    id: int
    username: str
    email: str
    role: UserRole
    therapist_id: int | None = None
    is_active: bool
