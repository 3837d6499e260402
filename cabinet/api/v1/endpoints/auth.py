"""Authentication endpoints."""

from fastapi import APIRouter, status

from cabinet.dependencies import CurrentUser, DatabaseSession
from cabinet.schemas.auth import LoginRequest, TokenResponse, UserResponse
from cabinet.services.auth_service import AuthService

router = APIRouter()


@router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Username and password login",
)
async def login(request: LoginRequest, db: DatabaseSession) -> TokenResponse:
    """
    Exchange staff credentials for a bearer access token.

    Raises:
        UnauthorizedException: If the credentials are wrong
    """
    return await AuthService(db).login(request.username, request.password)


@router.get(
    "/me",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Current user",
)
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)
