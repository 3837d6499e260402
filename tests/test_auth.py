"""Tests for login and the current-user endpoint."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_login(client: AsyncClient, admin_user: dict) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "secret-password"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["tokenType"] == "bearer"
    assert data["expiresIn"] > 0

    me = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {data['accessToken']}"},
    )
    assert me.status_code == 200
    assert me.json()["username"] == "admin"
    assert me.json()["role"] == "admin"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("username", "password"),
    [("admin", "wrong-password"), ("nobody", "secret-password")],
)
async def test_login_rejects_bad_credentials(
    client: AsyncClient,
    admin_user: dict,
    username: str,
    password: str,
) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password},
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid username or password"


@pytest.mark.asyncio
async def test_me_for_therapist(client: AsyncClient, therapist_headers: dict, clinic: dict) -> None:
    response = await client.get("/api/v1/auth/me", headers=therapist_headers)

    assert response.status_code == 200
    assert response.json()["therapistId"] == clinic["therapists"][0]


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient) -> None:
    response = await client.get(
        "/api/v1/auth/me",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401
