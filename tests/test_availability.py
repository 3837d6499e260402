"""Tests for the availability endpoint."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_free_slot(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    response = await client.get(
        "/api/v1/availability",
        params={"therapistId": clinic["therapists"][0], "date": "14/06/2030", "time": "9:00"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"available": True}


@pytest.mark.asyncio
async def test_taken_slot_names_patient(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    therapist_id = clinic["therapists"][0]
    await client.post(
        "/api/v1/appointments",
        json={
            "patientId": clinic["patients"][1],
            "therapistId": therapist_id,
            "date": "14/06/2030",
            "time": "9:00",
        },
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/availability",
        params={"therapistId": therapist_id, "date": "14/06/2030", "time": "9:00"},
        headers=auth_headers,
    )

    data = response.json()
    assert data["available"] is False
    assert data["conflictInfo"] == {
        "patientId": clinic["patients"][1],
        "patientName": "Emma Durand",
        "message": "Ce créneau est déjà réservé pour Emma Durand",
    }

    # Same time, another therapist
    response = await client.get(
        "/api/v1/availability",
        params={"therapistId": clinic["therapists"][1], "date": "14/06/2030", "time": "9:00"},
        headers=auth_headers,
    )
    assert response.json()["available"] is True


@pytest.mark.asyncio
async def test_cancelled_appointment_frees_slot(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    therapist_id = clinic["therapists"][0]
    created = await client.post(
        "/api/v1/appointments",
        json={
            "patientId": clinic["patients"][0],
            "therapistId": therapist_id,
            "date": "14/06/2030",
            "time": "15:30",
        },
        headers=auth_headers,
    )
    await client.patch(
        f"/api/v1/appointments/{created.json()['id']}/status",
        json={"status": "cancelled"},
        headers=auth_headers,
    )

    response = await client.get(
        "/api/v1/availability",
        params={"therapistId": therapist_id, "date": "2030-06-14", "time": "15:30"},
        headers=auth_headers,
    )
    assert response.json()["available"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize(("on", "at"), [("31/02/2030", "9:00"), ("14/06/2030", "12:00")])
async def test_invalid_slot(client: AsyncClient, auth_headers: dict, on: str, at: str) -> None:
    response = await client.get(
        "/api/v1/availability",
        params={"therapistId": 1, "date": on, "time": at},
        headers=auth_headers,
    )
    assert response.status_code == 422
