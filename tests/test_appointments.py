"""Tests for appointment endpoints."""

import pytest
from httpx import AsyncClient

API = "/api/v1/appointments"


def _booking(clinic: dict, **overrides) -> dict:
    body = {
        "patientId": clinic["patients"][0],
        "therapistId": clinic["therapists"][0],
        "date": "14/06/2030",
        "time": "9:00",
        "duration": 45,
        "type": "Bilan",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient, clinic: dict) -> None:
    response = await client.get(API)
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_create_appointment(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    """Test creating an appointment."""
    response = await client.post(API, json=_booking(clinic), headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["date"] == "14/06/2030"
    assert data["time"] == "9:00"
    assert data["status"] == "confirmed"
    assert data["isRecurring"] is False
    assert data["patientName"] == "Lucas Petit"
    assert data["therapistName"] == "Claire Martin"
    # A confirmed appointment is billed right away
    assert data["invoiceId"] is not None


@pytest.mark.asyncio
async def test_pending_appointment_is_not_invoiced(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(API, json=_booking(clinic, status="pending"), headers=auth_headers)

    assert response.status_code == 201
    assert response.json()["invoiceId"] is None


@pytest.mark.asyncio
async def test_create_rejects_off_catalogue_time(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(API, json=_booking(clinic, time="12:30"), headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_unknown_patient(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    response = await client.post(API, json=_booking(clinic, patientId=9999), headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_double_booking_is_rejected(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    first = await client.post(API, json=_booking(clinic), headers=auth_headers)
    assert first.status_code == 201

    second = await client.post(
        API,
        json=_booking(clinic, patientId=clinic["patients"][1]),
        headers=auth_headers,
    )

    assert second.status_code == 409
    data = second.json()
    assert data["message"] == "Ce créneau est déjà réservé pour Lucas Petit"
    assert data["conflictInfo"]["patientId"] == clinic["patients"][0]
    assert data["conflictInfo"]["patientName"] == "Lucas Petit"


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_rebooked(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    first = await client.post(API, json=_booking(clinic), headers=auth_headers)
    cancelled = await client.patch(
        f"{API}/{first.json()['id']}/status",
        json={"status": "cancelled"},
        headers=auth_headers,
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["cancelledAt"] is not None

    again = await client.post(
        API,
        json=_booking(clinic, patientId=clinic["patients"][1]),
        headers=auth_headers,
    )
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_create_recurring_series(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    response = await client.post(
        API,
        json=_booking(
            clinic,
            date="06/01/2031",
            time="10:00",
            isRecurring=True,
            recurringFrequency="monthly",
            recurringCount=3,
        ),
        headers=auth_headers,
    )

    assert response.status_code == 201
    series = response.json()
    assert [a["date"] for a in series] == ["06/01/2031", "10/02/2031", "10/03/2031"]

    parent, *children = series
    assert parent["parentAppointmentId"] is None
    assert all(child["parentAppointmentId"] == parent["id"] for child in children)
    assert all(a["recurringFrequency"] == "monthly" for a in series)
    # One invoice for the whole series
    assert len({a["invoiceId"] for a in series}) == 1


@pytest.mark.asyncio
async def test_recurring_requires_frequency(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(API, json=_booking(clinic, isRecurring=True), headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_recurring_conflict_books_nothing(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    taken = await client.post(
        API,
        json=_booking(clinic, date="20/06/2030", patientId=clinic["patients"][1]),
        headers=auth_headers,
    )
    assert taken.status_code == 201

    response = await client.post(
        API,
        json=_booking(
            clinic,
            date="06/06/2030",
            isRecurring=True,
            recurringFrequency="weekly",
            recurringCount=4,
        ),
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["conflicts"][0]["date"] == "20/06/2030"

    listing = await client.get(
        API,
        params={"patientId": clinic["patients"][0]},
        headers=auth_headers,
    )
    assert listing.json() == []


@pytest.mark.asyncio
async def test_create_multiple_appointments(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(
        f"{API}/multiple",
        json={
            "patientId": clinic["patients"][0],
            "therapistId": clinic["therapists"][1],
            "slots": [
                {"date": "17/06/2030", "time": "9:00"},
                {"date": "18/06/2030", "time": "14:30"},
                {"date": "20/06/2030", "time": "17:00"},
            ],
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert len(data["appointments"]) == 3
    invoice = data["invoice"]
    assert invoice["totalAmount"] == "150.00"
    assert invoice["appointmentId"] == data["appointments"][0]["id"]
    assert invoice["notes"].startswith("Facture groupée pour 3 séances:")
    assert all(a["invoiceId"] == invoice["id"] for a in data["appointments"])


@pytest.mark.asyncio
async def test_batch_multi_therapist_skips_incomplete(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    first, second, third = clinic["therapists"]
    response = await client.post(
        f"{API}/batch",
        json={
            "mode": "multi_therapist",
            "patientId": clinic["patients"][0],
            "therapistIds": [first, second, third],
            "schedules": [
                {"therapistId": first, "date": "14/06/2030", "time": "9:00"},
                {"therapistId": second, "date": "14/06/2030"},
            ],
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["createdCount"] == 1
    assert data["skippedTherapistIds"] == [second, third]
    assert data["appointments"][0]["therapistId"] == first
    assert len(data["invoices"]) == 1


@pytest.mark.asyncio
async def test_batch_multi_therapist_own_schedules(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    first, second, third = clinic["therapists"]
    response = await client.post(
        f"{API}/batch",
        json={
            "mode": "multi_therapist",
            "patientId": clinic["patients"][0],
            "therapistIds": [first, second, third],
            "schedules": [
                {"therapistId": first, "date": "14/06/2030", "time": "9:00"},
                {"therapistId": third, "date": "15/06/2030", "time": "14:00"},
            ],
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["createdCount"] == 2
    assert data["skippedTherapistIds"] == [second]
    assert [(a["therapistId"], a["date"], a["time"]) for a in data["appointments"]] == [
        (first, "14/06/2030", "9:00"),
        (third, "15/06/2030", "14:00"),
    ]


@pytest.mark.asyncio
async def test_batch_multi_therapist_without_any_slot(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(
        f"{API}/batch",
        json={
            "mode": "multi_therapist",
            "patientId": clinic["patients"][0],
            "therapistIds": clinic["therapists"],
        },
        headers=auth_headers,
    )

    assert response.status_code == 422
    listing = await client.get(API, headers=auth_headers)
    assert listing.json() == []


@pytest.mark.asyncio
async def test_batch_multi_therapist_with_defaults(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(
        f"{API}/batch",
        json={
            "mode": "multi_therapist",
            "patientId": clinic["patients"][0],
            "therapistIds": clinic["therapists"],
            "defaultDate": "14/06/2030",
            "defaultTime": "11:00",
        },
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["createdCount"] == 3
    # Each therapist bills separately
    assert len({invoice["id"] for invoice in data["invoices"]}) == 3


@pytest.mark.asyncio
async def test_batch_repeated_slot_is_rejected(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(
        f"{API}/batch",
        json={
            "mode": "multi_slot",
            "patientId": clinic["patients"][0],
            "therapistId": clinic["therapists"][0],
            "slots": [
                {"date": "14/06/2030", "time": "9:00"},
                {"date": "14/06/2030", "time": "9:00"},
            ],
        },
        headers=auth_headers,
    )

    assert response.status_code == 409
    assert "demandé plusieurs fois" in response.json()["message"]


@pytest.mark.asyncio
async def test_list_appointments_with_filters(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    """Test listing appointments."""
    for day in ("14/06/2030", "15/06/2030", "16/06/2030"):
        await client.post(API, json=_booking(clinic, date=day), headers=auth_headers)

    response = await client.get(API, headers=auth_headers)
    assert response.status_code == 200
    assert [a["date"] for a in response.json()] == ["14/06/2030", "15/06/2030", "16/06/2030"]

    response = await client.get(
        API,
        params={"fromDate": "15/06/2030", "toDate": "15/06/2030"},
        headers=auth_headers,
    )
    assert [a["date"] for a in response.json()] == ["15/06/2030"]

    response = await client.get(API, params={"fromDate": "not-a-date"}, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_listing_completes_elapsed_pending(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    past = await client.post(
        API,
        json=_booking(clinic, date="14/06/2021", status="pending"),
        headers=auth_headers,
    )
    future = await client.post(
        API,
        json=_booking(clinic, status="pending"),
        headers=auth_headers,
    )

    response = await client.get(API, headers=auth_headers)
    statuses = {a["id"]: a["status"] for a in response.json()}
    assert statuses[past.json()["id"]] == "completed"
    assert statuses[future.json()["id"]] == "pending"


@pytest.mark.asyncio
async def test_get_appointment(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    """Test getting a specific appointment."""
    created = await client.post(API, json=_booking(clinic), headers=auth_headers)
    appointment_id = created.json()["id"]

    response = await client.get(f"{API}/{appointment_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["id"] == appointment_id

    missing = await client.get(f"{API}/99999", headers=auth_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_reschedule_checks_target_slot(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    await client.post(
        API,
        json=_booking(clinic, time="10:00", patientId=clinic["patients"][1]),
        headers=auth_headers,
    )
    created = await client.post(API, json=_booking(clinic), headers=auth_headers)
    appointment_id = created.json()["id"]

    conflict = await client.put(f"{API}/{appointment_id}", json={"time": "10:00"}, headers=auth_headers)
    assert conflict.status_code == 409
    assert conflict.json()["conflictInfo"]["patientName"] == "Emma Durand"

    # Keeping its own slot is not a conflict
    same = await client.put(
        f"{API}/{appointment_id}",
        json={"time": "9:00", "notes": "Apporter le bilan"},
        headers=auth_headers,
    )
    assert same.status_code == 200
    assert same.json()["notes"] == "Apporter le bilan"

    moved = await client.put(f"{API}/{appointment_id}", json={"time": "10:30"}, headers=auth_headers)
    assert moved.status_code == 200
    assert moved.json()["time"] == "10:30"


@pytest.mark.asyncio
async def test_reactivating_into_taken_slot_is_rejected(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    created = await client.post(API, json=_booking(clinic), headers=auth_headers)
    appointment_id = created.json()["id"]
    await client.patch(f"{API}/{appointment_id}/status", json={"status": "cancelled"}, headers=auth_headers)
    await client.post(API, json=_booking(clinic, patientId=clinic["patients"][1]), headers=auth_headers)

    response = await client.patch(
        f"{API}/{appointment_id}/status",
        json={"status": "confirmed"},
        headers=auth_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_parent_status_propagates_to_children(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    created = await client.post(
        API,
        json=_booking(clinic, isRecurring=True, recurringFrequency="weekly", recurringCount=3),
        headers=auth_headers,
    )
    parent_id = created.json()[0]["id"]

    response = await client.patch(
        f"{API}/{parent_id}/status",
        json={"status": "cancelled"},
        headers=auth_headers,
    )
    assert response.status_code == 200

    listing = await client.get(API, headers=auth_headers)
    assert {a["status"] for a in listing.json()} == {"cancelled"}


@pytest.mark.asyncio
async def test_reactivating_series_checks_child_slots(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    created = await client.post(
        API,
        json=_booking(
            clinic,
            date="06/01/2031",
            time="10:00",
            isRecurring=True,
            recurringFrequency="weekly",
            recurringCount=3,
        ),
        headers=auth_headers,
    )
    parent_id = created.json()[0]["id"]
    await client.patch(f"{API}/{parent_id}/status", json={"status": "cancelled"}, headers=auth_headers)
    await client.post(
        API,
        json=_booking(clinic, patientId=clinic["patients"][1], date="13/01/2031", time="10:00"),
        headers=auth_headers,
    )

    response = await client.patch(
        f"{API}/{parent_id}/status",
        json={"status": "confirmed"},
        headers=auth_headers,
    )

    assert response.status_code == 409
    body = response.json()
    assert body["message"] == "Le créneau du 13/01/2031 à 10:00 est déjà réservé pour le patient Emma Durand"
    assert body["conflictInfo"]["patientName"] == "Emma Durand"
    assert body["conflicts"][0]["date"] == "13/01/2031"

    # Nothing was reactivated
    parent = await client.get(f"{API}/{parent_id}", headers=auth_headers)
    assert parent.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_delete_appointment(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    """Test deleting an appointment."""
    created = await client.post(API, json=_booking(clinic), headers=auth_headers)
    appointment_id = created.json()["id"]

    response = await client.delete(f"{API}/{appointment_id}", headers=auth_headers)
    assert response.status_code == 204

    response = await client.get(f"{API}/{appointment_id}", headers=auth_headers)
    assert response.status_code == 404

    invoices = await client.get("/api/v1/invoices", headers=auth_headers)
    assert invoices.json() == []


@pytest.mark.asyncio
async def test_delete_parent_removes_series(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    created = await client.post(
        API,
        json=_booking(clinic, isRecurring=True, recurringFrequency="biweekly", recurringCount=4),
        headers=auth_headers,
    )
    parent_id = created.json()[0]["id"]

    response = await client.delete(f"{API}/{parent_id}", headers=auth_headers)
    assert response.status_code == 204

    listing = await client.get(API, headers=auth_headers)
    assert listing.json() == []


@pytest.mark.asyncio
async def test_bulk_delete(client: AsyncClient, auth_headers: dict, clinic: dict) -> None:
    ids = []
    for day in ("14/06/2030", "15/06/2030"):
        created = await client.post(API, json=_booking(clinic, date=day), headers=auth_headers)
        ids.append(created.json()["id"])

    response = await client.request("DELETE", API, json={"ids": ids}, headers=auth_headers)
    assert response.status_code == 204

    listing = await client.get(API, headers=auth_headers)
    assert listing.json() == []


@pytest.mark.asyncio
async def test_bulk_delete_reports_partial_failure(
    client: AsyncClient,
    auth_headers: dict,
    clinic: dict,
) -> None:
    created = await client.post(
        API,
        json=_booking(clinic, isRecurring=True, recurringFrequency="weekly", recurringCount=2),
        headers=auth_headers,
    )
    parent_id, child_id = (a["id"] for a in created.json())

    response = await client.request(
        "DELETE",
        API,
        json={"ids": [parent_id, child_id, 99999]},
        headers=auth_headers,
    )

    assert response.status_code == 207
    data = response.json()
    assert data["message"] == "Suppression partielle des rendez-vous"
    # The child went with its parent
    assert [r["id"] for r in data["results"]] == [parent_id, child_id]
    assert data["failures"] == [{"id": 99999, "reason": "Appointment not found"}]


@pytest.mark.asyncio
async def test_therapist_sees_only_own_schedule(
    client: AsyncClient,
    auth_headers: dict,
    therapist_headers: dict,
    clinic: dict,
) -> None:
    own = await client.post(API, json=_booking(clinic), headers=auth_headers)
    other = await client.post(
        API,
        json=_booking(clinic, therapistId=clinic["therapists"][1]),
        headers=auth_headers,
    )

    listing = await client.get(API, headers=therapist_headers)
    assert [a["id"] for a in listing.json()] == [own.json()["id"]]

    response = await client.get(f"{API}/{other.json()['id']}", headers=therapist_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_therapist_cannot_book_for_colleague(
    client: AsyncClient,
    therapist_headers: dict,
    clinic: dict,
) -> None:
    response = await client.post(
        API,
        json=_booking(clinic, therapistId=clinic["therapists"][2]),
        headers=therapist_headers,
    )
    assert response.status_code == 403

    own = await client.post(API, json=_booking(clinic), headers=therapist_headers)
    assert own.status_code == 201
