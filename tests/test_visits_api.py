"""
HTTP tests for the EVV endpoints
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import pytest
from evv_service.config import PROXIMITY_POLICY_BLOCK, Settings
import evv_service.visits.router as visits_router

SITE = {"latitude": 39.7817, "longitude": -89.6501}
NEAR_SITE = {"latitude": 39.7820, "longitude": -89.6505, "accuracy_meters": 6.0}
FAR_FROM_SITE = {"latitude": 39.8000, "longitude": -89.7000, "accuracy_meters": 6.0}


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Local settings: no schema, no broker, no geocoder."""
    settings = Settings(database_url="sqlite+aiosqlite://")
    monkeypatch.setattr(visits_router, "get_settings", lambda: settings)
    return settings


async def _check_in(client, appointment_id="appt-100", position=NEAR_SITE, **extra):
    payload = {
        "appointment_id": appointment_id,
        "caregiver_id": "cg-12",
        "position": position,
        "expected_site": SITE,
        "site_address": "123 Main St, Springfield, IL",
    }
    payload.update(extra)
    return await client.post("/evv/check-in", json=payload)


@pytest.mark.asyncio
async def test_check_in_returns_created_visit(client):
    response = await _check_in(client, device_info={"platform": "iOS", "app_version": "2.1.0"})

    assert response.status_code == 201
    body = response.json()
    assert body["visit"]["status"] == "in_progress"
    assert body["visit"]["check_in_location"]["accuracy_meters"] == 6.0
    assert body["visit"]["device_info"]["platform"] == "iOS"
    assert body["visit"]["duration"] == "Incomplete"
    assert body["visit"]["check_in_time_local"] is not None
    assert body["visit"]["check_out_time_local"] is None
    assert body["proximity"]["is_valid"] is True
    assert body["warnings"] == []


@pytest.mark.asyncio
async def test_check_in_twice_conflicts(client):
    assert (await _check_in(client)).status_code == 201
    response = await _check_in(client)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_check_in_far_from_site_warns(client):
    response = await _check_in(client, position=FAR_FROM_SITE)

    assert response.status_code == 201
    body = response.json()
    assert body["proximity"]["is_valid"] is False
    assert "Maximum allowed: 100m" in body["warnings"][0]


@pytest.mark.asyncio
async def test_check_in_far_from_site_blocked_by_policy(client, monkeypatch):
    blocking = Settings(database_url="sqlite+aiosqlite://", proximity_policy=PROXIMITY_POLICY_BLOCK)
    monkeypatch.setattr(visits_router, "get_settings", lambda: blocking)

    response = await _check_in(client, position=FAR_FROM_SITE)

    assert response.status_code == 422
    assert response.json()["detail"].startswith("Location verification failed")
    status = await client.get("/evv/appointments/appt-100/status")
    assert status.json()["status"] == "not_started"


@pytest.mark.asyncio
async def test_check_in_with_denied_location(client):
    response = await _check_in(client, position={"error_code": "permission_denied"})

    assert response.status_code == 422
    assert response.json()["detail"] == "Unable to determine location: Location access denied by user"


@pytest.mark.asyncio
async def test_check_in_without_position_is_unsupported(client):
    response = await _check_in(client, position=None)
    assert response.status_code == 422
    assert "not supported" in response.json()["detail"]


@pytest.mark.asyncio
async def test_check_in_with_manual_location(client):
    response = await _check_in(
        client,
        position={"error_code": 2},
        manual_location={"latitude": 39.7818, "longitude": -89.6502},
    )

    assert response.status_code == 201
    assert response.json()["visit"]["check_in_location"]["source"] == "manual"


@pytest.mark.asyncio
async def test_full_visit_over_http(client):
    visit_id = (await _check_in(client)).json()["visit"]["id"]

    task = await client.put(
        f"/evv/{visit_id}/tasks/task_bathing_001",
        json={"name": "Bathing Assistance", "completed": True, "notes": "Assisted with shower"},
    )
    assert task.status_code == 200
    assert len(task.json()["tasks_completed"]) == 1

    check_out = await client.put(
        f"/evv/{visit_id}/check-out",
        json={
            "position": NEAR_SITE,
            "tasks_completed": [
                {"task_id": "task_bathing_001", "name": "Bathing Assistance", "completed": True, "notes": "Done"},
            ],
            "caregiver_notes": "Client in good spirits",
        },
    )
    assert check_out.status_code == 200
    visit = check_out.json()["visit"]
    assert visit["status"] == "completed"
    assert len(visit["tasks_completed"]) == 1
    assert visit["tasks_completed"][0]["notes"] == "Done"
    assert visit["duration"].endswith("m")

    pending = await client.get("/evv/pending-verifications")
    assert pending.json()["count"] == 1

    verify = await client.put(
        f"/evv/{visit_id}/verification",
        json={"verified_by": "sup-2", "verified": True, "notes": "All good"},
    )
    assert verify.status_code == 200
    assert verify.json()["supervisor_verification"]["verified"] is True

    pending = await client.get("/evv/pending-verifications")
    assert pending.json()["count"] == 0

    status = await client.get("/evv/appointments/appt-100/status")
    assert status.json() == {"appointment_id": "appt-100", "status": "completed", "visit_id": visit_id}


@pytest.mark.asyncio
async def test_check_out_unknown_visit(client):
    response = await client.put(f"/evv/{uuid4()}/check-out", json={"position": NEAR_SITE})
    assert response.status_code == 400
    assert response.json()["detail"] == "No visit in progress: check in first"


@pytest.mark.asyncio
async def test_verify_before_check_out(client):
    visit_id = (await _check_in(client)).json()["visit"]["id"]
    response = await client.put(f"/evv/{visit_id}/verification", json={"verified_by": "sup-2"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_get_visit_and_proximity(client):
    visit_id = (await _check_in(client)).json()["visit"]["id"]

    visit = await client.get(f"/evv/{visit_id}")
    assert visit.status_code == 200
    assert visit.json()["site_address"] == "123 Main St, Springfield, IL"

    proximity = await client.get(f"/evv/{visit_id}/proximity")
    assert proximity.json()["check_in"]["is_valid"] is True
    assert proximity.json()["check_out"] is None


@pytest.mark.asyncio
async def test_get_unknown_visit(client):
    response = await client.get(f"/evv/{uuid4()}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_appointment_listing_and_metrics(client):
    visit_id = (await _check_in(client)).json()["visit"]["id"]
    await client.put(f"/evv/{visit_id}/check-out", json={"position": NEAR_SITE})

    visits = await client.get("/evv/appointments/appt-100")
    assert visits.json()["count"] == 1

    metrics = await client.get("/evv/caregivers/cg-12/metrics")
    assert metrics.status_code == 200
    body = metrics.json()
    assert body["caregiver_id"] == "cg-12"
    assert body["compliance_rate"] == 100.0
    assert body["average_accuracy_meters"] == 6.0


@pytest.mark.asyncio
async def test_check_in_with_replayed_position_is_rejected(client):
    captured_at = (datetime.now(timezone.utc) - timedelta(days=3)).isoformat()
    response = await _check_in(client, position={**NEAR_SITE, "captured_at": captured_at})

    assert response.status_code == 422
    assert response.json()["detail"] == "Unable to determine location: Reported position is too old"
    status = await client.get("/evv/appointments/appt-100/status")
    assert status.json()["status"] == "not_started"


@pytest.mark.asyncio
async def test_check_in_with_fresh_captured_position(client):
    captured_at = (datetime.now(timezone.utc) - timedelta(seconds=5)).isoformat()
    response = await _check_in(client, position={**NEAR_SITE, "captured_at": captured_at})
    assert response.status_code == 201
