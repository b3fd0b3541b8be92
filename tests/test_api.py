from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from therapy_backend.api_main import app
from therapy_backend.db import db_session
from therapy_backend.models import Appointment, AppointmentStatus
from therapy_backend.reminders import get_appointment_snapshot
from therapy_backend.services import create_service_assignment


@pytest.fixture
def api():
    with TestClient(app) as c:
        yield c


def test_sweep_then_list_and_mark_read(api, client_id):
    create_service_assignment(client_id, expiration_date=date(2024, 1, 20))

    r = api.post("/api/ops/sweep", json={"now": "2024-01-01"})
    assert r.status_code == 200
    assert r.json()["data"] == {"created": 1, "skipped": 0, "failed": 0}

    r = api.get(f"/api/clients/{client_id}/alerts")
    body = r.json()
    assert body["success"] is True
    assert body["data"]["unread"] == 1
    (alert,) = body["data"]["alerts"]
    assert alert["date"] == "2024-01-20"
    assert alert["audience"] == "clients"

    assert api.get(f"/api/clinicians/{client_id}/alerts").json()["data"]["alerts"] == []

    r = api.patch(f"/api/alerts/{alert['id']}/read")
    assert r.status_code == 200
    assert api.get(f"/api/clients/{client_id}/alerts").json()["data"]["unread"] == 0


def test_unknown_audience_is_rejected(api):
    r = api.get("/api/admins/x/alerts")
    assert r.status_code == 422
    assert r.json()["success"] is False
    assert r.json()["data"][0]["loc"] == ["path", "audience"]


def test_mark_unknown_alert_is_404(api):
    r = api.patch("/api/alerts/nope/read")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Alert non trovato: nope", "data": None}


def test_admin_create_list_update(api, client_id):
    payload = {"subject_id": client_id, "audience": "clinicians", "message": "Treatment plan signature missing", "date": "2024-02-01"}

    r = api.post("/api/admin/alerts", json=payload)
    assert r.status_code == 201
    assert r.json()["data"] == {"created": True}
    assert api.post("/api/admin/alerts", json=payload).json()["data"] == {"created": False}

    listing = api.get("/api/admin/alerts", params={"audience": "clinicians", "description": "signature"}).json()
    assert listing["data"]["total"] == 1
    alert_id = listing["data"]["data"][0]["id"]

    r = api.patch(f"/api/admin/alerts/{alert_id}", json={"date": "2024-03-01", "read": True})
    assert r.status_code == 200
    assert r.json()["data"]["date"] == "2024-03-01"
    assert r.json()["data"]["read"] is True

    assert api.patch("/api/admin/alerts/missing", json={"read": True}).status_code == 404


def test_admin_update_conflict_is_409(api, client_id):
    base = {"subject_id": client_id, "audience": "clients", "date": "2024-02-01"}
    api.post("/api/admin/alerts", json={**base, "message": "first"})
    api.post("/api/admin/alerts", json={**base, "message": "second"})
    second = api.get("/api/admin/alerts", params={"description": "second"}).json()["data"]["data"][0]

    r = api.patch(f"/api/admin/alerts/{second['id']}", json={"message": "first"})
    assert r.status_code == 409


def test_book_appointment_and_reminders(api, client_id):
    start = datetime.utcnow() + timedelta(hours=3)
    r = api.post("/api/appointments", json={"client_id": client_id, "scheduled_at": start.isoformat()})
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["status"] == "PENDING"
    assert data["reminders"]["sent"] == 1

    r = api.post("/api/ops/reminders", json={"now": (start - timedelta(hours=2)).isoformat()})
    assert r.json()["data"]["sent"] == 1
    r = api.post("/api/ops/reminders", json={"now": (start - timedelta(hours=2)).isoformat()})
    assert r.json()["data"]["sent"] == 0


def test_book_appointment_unknown_client_is_404(api):
    r = api.post("/api/appointments", json={"client_id": "ghost", "scheduled_at": "2026-03-11T10:00:00"})
    assert r.status_code == 404


def test_reminders_accept_timezone_aware_now(api, make_appointment):
    make_appointment(datetime(2026, 3, 11, 10, 0))

    r = api.post("/api/ops/reminders", json={"now": "2026-03-11T09:30:00Z"})
    assert r.status_code == 200
    assert r.json()["data"]["sent"] == 1

    # stesso istante con un altro fuso: stage già inviato
    r = api.post("/api/ops/reminders", json={"now": "2026-03-11T10:30:00+01:00"})
    assert r.status_code == 200
    assert r.json()["data"]["sent"] == 0


def test_booking_with_offset_is_stored_as_utc(api, client_id):
    r = api.post("/api/appointments", json={"client_id": client_id, "scheduled_at": "2030-01-01T10:00:00+02:00"})
    assert r.status_code == 201

    snap = get_appointment_snapshot(r.json()["data"]["appointment_id"])
    assert snap.scheduled_at == datetime(2030, 1, 1, 8, 0)


def test_cancel_appointment_route(api, make_appointment):
    appointment_id = make_appointment(datetime(2026, 3, 11, 10, 0))

    r = api.post(f"/api/appointments/{appointment_id}/cancel")
    assert r.status_code == 200
    assert r.json()["data"] == {"cancelled": True}
    with db_session() as s:
        assert s.get(Appointment, appointment_id).status == AppointmentStatus.CANCELLED

    assert api.post(f"/api/appointments/{appointment_id}/cancel").json()["data"] == {"cancelled": False}

    r = api.post("/api/appointments/ghost/cancel")
    assert r.status_code == 404
    assert r.json()["success"] is False
