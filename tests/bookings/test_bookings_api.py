import os
import sys
from datetime import datetime, timedelta, timezone

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from allocator_service.auth import ALGORITHM, SECRET_KEY
from allocator_service.main import app, get_booking_service
from booking_engine.clock import FixedClock
from booking_engine.config import EngineSettings
from booking_engine.database import Base, make_engine, make_session_factory
from booking_engine.models import Booking, BookingStatus, Resource
from booking_engine.service import BookingService

SETTINGS = EngineSettings(holidays=frozenset())
IST = SETTINGS.tz

engine = make_engine("sqlite://")
SessionTest = make_session_factory(engine)
clock = FixedClock(datetime(2025, 6, 1, 10, 0, tzinfo=IST), IST)
service = BookingService(SessionTest, settings=SETTINGS, clock=clock)

app.dependency_overrides[get_booking_service] = lambda: service
client = TestClient(app)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionTest() as session:
        session.add(Resource(id=1, name="Board Room"))
        session.commit()
    clock.set(datetime(2025, 6, 1, 10, 0, tzinfo=IST))
    yield
    Base.metadata.drop_all(bind=engine)


def make_token(user_id: str, username: str, role: str) -> str:
    payload = {
        "sub": username,
        "role": role,
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def auth(user_id: str = "u1", role: str = "user") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, f'name-{user_id}', role)}"}


def slot(hour: int, minute: int = 0, day: int = 2) -> str:
    # June 2025: the 2nd is a Monday
    return datetime(2025, 6, day, hour, minute, tzinfo=IST).isoformat()


def body(start_hour: int, end_hour: int, **overrides) -> dict:
    data = {
        "resource_id": 1,
        "start_time": slot(start_hour),
        "end_time": slot(end_hour),
        "purpose": "sprint planning",
    }
    data.update(overrides)
    return data


def add_approved(start_hour: int, end_hour: int) -> int:
    with SessionTest() as session:
        booking = Booking(
            resource_id=1,
            user_id="someone",
            start_time=datetime(2025, 6, 2, start_hour, tzinfo=IST),
            end_time=datetime(2025, 6, 2, end_hour, tzinfo=IST),
            status=BookingStatus.APPROVED,
        )
        session.add(booking)
        session.commit()
        return booking.id


def test_user_can_request_booking():
    res = client.post("/api/v1/bookings", json=body(10, 12), headers=auth())
    assert res.status_code == 201
    data = res.json()
    assert data["user_id"] == "u1"
    assert data["resource_id"] == 1
    assert data["status"] == "pending"
    assert data["purpose"] == "sprint planning"
    assert datetime.fromisoformat(data["start_time"]) == datetime(2025, 6, 2, 10, tzinfo=IST)


def test_request_requires_token():
    res = client.post("/api/v1/bookings", json=body(10, 12))
    assert res.status_code in (401, 403)

    bad = {"Authorization": "Bearer not-a-token"}
    res = client.post("/api/v1/bookings", json=body(10, 12), headers=bad)
    assert res.status_code == 401
    assert res.json()["service"] == "bookings"


def test_conflict_returns_suggestions():
    add_approved(10, 12)
    res = client.post(
        "/api/v1/bookings",
        json=body(10, 11, start_time=slot(10, 30), end_time=slot(11, 30)),
        headers=auth(),
    )
    assert res.status_code == 409
    data = res.json()
    assert data["error"] == "conflict"
    assert data["detail"].startswith("slot unavailable")
    suggestions = [datetime.fromisoformat(s) for s in data["suggestions"]]
    assert datetime(2025, 6, 2, 12, tzinfo=IST) in suggestions


def test_policy_violation_is_400():
    res = client.post("/api/v1/bookings", json=body(16, 18), headers=auth())
    assert res.status_code == 400
    assert res.json()["error"] == "policy_violation"


def test_invalid_time_range_is_400():
    res = client.post("/api/v1/bookings", json=body(12, 10), headers=auth())
    assert res.status_code == 400
    assert "end time must be after start time" in res.json()["detail"]


def test_blank_purpose_is_rejected():
    res = client.post("/api/v1/bookings", json=body(10, 11, purpose="   "), headers=auth())
    assert res.status_code == 422


def test_list_my_bookings_is_scoped_to_caller():
    assert client.post("/api/v1/bookings", json=body(10, 11), headers=auth("u1")).status_code == 201
    assert client.post("/api/v1/bookings", json=body(11, 12), headers=auth("u2")).status_code == 201

    res = client.get("/api/v1/bookings/me", headers=auth("u1"))
    assert res.status_code == 200
    page = res.json()
    assert page["meta"]["total"] == 1
    assert all(b["user_id"] == "u1" for b in page["data"])


def test_list_my_bookings_rejects_unknown_status():
    res = client.get("/api/v1/bookings/me", params={"status": "confirmed"}, headers=auth())
    assert res.status_code == 400


def test_only_admin_lists_all_bookings():
    client.post("/api/v1/bookings", json=body(10, 11), headers=auth("u1"))
    client.post("/api/v1/bookings", json=body(13, 14), headers=auth("u2"))

    assert client.get("/api/v1/bookings", headers=auth("u1")).status_code == 403

    res = client.get("/api/v1/bookings", params={"limit": 1}, headers=auth("admin1", "admin"))
    assert res.status_code == 200
    page = res.json()
    assert page["meta"] == {"page": 1, "limit": 1, "total": 2, "total_pages": 2}

    res = client.get("/api/v1/bookings", params={"user_id": "u2"}, headers=auth("admin1", "admin"))
    assert [b["user_id"] for b in res.json()["data"]] == ["u2"]


def test_admin_approval_rejects_overlapping_requests():
    first = client.post("/api/v1/bookings", json=body(10, 12), headers=auth("u1")).json()
    second = client.post("/api/v1/bookings", json=body(11, 13), headers=auth("u2")).json()

    admin = auth("admin1", "admin")
    res = client.put(f"/api/v1/bookings/{first['id']}/status", json={"status": "approved"}, headers=admin)
    assert res.status_code == 200
    assert res.json()["status"] == "approved"
    assert res.json()["approved_by"] == "admin1"

    res = client.get(f"/api/v1/bookings/{second['id']}", headers=auth("u2"))
    assert res.json()["status"] == "rejected"
    assert res.json()["rejection_reason"] == "Slot allocated to another request"

    res = client.put(f"/api/v1/bookings/{second['id']}/status", json={"status": "approved"}, headers=admin)
    assert res.status_code == 409
    assert res.json()["required"] == ["pending"]


def test_status_update_limits():
    booking = client.post("/api/v1/bookings", json=body(10, 11), headers=auth()).json()
    url = f"/api/v1/bookings/{booking['id']}/status"

    assert client.put(url, json={"status": "approved"}, headers=auth()).status_code == 403
    assert client.put(url, json={"status": "cancelled"}, headers=auth("admin1", "admin")).status_code == 400
    assert client.put(url, json={"status": "bogus"}, headers=auth("admin1", "admin")).status_code == 422

    res = client.put(
        url,
        json={"status": "rejected", "rejection_reason": "room under maintenance"},
        headers=auth("admin1", "admin"),
    )
    assert res.status_code == 200
    assert res.json()["rejection_reason"] == "room under maintenance"


def test_owner_cancels_and_others_cannot():
    booking = client.post("/api/v1/bookings", json=body(10, 11), headers=auth("u1")).json()
    url = f"/api/v1/bookings/{booking['id']}/cancel"

    assert client.post(url, headers=auth("u2")).status_code == 403
    res = client.post(url, headers=auth("u1"))
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert client.post(url, headers=auth("u1")).status_code == 409


def test_check_in_window():
    booking = client.post("/api/v1/bookings", json=body(10, 11), headers=auth()).json()
    client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "approved"},
        headers=auth("admin1", "admin"),
    )
    url = f"/api/v1/bookings/{booking['id']}/check-in"

    clock.set(datetime(2025, 6, 2, 9, 59, tzinfo=IST))
    assert client.post(url, headers=auth()).status_code == 400

    clock.set(datetime(2025, 6, 2, 10, 15, 1, tzinfo=IST))
    res = client.post(url, headers=auth())
    assert res.status_code == 403
    assert res.json()["error"] == "check_in_expired"

    clock.set(datetime(2025, 6, 2, 10, 5, tzinfo=IST))
    res = client.post(url, headers=auth())
    assert res.status_code == 200
    assert res.json()["status"] == "utilized"


def test_suggestions_endpoint():
    add_approved(9, 17)
    res = client.get(
        "/api/v1/bookings/suggestions",
        params={"resource_id": 1, "start_time": slot(9), "duration_hours": 2},
        headers=auth(),
    )
    assert res.status_code == 200
    data = res.json()
    assert data["duration_hours"] == 2
    first = datetime.fromisoformat(data["suggestions"][0])
    assert first == datetime(2025, 6, 3, 9, tzinfo=IST)


def test_unknown_booking_is_404():
    res = client.get("/api/v1/bookings/999", headers=auth())
    assert res.status_code == 404
    assert res.json()["detail"] == "booking not found"


def test_health():
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "running"
