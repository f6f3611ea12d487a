import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.integrations.payment import MockPaymentGateway
from app.models.domain import User, UserRole
from app.services.retry import RetryPolicy
from app.storage.repository import InMemoryRepository
from main import create_app

from conftest import RecordingNotifier, no_sleep


def booking_payload(**overrides) -> dict:
    payload = {
        "user_name": "Jane Driver",
        "phone_number": "5551234567",
        "vehicle_brand": "Honda",
        "vehicle_model": "Civic",
        "vehicle_color": "Blue",
        "license_plate": "abc123",
        "vehicle_size": "Medium",
        "pickup_address": "123 Main St, Springfield",
        "drop_off_address": "456 Elm Ave, Shelbyville",
        "pickup_datetime": (datetime.now(timezone.utc) + timedelta(hours=2)).isoformat(),
        "distance": 10,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def repository():
    repo = InMemoryRepository()
    for user_id, role in (("u-user", UserRole.user), ("u-admin", UserRole.admin), ("u-root", UserRole.super_admin)):
        repo.users[user_id] = User(id=user_id, email=f"{user_id}@example.com", role=role)
    return repo


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(repository, notifier):
    app = create_app(
        settings=Settings(allow_test_mode=True, storage_backend="memory", payment_provider="mock"),
        repository=repository,
        payment_gateway=MockPaymentGateway(),
        notifier=notifier,
        retry_policy=RetryPolicy(sleep=no_sleep),
    )
    return TestClient(app)


def test_health_reports_backends(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "storage": "memory", "payments": "mock"}


def test_quote_prices_round_trip(client):
    resp = client.post("/bookings/quote", json={"vehicle_size": "Medium", "distance": 10})

    assert resp.status_code == 200
    body = resp.json()
    assert body["tow_truck_type"] == "Standard"
    assert body["total_cost"] == 90


def test_quote_without_distance_or_route_client(client):
    resp = client.post("/bookings/quote", json={"vehicle_size": "Medium"})

    assert resp.status_code == 422
    assert resp.json()["errors"] == {"distance": "required"}


def test_payment_intent_returns_client_secret(client):
    resp = client.post("/payments/intent", json={"amount": 9000})

    assert resp.status_code == 200
    assert "_secret_" in resp.json()["clientSecret"]


def test_payment_intent_rejects_tiny_amounts(client):
    assert client.post("/payments/intent", json={"amount": 10}).status_code == 422


def test_paid_booking_flow(client, repository, notifier):
    secret = client.post("/payments/intent", json={"amount": 9000}).json()["clientSecret"]

    resp = client.post(
        "/bookings",
        json=booking_payload(payment_client_secret=secret),
        headers={"X-User-Id": "u-user"},
    )

    assert resp.status_code == 201
    confirmation = resp.json()
    assert confirmation["status"] == "paid"
    assert confirmation["total_cost"] == 90
    assert confirmation["service_number"].startswith("TW-")
    assert len(notifier.calls) == 1

    fetched = client.get(f"/bookings/{confirmation['booking_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["user_id"] == "u-user"
    assert fetched.json()["license_plate"] == "ABC123"
    assert fetched.json()["service_id"] == confirmation["service_id"]


def test_booking_requires_session(client, repository):
    secret = client.post("/payments/intent", json={"amount": 9000}).json()["clientSecret"]

    resp = client.post("/bookings", json=booking_payload(payment_client_secret=secret))

    assert resp.status_code == 401
    assert repository.bookings == {}


def test_unknown_session_user_is_rejected(client):
    resp = client.post("/bookings", json=booking_payload(), headers={"X-User-Id": "ghost"})

    assert resp.status_code == 401


def test_past_pickup_is_rejected(client, repository):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

    resp = client.post(
        "/bookings",
        json=booking_payload(pickup_datetime=past, test_mode=True),
        headers={"X-User-Id": "u-user"},
    )

    assert resp.status_code == 422
    assert "pickup_datetime" in resp.json()["errors"]
    assert repository.services == {}


def test_declined_payment_is_402(client):
    resp = client.post(
        "/bookings",
        json=booking_payload(payment_client_secret="pi_unknown_secret_x"),
        headers={"X-User-Id": "u-user"},
    )

    assert resp.status_code == 402


def test_test_mode_booking(client, repository):
    resp = client.post("/bookings", json=booking_payload(test_mode=True))

    assert resp.status_code == 201
    assert resp.json()["status"] == "test_mode"
    assert resp.json()["is_test_mode"] is True
    booking = next(iter(repository.bookings.values()))
    assert booking.user_id is None


def test_missing_booking_is_404(client):
    assert client.get("/bookings/nope").status_code == 404


def test_admin_requires_session(client):
    assert client.get("/admin/bookings").status_code == 401


def test_admin_rejects_plain_users(client):
    resp = client.get("/admin/bookings", headers={"X-User-Id": "u-user"})

    assert resp.status_code == 403


def test_admin_lists_bookings(client):
    client.post("/bookings", json=booking_payload(test_mode=True))

    resp = client.get("/admin/bookings?page=1&limit=5", headers={"X-User-Id": "u-admin"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["totalPages"] == 1
    assert body["data"][0]["service"]["status"] == "test_mode"


def test_admin_rejects_bad_paging(client):
    resp = client.get("/admin/bookings?page=0", headers={"X-User-Id": "u-admin"})

    assert resp.status_code == 422


def test_admin_status_cannot_move_backwards(client):
    booking_id = client.post("/bookings", json=booking_payload(test_mode=True)).json()["booking_id"]

    resp = client.patch(
        f"/admin/bookings/{booking_id}",
        json={"status": "pending"},
        headers={"X-User-Id": "u-admin"},
    )

    assert resp.status_code == 422


def test_admin_creates_priced_booking(client):
    payload = booking_payload(vehicle_size="Large", distance=4)
    resp = client.post("/admin/bookings", json=payload, headers={"X-User-Id": "u-admin"})

    assert resp.status_code == 201
    assert resp.json()["tow_truck_type"] == "Heavy Duty"
    assert resp.json()["total_cost"] == 95
    assert resp.json()["status"] == "pending"


def test_only_super_admin_deletes_users(client, repository):
    denied = client.delete("/admin/users/u-user", headers={"X-User-Id": "u-admin"})
    assert denied.status_code == 403
    assert "u-user" in repository.users

    allowed = client.delete("/admin/users/u-user", headers={"X-User-Id": "u-root"})
    assert allowed.status_code == 204
    assert "u-user" not in repository.users


def test_admin_analytics(client):
    client.post("/bookings", json=booking_payload(test_mode=True))

    resp = client.get("/admin/analytics", headers={"X-User-Id": "u-admin"})

    assert resp.status_code == 200
    assert resp.json()["total_bookings"] == 1


@pytest.mark.parametrize("value", ["NaN", "Infinity"])
def test_non_finite_distance_is_rejected(client, repository, value):
    body = json.dumps(booking_payload(distance=0, test_mode=True)).replace('"distance": 0', f'"distance": {value}')

    resp = client.post("/bookings", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 422
    assert repository.bookings == {}


def test_validation_runs_before_session_lookup(client):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

    resp = client.post("/bookings", json=booking_payload(pickup_datetime=past), headers={"X-User-Id": "ghost"})

    assert resp.status_code == 422
    assert "pickup_datetime" in resp.json()["errors"]
