from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from booking_sync.main import build_booking_service, create_app
from booking_sync.services.email_service import EmailResult, EmailService

CANONICAL = {
    "customerName": "Alex",
    "customerEmail": "alex@example.com",
    "serviceId": "1",
    "date": "2024-06-01",
    "startTime": "10:00",
    "endTime": "10:30",
    "status": "active",
    "type": "booking",
}


def test_post_then_get_round_trip(client):
    response = client.post("/bookings", json=CANONICAL)
    assert response.status_code == 201
    created = response.json()["booking"]
    assert created["id"]
    assert created["price"] == 35

    listing = client.get("/bookings")
    assert listing.status_code == 200
    matches = [b for b in listing.json() if b["id"] == created["id"]]
    assert len(matches) == 1
    for field in ("customerName", "customerEmail", "serviceId", "date", "startTime", "endTime", "status", "type"):
        assert matches[0][field] == CANONICAL[field]


def test_loose_payload_is_normalized(client):
    response = client.post("/bookings", json={
        "name": "Sam",
        "email": "sam@example.com",
        "service": "Student Haircut",
        "date": "2024-05-01",
        "time": "2:30 PM",
    })
    assert response.status_code == 201
    booking = response.json()["booking"]
    assert booking["price"] == 25
    assert booking["startTime"] == "14:30"
    assert booking["endTime"] == "15:30"
    assert booking["customerName"] == "Sam"


def test_repost_with_same_id_is_a_no_op(client):
    payload = {**CANONICAL, "id": "fixed-id"}
    client.post("/bookings", json=payload)
    again = client.post("/bookings", json={**payload, "customerName": "Someone Else"})

    assert again.status_code == 201
    assert again.json()["booking"]["customerName"] == "Alex"
    assert len(client.get("/bookings").json()) == 1


def test_overlap_is_advisory_by_default(client):
    client.post("/bookings", json=CANONICAL)
    response = client.post("/bookings", json={**CANONICAL, "customerName": "Blake", "startTime": "10:15", "endTime": "10:45"})

    assert response.status_code == 201
    conflicts = response.json()["conflicts"]
    assert len(conflicts) == 1
    assert conflicts[0]["customerName"] == "Alex"
    assert len(client.get("/bookings").json()) == 2


def test_overlap_rejected_when_enforcing(store_path, catalog, email_service):
    service = build_booking_service(bookings_file=store_path, catalog=catalog, email_service=email_service,
                                    enforce_no_overlap=True)
    with TestClient(create_app(service)) as enforcing_client:
        enforcing_client.post("/bookings", json=CANONICAL)
        response = enforcing_client.post("/bookings", json={**CANONICAL, "startTime": "10:15", "endTime": "10:45"})

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"
        assert len(enforcing_client.get("/bookings").json()) == 1


def test_missing_canonical_fields_rejected_without_side_effects(client):
    response = client.post("/bookings", json={"startTime": "10:00", "date": "2024-06-01"})

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert "customerName" in body["fields"]
    assert client.get("/bookings").json() == []


def test_canonical_body_without_start_time_is_rejected_not_degraded(client):
    payload = {key: value for key, value in CANONICAL.items() if key != "startTime"}
    response = client.post("/bookings", json=payload)

    assert response.status_code == 422
    assert response.json()["fields"] == ["startTime"]
    assert client.get("/bookings").json() == []


def test_non_json_body_rejected(client):
    response = client.post("/bookings", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 422


def test_conflict_check(client):
    client.post("/bookings", json=CANONICAL)

    busy = client.post("/bookings/check", json={"date": "2024-06-01", "startTime": "10:15", "endTime": "11:00"})
    assert busy.json()["conflict"] is True

    free = client.post("/bookings/check", json={"date": "2024-06-01", "startTime": "10:30", "endTime": "11:00"})
    assert free.json() == {"conflict": False, "conflicts": []}

    inverted = client.post("/bookings/check", json={"date": "2024-06-01", "startTime": "11:00", "endTime": "10:00"})
    assert inverted.status_code == 422


def test_cancel_booking(client):
    booking_id = client.post("/bookings", json=CANONICAL).json()["booking"]["id"]

    response = client.post(f"/bookings/{booking_id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    # still listed, now cancelled
    listing = client.get("/bookings").json()
    assert [b["status"] for b in listing] == ["cancelled"]

    # the slot is free again
    check = client.post("/bookings/check", json={"date": "2024-06-01", "startTime": "10:00", "endTime": "10:30"})
    assert check.json()["conflict"] is False


def test_cancel_unknown_booking(client):
    response = client.post("/bookings/missing/cancel")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_list_services(client):
    response = client.get("/services")
    assert response.status_code == 200
    names = [s["name"] for s in response.json()]
    assert "Good Vibes Experience" in names
    assert len(names) == 7


def test_email_failure_does_not_affect_booking(store_path, catalog, monkeypatch):
    from booking_sync.core.config import settings
    monkeypatch.setattr(settings, "EMAIL_RETRY_BACKOFF_SECONDS", 0)

    failing = EmailService(api_key="re_test")
    failing.send = AsyncMock(return_value=EmailResult(ok=False, error="provider down"))
    service = build_booking_service(bookings_file=store_path, catalog=catalog, email_service=failing)

    with TestClient(create_app(service)) as test_client:
        response = test_client.post("/bookings", json=CANONICAL)
        assert response.status_code == 201
        assert len(test_client.get("/bookings").json()) == 1

    # retried in the background, then given up
    assert failing.send.await_count == settings.EMAIL_MAX_RETRIES


def test_confirmation_sent_in_background(client, booking_service):
    with patch.object(booking_service, "confirm_booking", new_callable=AsyncMock) as mock_confirm:
        response = client.post("/bookings", json=CANONICAL)

    assert response.status_code == 201
    mock_confirm.assert_awaited_once()
    assert mock_confirm.await_args[0][0].id == response.json()["booking"]["id"]


def test_storage_failure_returns_503(client, booking_service):
    with patch.object(booking_service.store, "_write_all", side_effect=OSError("read-only fs")):
        response = client.post("/bookings", json=CANONICAL)

    assert response.status_code == 503
    assert response.json()["retryable"] is True


def test_send_confirmation_simulated(client):
    response = client.post("/api/send-confirmation", json={
        "email": "sam@example.com",
        "name": "Sam",
        "serviceName": "Beard Trim",
        "date": "2024-05-01",
        "time": "14:30",
        "price": 25,
    })
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["simulated"] is True


def test_send_confirmation_missing_fields(client):
    response = client.post("/api/send-confirmation", json={"email": "sam@example.com"})
    assert response.status_code == 400


def test_send_confirmation_treats_falsy_price_as_missing(client):
    base = {"email": "sam@example.com", "name": "Sam", "serviceName": "Beard Trim",
            "date": "2024-05-01", "time": "14:30"}

    assert client.post("/api/send-confirmation", json={**base, "price": 0}).status_code == 400
    assert client.post("/api/send-confirmation", json={**base, "price": ""}).status_code == 400
    # non-numeric prices are passed through to the template like any other text
    assert client.post("/api/send-confirmation", json={**base, "price": "25 USD"}).status_code == 200


def test_unhandled_errors_hide_details(store_path, catalog, email_service):
    service = build_booking_service(bookings_file=store_path, catalog=catalog, email_service=email_service)
    app = create_app(service)
    with patch.object(service, "list_bookings", new_callable=AsyncMock, side_effect=RuntimeError("secret path /var/x")):
        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.get("/bookings")

    assert response.status_code == 500
    assert "secret" not in response.text
    assert response.json()["message"] == "Internal Server Error"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
