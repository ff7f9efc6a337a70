import pytest
from fastapi.testclient import TestClient

from booking_sync.core.catalog import DEFAULT_SERVICES, ServiceCatalog
from booking_sync.main import build_booking_service, create_app
from booking_sync.models.booking import Booking
from booking_sync.services.email_service import EmailService
from booking_sync.services.store import BookingStore


@pytest.fixture
def catalog():
    return ServiceCatalog(DEFAULT_SERVICES)


@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "bookings.json")


@pytest.fixture
def store(store_path):
    return BookingStore(store_path, write_retries=2, retry_backoff=0)


@pytest.fixture
def email_service():
    # No API key -> simulated sends, nothing leaves the machine
    return EmailService(api_key="")


@pytest.fixture
def booking_service(store_path, catalog, email_service):
    return build_booking_service(bookings_file=store_path, catalog=catalog, email_service=email_service)


@pytest.fixture
def client(booking_service):
    app = create_app(booking_service)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_booking():
    def _make(**overrides) -> Booking:
        data = {
            "id": "b1",
            "customerName": "Alex",
            "customerEmail": "alex@example.com",
            "serviceId": "1",
            "serviceName": "Standard Haircut",
            "price": 35,
            "date": "2024-06-01",
            "startTime": "10:00",
            "endTime": "10:30",
            "status": "active",
            "type": "booking",
        }
        data.update(overrides)
        return Booking.model_validate(data)
    return _make
