import json
import os
from typing import Dict, Iterable, List, Optional

from booking_sync.core.logger import logger
from booking_sync.models.booking import Service

DEFAULT_SERVICES = [
    Service(id="1", name="Standard Haircut", price=35, durationMinutes=30, color="bg-blue-100 border-blue-300 text-blue-800"),
    Service(id="2", name="Student Haircut", price=25, durationMinutes=30, color="bg-emerald-100 border-emerald-300 text-emerald-800"),
    Service(id="3", name="Beard Trim", price=25, durationMinutes=30, color="bg-orange-100 border-orange-300 text-orange-800"),
    Service(id="4", name="Clean Shave", price=30, durationMinutes=30, color="bg-purple-100 border-purple-300 text-purple-800"),
    Service(id="5", name="Vibes Experience", price=55, durationMinutes=60, color="bg-pink-100 border-pink-300 text-pink-800"),
    Service(id="6", name="Good Vibes Experience", price=70, durationMinutes=60, color="bg-rose-100 border-rose-300 text-rose-800"),
    Service(id="7", name="Ear/Nose Wax", price=8, durationMinutes=15, color="bg-teal-100 border-teal-300 text-teal-800"),
]


class ServiceCatalog:
    """
    In-memory service menu. Passed explicitly into every component that
    prices or validates bookings; never persisted by the booking core.
    """

    def __init__(self, services: Iterable[Service]):
        self._services: Dict[str, Service] = {}
        for service in services:
            self._services[service.id] = service

    def get(self, service_id: Optional[str]) -> Optional[Service]:
        if service_id is None:
            return None
        return self._services.get(str(service_id))

    def find_by_name(self, name: Optional[str]) -> Optional[Service]:
        if not name:
            return None
        wanted = name.strip().lower()
        for service in self._services.values():
            if service.name.lower() == wanted:
                return service
        return None

    def all(self) -> List[Service]:
        return list(self._services.values())

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._services

    def __len__(self) -> int:
        return len(self._services)


def load_service_catalog(path: Optional[str] = None) -> ServiceCatalog:
    """
    Builds the catalog from a JSON file (array of services) if one is configured,
    otherwise from the default menu.
    Raises ValueError if the configured file exists but is not a valid menu.
    """
    if not path:
        return ServiceCatalog(DEFAULT_SERVICES)

    if not os.path.exists(path):
        logger.warning(f"⚠️ Service catalog '{path}' not found, using default menu.")
        return ServiceCatalog(DEFAULT_SERVICES)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
        services = [Service.model_validate(item) for item in raw]
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.critical(f"❌ Invalid service catalog in {path}: {e}")
        raise ValueError(f"Invalid service catalog file: {e}") from e

    logger.info(f"✅ Loaded {len(services)} services from {path}")
    return ServiceCatalog(services)
