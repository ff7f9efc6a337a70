import re
import uuid
from datetime import date as Date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from booking_sync.core.catalog import ServiceCatalog
from booking_sync.core.errors import BookingValidationError
from booking_sync.core.logger import logger
from booking_sync.models.booking import Booking, BookingStatus, BookingType
from booking_sync.models.payloads import CanonicalPayload, IntakePayload, LoosePayload
from booking_sync.services.conflicts import from_minutes, to_minutes

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_24_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
TIME_12_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([AaPp])\.?\s*[Mm]\.?$")

LAST_MINUTE_OF_DAY = 23 * 60 + 59
DEFAULT_LOOSE_PRICE = 35

# Evaluated top to bottom, first match wins. "Student Beard Trim" is 25 via
# the Student rule, "Beard & Shave" is 25 via the Beard rule.
PRICE_RULES: List[Tuple[str, Callable[[str], bool], float]] = [
    ("contains Student", lambda s: "Student" in s, 25),
    ("contains Beard", lambda s: "Beard" in s, 25),
    ("contains Shave", lambda s: "Shave" in s, 30),
    ("equals Vibes Experience", lambda s: s == "Vibes Experience", 55),
    ("equals Good Vibes Experience", lambda s: s == "Good Vibes Experience", 70),
    ("contains Wax", lambda s: "Wax" in s, 8),
]

LOOSE_FIELDS = ("id", "name", "email", "service", "date", "time")
# Any of these marks a body as canonical, even when some required ones are missing
CANONICAL_ONLY_FIELDS = ("customerName", "customerEmail", "serviceId", "serviceName", "price",
                         "startTime", "endTime", "status")


def new_booking_id() -> str:
    return uuid.uuid4().hex


def price_for_service_name(service_name: Optional[str]) -> float:
    name = (service_name or "").strip()
    for _, matches, price in PRICE_RULES:
        if matches(name):
            return price
    return DEFAULT_LOOSE_PRICE


def parse_meridiem_time(value: Optional[str]) -> Optional[str]:
    """
    '2:30 PM' -> '14:30', '12:05 am' -> '00:05'. A plain 24h 'HH:MM' passes
    through. Returns None when the text can't be read as a time.
    """
    if not value:
        return None
    text = value.strip()

    match = TIME_12_RE.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        meridiem = match.group(3).upper()
        if not (1 <= hour <= 12) or minute > 59:
            return None
        if meridiem == "P" and hour < 12:
            hour += 12
        elif meridiem == "A" and hour == 12:
            hour = 0
        return from_minutes(hour * 60 + minute)

    match = TIME_24_RE.match(text)
    if match:
        try:
            return from_minutes(to_minutes(text))
        except ValueError:
            return None

    return None


def _is_valid_date(value: Optional[str]) -> bool:
    if not value or not DATE_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _scalar_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def classify_payload(raw: Any) -> IntakePayload:
    """
    Resolves a raw JSON body into a tagged payload once, at the boundary.

    A body with any canonical field (customerName, startTime, serviceId, ...)
    or a manual block is canonical; anything else
    is treated as a loose external payload. A client may also say which one
    it sends with an explicit `kind`.
    """
    if not isinstance(raw, dict):
        raise BookingValidationError("Booking payload must be a JSON object")

    kind = raw.get("kind")
    if kind not in ("canonical", "loose"):
        is_canonical = raw.get("type") == "block" or any(k in raw for k in CANONICAL_ONLY_FIELDS)
        kind = "canonical" if is_canonical else "loose"

    if kind == "loose":
        fields = {k: _scalar_text(raw.get(k)) for k in LOOSE_FIELDS}
        return LoosePayload(**fields)

    try:
        return CanonicalPayload.model_validate({**raw, "kind": "canonical"})
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise BookingValidationError("Malformed booking payload", fields=fields) from e


class IntakeNormalizer:
    """Turns either payload variant into a canonical Booking."""

    def __init__(self, catalog: ServiceCatalog, default_duration_minutes: int = 60,
                 default_start_time: str = "09:00", today: Optional[Callable[[], Date]] = None):
        self.catalog = catalog
        self.default_duration_minutes = default_duration_minutes
        self.default_start_time = default_start_time
        self._today = today or Date.today

    def normalize(self, payload: IntakePayload) -> Booking:
        if isinstance(payload, LoosePayload):
            return self.normalize_loose(payload)
        return self.normalize_canonical(payload)

    def normalize_raw(self, raw: Dict[str, Any]) -> Booking:
        return self.normalize(classify_payload(raw))

    # --- canonical ---

    def normalize_canonical(self, payload: CanonicalPayload) -> Booking:
        is_block = payload.type == "block"
        missing = []

        customer_name = (payload.customerName or "").strip()
        if not customer_name:
            if is_block:
                customer_name = "Blocked"
            else:
                missing.append("customerName")
        if not payload.date:
            missing.append("date")
        if not payload.startTime:
            missing.append("startTime")

        service = None
        if not is_block:
            if not payload.serviceId:
                missing.append("serviceId")
            else:
                service = self.catalog.get(payload.serviceId)
                if service is None:
                    raise BookingValidationError(f"Unknown service '{payload.serviceId}'", fields=["serviceId"])

        if not payload.endTime and service is None:
            missing.append("endTime")

        if missing:
            raise BookingValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

        if not _is_valid_date(payload.date):
            raise BookingValidationError(f"Invalid date '{payload.date}', expected YYYY-MM-DD", fields=["date"])

        try:
            start = to_minutes(payload.startTime)
        except ValueError:
            raise BookingValidationError(f"Invalid startTime '{payload.startTime}', expected HH:MM", fields=["startTime"])

        if payload.endTime:
            try:
                end = to_minutes(payload.endTime)
            except ValueError:
                raise BookingValidationError(f"Invalid endTime '{payload.endTime}', expected HH:MM", fields=["endTime"])
        else:
            end = start + service.durationMinutes

        if end <= start or end > LAST_MINUTE_OF_DAY:
            raise BookingValidationError("endTime must be after startTime on the same day", fields=["endTime"])

        price = payload.price
        if price is None and service is not None:
            price = service.price

        return Booking(
            id=payload.id or new_booking_id(),
            customerName=customer_name,
            customerEmail=payload.customerEmail or None,
            serviceId=None if is_block else service.id,
            serviceName=None if is_block else (payload.serviceName or service.name),
            price=None if is_block else price,
            date=payload.date,
            startTime=from_minutes(start),
            endTime=from_minutes(end),
            status=BookingStatus.active,
            type=BookingType.block if is_block else BookingType.booking,
        )

    # --- loose ---

    def normalize_loose(self, payload: LoosePayload) -> Booking:
        """Never raises: unreadable fields fall back to defaults."""
        degraded = []

        name = payload.name
        if not name:
            name = "Guest"
            degraded.append("name")

        booking_date = payload.date
        if not _is_valid_date(booking_date):
            booking_date = self._today().strftime("%Y-%m-%d")
            degraded.append("date")

        start_time = parse_meridiem_time(payload.time)
        if start_time is None:
            start_time = self.default_start_time
            degraded.append("time")

        # keep at least one minute before the end of the day
        start = min(to_minutes(start_time), LAST_MINUTE_OF_DAY - 1)
        end = min(start + self.default_duration_minutes, LAST_MINUTE_OF_DAY)

        service_name = payload.service or ""
        service = self.catalog.find_by_name(service_name)

        if degraded:
            logger.warning(f"⚠️ Loose booking payload degraded to defaults for: {', '.join(degraded)}")

        return Booking(
            id=payload.id or new_booking_id(),
            customerName=name,
            customerEmail=payload.email,
            serviceId=service.id if service else None,
            serviceName=service_name or None,
            price=price_for_service_name(service_name),
            date=booking_date,
            startTime=from_minutes(start),
            endTime=from_minutes(end),
            status=BookingStatus.active,
            type=BookingType.booking,
        )
