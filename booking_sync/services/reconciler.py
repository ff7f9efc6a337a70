import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Set, Tuple

from pydantic import ValidationError

from booking_sync.core.catalog import ServiceCatalog
from booking_sync.core.logger import logger
from booking_sync.models.booking import (
    Booking,
    BookingStatus,
    BookingType,
    Notification,
    NotificationDetails,
    NotificationType,
)
from booking_sync.services.broadcast import BOOKING_ADDED, BOOKING_UPDATED

DedupPolicy = Literal["slot", "id"]


class ClientReconciler:
    """
    Local mirror of the booking store held by one connected view.

    Bootstraps from a full snapshot, then merges the live event tail.
    Merging is idempotent by booking id, so a view can subscribe first,
    buffer events while it fetches the snapshot, and replay them afterwards
    without losing or duplicating anything.
    """

    def __init__(self, catalog: Optional[ServiceCatalog] = None, dedup: DedupPolicy = "slot"):
        self.catalog = catalog
        self.dedup = dedup
        self.bookings: List[Booking] = []
        self.notifications: List[Notification] = []
        self.bootstrapped = False
        self._pending: List[Dict[str, Any]] = []
        self._seen_keys: Set[Tuple[str, ...]] = set()

    # --- snapshot + tail ---

    def bootstrap(self, snapshot: Iterable[Any]):
        """Replaces the local collection wholesale, then replays buffered events."""
        bookings = []
        for item in snapshot:
            booking = self._coerce(item)
            if booking is not None:
                bookings.append(booking)
        self.bookings = bookings
        self.bootstrapped = True

        pending, self._pending = self._pending, []
        for event in pending:
            self.apply(event)

    def apply(self, event: Dict[str, Any]) -> Optional[Notification]:
        """
        Merges one live event. Events received before bootstrap are held
        back and replayed against the snapshot.
        """
        if not self.bootstrapped:
            self._pending.append(event)
            return None

        event_type = event.get("type")
        booking = self._coerce(event.get("booking"))
        if booking is None:
            return None

        if event_type == BOOKING_ADDED:
            return self._merge_added(booking)
        if event_type == BOOKING_UPDATED:
            return self._merge_updated(booking)

        logger.debug(f"Ignoring unknown event type: {event_type}")
        return None

    def _merge_added(self, booking: Booking) -> Optional[Notification]:
        if self.find(booking.id) is not None:
            return None
        self.bookings.append(booking)
        if booking.type == BookingType.booking and booking.is_active:
            return self._notify_received(booking)
        return None

    def _merge_updated(self, booking: Booking) -> Optional[Notification]:
        for index, current in enumerate(self.bookings):
            if current.id != booking.id:
                continue
            # active -> cancelled is the only transition a booking can make
            if current.status == BookingStatus.active and booking.status == BookingStatus.cancelled:
                self.bookings[index] = booking
                if booking.type == BookingType.booking:
                    return self._notify(NotificationType.booking_cancelled, booking,
                                        f"Booking cancelled: {booking.customerName} at {booking.startTime}")
            return None

        if booking.status == BookingStatus.cancelled:
            # cancelled before we ever saw it: keep the record, nothing to announce
            self.bookings.append(booking)
            return None
        return self._merge_added(booking)

    # --- notifications ---

    def _dedup_key(self, booking: Booking) -> Tuple[str, ...]:
        if self.dedup == "id":
            return (booking.id,)
        return (booking.customerName, booking.date, booking.startTime)

    def _notify_received(self, booking: Booking) -> Optional[Notification]:
        key = self._dedup_key(booking)
        if key in self._seen_keys:
            return None
        self._seen_keys.add(key)
        return self._notify(NotificationType.booking_received, booking,
                            f"New booking: {booking.customerName} at {booking.startTime}")

    def _notify(self, kind: NotificationType, booking: Booking, message: str) -> Notification:
        notification = Notification(
            id=uuid.uuid4().hex[:8],
            type=kind,
            bookingId=booking.id,
            message=message,
            details=NotificationDetails(
                customerName=booking.customerName,
                customerEmail=booking.customerEmail,
                serviceName=self._service_name(booking),
                date=booking.date,
                time=booking.startTime,
                price=self._price(booking),
            ),
            timestamp=datetime.now(),
        )
        # newest first, like the operator's bell menu
        self.notifications.insert(0, notification)
        return notification

    def _service_name(self, booking: Booking) -> str:
        if booking.serviceName:
            return booking.serviceName
        service = self.catalog.get(booking.serviceId) if self.catalog else None
        return service.name if service else "Unknown service"

    def _price(self, booking: Booking) -> Optional[float]:
        if booking.price is not None:
            return booking.price
        service = self.catalog.get(booking.serviceId) if self.catalog else None
        return service.price if service else None

    # --- queries ---

    def find(self, booking_id: str) -> Optional[Booking]:
        for booking in self.bookings:
            if booking.id == booking_id:
                return booking
        return None

    def active_bookings(self, date: Optional[str] = None) -> List[Booking]:
        return [b for b in self.bookings if b.is_active and (date is None or b.date == date)]

    @property
    def unread_count(self) -> int:
        return len([n for n in self.notifications if not n.read])

    def mark_all_read(self):
        for notification in self.notifications:
            notification.read = True

    @staticmethod
    def _coerce(item: Any) -> Optional[Booking]:
        if isinstance(item, Booking):
            return item
        try:
            return Booking.model_validate(item)
        except ValidationError as e:
            logger.warning(f"⚠️ Ignoring malformed booking in sync stream: {e.error_count()} error(s)")
            return None
