from datetime import datetime
from typing import Any, List, Tuple

from booking_sync.core.catalog import ServiceCatalog
from booking_sync.core.config import settings
from booking_sync.core.errors import BookingValidationError
from booking_sync.core.logger import logger
from booking_sync.models.booking import Booking, Service
from booking_sync.models.payloads import ConfirmationRequest, ConflictCheckRequest
from booking_sync.services.broadcast import BroadcastHub
from booking_sync.services.conflicts import find_conflicts, to_minutes
from booking_sync.services.email_service import (
    CONFIRMATION_SUBJECT,
    EmailResult,
    EmailService,
    render_confirmation,
    send_booking_confirmation,
)
from booking_sync.services.intake import IntakeNormalizer, classify_payload
from booking_sync.services.store import BookingStore


class BookingService:
    """
    Request flow: intake -> advisory conflict check -> store -> broadcast.
    Confirmation emails are handed back to the caller to run out-of-band.
    """

    def __init__(self, store: BookingStore, hub: BroadcastHub, catalog: ServiceCatalog,
                 email_service: EmailService, normalizer: IntakeNormalizer = None):
        self.store = store
        self.hub = hub
        self.catalog = catalog
        self.email_service = email_service
        self.normalizer = normalizer or IntakeNormalizer(
            catalog,
            default_duration_minutes=settings.DEFAULT_LOOSE_DURATION_MINUTES,
            default_start_time=settings.DEFAULT_LOOSE_START_TIME,
        )

    async def create_booking(self, raw: Any) -> Tuple[Booking, List[Booking], bool]:
        """
        Stores a booking from either payload shape.
        Returns (stored booking, advisory conflicts, created). `created` is
        False when the id was already stored; nothing is broadcast then.
        """
        payload = classify_payload(raw)
        booking = self.normalizer.normalize(payload)
        logger.info(f"📥 Booking request ({payload.kind}) - {booking.customerName}, {booking.date} {booking.startTime}-{booking.endTime}")

        existing = await self.store.get_all()
        conflicts = find_conflicts(booking.date, booking.startTime, booking.endTime, existing, exclude_id=booking.id)
        if conflicts:
            logger.warning(f"⚠️ {booking.date} {booking.startTime}-{booking.endTime} overlaps {len(conflicts)} active booking(s)")

        stored = await self.store.append(booking)
        # append hands back the already stored record on a duplicate id
        created = stored is booking
        if created:
            self.hub.publish_added(stored)

        return stored, conflicts, created

    async def list_bookings(self) -> List[Booking]:
        return await self.store.get_all()

    async def check_conflicts(self, req: ConflictCheckRequest) -> List[Booking]:
        try:
            start, end = to_minutes(req.startTime), to_minutes(req.endTime)
        except ValueError:
            raise BookingValidationError("Times must be HH:MM", fields=["startTime", "endTime"])
        if end <= start:
            raise BookingValidationError("endTime must be after startTime", fields=["endTime"])

        return find_conflicts(req.date, req.startTime, req.endTime, await self.store.get_all())

    async def cancel_booking(self, booking_id: str) -> Booking:
        booking, changed = await self.store.cancel(booking_id)
        if changed:
            self.hub.publish_updated(booking)
        return booking

    def list_services(self) -> List[Service]:
        return self.catalog.all()

    async def confirm_booking(self, booking: Booking) -> EmailResult:
        """Out-of-band confirmation; result is logged, never raised."""
        started = datetime.now()
        result = await send_booking_confirmation(
            self.email_service,
            booking,
            max_retries=settings.EMAIL_MAX_RETRIES,
            backoff=settings.EMAIL_RETRY_BACKOFF_SECONDS,
        )
        duration = (datetime.now() - started).total_seconds()
        if result.ok:
            logger.info(f"🏁 Confirmation for {booking.id} done in {duration:.2f}s (simulated={result.simulated})")
        elif result.attempts:
            logger.error(f"❌ Confirmation for {booking.id} failed after {result.attempts} attempt(s): {result.error}")
        return result

    async def send_confirmation(self, req: ConfirmationRequest) -> EmailResult:
        html_body = render_confirmation(req.name, req.serviceName, req.date, req.time, req.price)
        return await self.email_service.send(req.email, CONFIRMATION_SUBJECT, html_body)
