import asyncio
import itertools
from typing import Any, Dict, List, Optional

from booking_sync.core.logger import logger
from booking_sync.models.booking import Booking
from booking_sync.models.payloads import BookingEvent

BOOKING_ADDED = "booking_added"
BOOKING_UPDATED = "booking_updated"

_subscription_ids = itertools.count(1)


class Subscription:
    """One connected view. Events wait in a bounded queue until the view reads them."""

    def __init__(self, maxsize: int, label: str = ""):
        self.id = next(_subscription_ids)
        self.label = label or f"subscriber-{self.id}"
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next event, or None when the subscription was dropped."""
        if self.closed and self.queue.empty():
            return None
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)

    def drain(self) -> List[Dict[str, Any]]:
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class BroadcastHub:
    """
    Fan-out of committed booking changes to every connected view.

    Delivery is at-most-once and fire-and-forget: no acks, no retry and no
    replay for late joiners (they bootstrap from the store instead). A view
    that falls too far behind is dropped rather than blocking the publisher.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Dict[int, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, label: str = "") -> Subscription:
        subscription = Subscription(self.queue_size, label)
        self._subscribers[subscription.id] = subscription
        logger.info(f"📡 {subscription.label} subscribed ({self.subscriber_count} connected)")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        subscription.closed = True
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.info(f"🔌 {subscription.label} unsubscribed ({self.subscriber_count} connected)")

    def publish(self, event: BookingEvent) -> int:
        """
        Hands the event to every current subscriber. Never raises.
        Returns how many subscribers received it.
        """
        message = event.to_message()
        delivered = 0
        for subscription in list(self._subscribers.values()):
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"⚠️ {subscription.label} is not keeping up, dropping it.")
                self.unsubscribe(subscription)
            except Exception as e:
                logger.error(f"❌ Broadcast to {subscription.label} failed: {e}")
                self.unsubscribe(subscription)

        logger.info(f"📣 {event.type} {event.booking.id} -> {delivered} subscriber(s)")
        return delivered

    def publish_added(self, booking: Booking) -> int:
        return self.publish(BookingEvent(type=BOOKING_ADDED, booking=booking))

    def publish_updated(self, booking: Booking) -> int:
        return self.publish(BookingEvent(type=BOOKING_UPDATED, booking=booking))
