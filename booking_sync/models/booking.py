from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    active = "active"
    cancelled = "cancelled"


class BookingType(str, Enum):
    booking = "booking"
    block = "block"


class Booking(BaseModel):
    """Canonical booking record. Field names match the persisted JSON."""
    id: str
    customerName: str
    customerEmail: Optional[str] = None
    serviceId: Optional[str] = None  # None marks a manual block
    serviceName: Optional[str] = None
    price: Optional[float] = None
    date: str  # YYYY-MM-DD
    startTime: str  # HH:MM
    endTime: str  # HH:MM, exclusive
    status: BookingStatus = BookingStatus.active
    type: BookingType = BookingType.booking

    @property
    def is_active(self) -> bool:
        return self.status == BookingStatus.active


class Service(BaseModel):
    id: str
    name: str
    price: float
    durationMinutes: int
    color: str = ""


class NotificationType(str, Enum):
    booking_received = "booking_received"
    booking_cancelled = "booking_cancelled"


class NotificationDetails(BaseModel):
    customerName: str
    customerEmail: Optional[str] = None
    serviceName: str
    date: str
    time: str
    price: Optional[float] = None


class Notification(BaseModel):
    id: str
    type: NotificationType
    bookingId: str
    message: str
    details: Optional[NotificationDetails] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    read: bool = False
