from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from booking_sync.models.booking import Booking

# --- Incoming Request Models ---

class CanonicalPayload(BaseModel):
    """Booking submitted by our own views (calendar, widget, simulator)."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["canonical"] = "canonical"
    id: Optional[str] = None
    customerName: Optional[str] = None
    customerEmail: Optional[str] = None
    serviceId: Optional[str] = None
    serviceName: Optional[str] = None
    price: Optional[float] = None
    date: Optional[str] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    type: Literal["booking", "block"] = "booking"


class LoosePayload(BaseModel):
    """Booking from an external source: free-text service, 12h time."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["loose"] = "loose"
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    service: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None


IntakePayload = Annotated[Union[CanonicalPayload, LoosePayload], Field(discriminator="kind")]


class ConflictCheckRequest(BaseModel):
    date: str
    startTime: str
    endTime: str


class ConfirmationRequest(BaseModel):
    """Body of the legacy /api/send-confirmation endpoint; all fields required."""
    email: Optional[str] = None
    name: Optional[str] = None
    serviceName: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    # shown as-is in the email; any falsy value counts as missing
    price: Any = None

    def missing_fields(self) -> List[str]:
        return [k for k, v in self.model_dump().items() if not v]


# --- Outgoing Response Models ---

class BookingCreatedResponse(BaseModel):
    booking: Booking
    conflicts: List[Booking] = []


class ConflictCheckResponse(BaseModel):
    conflict: bool
    conflicts: List[Booking] = []


class BookingEvent(BaseModel):
    type: Literal["booking_added", "booking_updated"]
    booking: Booking

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
