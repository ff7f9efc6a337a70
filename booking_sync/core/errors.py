"""
Domain errors raised by the booking core.

API handlers in main.py translate these into JSON responses; anything that
is not a BookingSyncError falls through to the generic 500 handler.
"""
from typing import Any, Dict, List, Optional


class BookingSyncError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class BookingValidationError(BookingSyncError):
    """Canonical payload is missing required fields or has bad formats."""
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.fields:
            data["fields"] = self.fields
        return data


class BookingNotFoundError(BookingSyncError):
    status_code = 404
    code = "not_found"

    def __init__(self, booking_id: str):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class BookingConflictError(BookingSyncError):
    """Only raised when the store is configured to enforce the no-overlap rule."""
    status_code = 409
    code = "conflict"

    def __init__(self, message: str, conflicts: Optional[list] = None):
        super().__init__(message)
        self.conflicts = conflicts or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["conflicts"] = [b.model_dump(mode="json") for b in self.conflicts]
        return data


class StorageReadError(BookingSyncError):
    code = "storage_read_error"


class StorageWriteError(BookingSyncError):
    status_code = 503
    code = "storage_write_error"
    retryable = True

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = self.retryable
        return data


class StorageRetryExhaustedError(StorageWriteError):
    code = "storage_retry_exhausted"

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class EmailDeliveryError(BookingSyncError):
    status_code = 502
    code = "email_delivery_error"
