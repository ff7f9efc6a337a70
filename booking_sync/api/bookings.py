import json
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from booking_sync.api.deps import get_booking_service
from booking_sync.core.errors import BookingValidationError
from booking_sync.core.logger import logger
from booking_sync.models.booking import Booking, Service
from booking_sync.models.payloads import (
    BookingCreatedResponse,
    ConfirmationRequest,
    ConflictCheckRequest,
    ConflictCheckResponse,
)
from booking_sync.services.booking_service import BookingService
from booking_sync.services.email_service import raise_for_result

router = APIRouter()


@router.post("/bookings", response_model=BookingCreatedResponse, status_code=201)
async def create_booking(
    request: Request,
    background_tasks: BackgroundTasks,
    booking_service: BookingService = Depends(get_booking_service),
):
    """
    Accepts a canonical booking or a loose external payload.
    Overlaps are reported in `conflicts` but do not block the booking
    unless ENFORCE_NO_OVERLAP is on.
    """
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BookingValidationError("Request body must be JSON")

    booking, conflicts, created = await booking_service.create_booking(raw)

    if created:
        background_tasks.add_task(booking_service.confirm_booking, booking)

    return BookingCreatedResponse(booking=booking, conflicts=conflicts)


@router.get("/bookings", response_model=List[Booking])
async def list_bookings(booking_service: BookingService = Depends(get_booking_service)):
    return await booking_service.list_bookings()


@router.post("/bookings/check", response_model=ConflictCheckResponse)
async def check_conflicts(req: ConflictCheckRequest, booking_service: BookingService = Depends(get_booking_service)):
    conflicts = await booking_service.check_conflicts(req)
    return ConflictCheckResponse(conflict=bool(conflicts), conflicts=conflicts)


@router.post("/bookings/{booking_id}/cancel", response_model=Booking)
async def cancel_booking(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    return await booking_service.cancel_booking(booking_id)


@router.get("/services", response_model=List[Service])
async def list_services(booking_service: BookingService = Depends(get_booking_service)):
    return booking_service.list_services()


@router.post("/api/send-confirmation")
async def send_confirmation(req: ConfirmationRequest, booking_service: BookingService = Depends(get_booking_service)):
    missing = req.missing_fields()
    if missing:
        logger.warning(f"⚠️ send-confirmation missing fields: {missing}")
        raise HTTPException(status_code=400, detail="Missing required fields")

    result = await booking_service.send_confirmation(req)
    raise_for_result(result)

    if result.simulated:
        return {
            "success": True,
            "simulated": True,
            "message": f"Simulated email sent to {req.email} for {req.serviceName} on {req.date} at {req.time}.",
        }
    return {"success": True, "simulated": False, "id": result.message_id}
