from fastapi import Request, WebSocket

from booking_sync.services.booking_service import BookingService


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_ws_booking_service(websocket: WebSocket) -> BookingService:
    return websocket.app.state.booking_service
