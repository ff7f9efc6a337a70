import asyncio

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from booking_sync.api.deps import get_ws_booking_service
from booking_sync.core.logger import logger
from booking_sync.services.booking_service import BookingService
from booking_sync.services.broadcast import Subscription

router = APIRouter()

POLL_SECONDS = 1.0


async def _forward_events(websocket: WebSocket, subscription: Subscription):
    while not subscription.closed:
        try:
            event = await subscription.get(timeout=POLL_SECONDS)
        except asyncio.TimeoutError:
            continue
        if event is None:
            break
        await websocket.send_json(event)


async def _read_client(websocket: WebSocket):
    while True:
        data = await websocket.receive_json()
        if isinstance(data, dict) and data.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/ws")
async def booking_feed(websocket: WebSocket, booking_service: BookingService = Depends(get_ws_booking_service)):
    """
    Live booking feed.

    Subscribes before reading the snapshot, so an event committed while the
    snapshot is being read is queued rather than lost. The client merges by
    id, which absorbs the resulting duplicate.
    """
    await websocket.accept()
    hub = booking_service.hub
    subscription = hub.subscribe(label=f"ws:{websocket.client.host if websocket.client else 'unknown'}")

    tasks = []
    try:
        snapshot = await booking_service.list_bookings()
        await websocket.send_json({
            "type": "snapshot",
            "bookings": [b.model_dump(mode="json") for b in snapshot],
        })

        tasks = [
            asyncio.create_task(_forward_events(websocket, subscription)),
            asyncio.create_task(_read_client(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    except WebSocketDisconnect:
        logger.info(f"🔌 {subscription.label} disconnected")
    except Exception as e:
        logger.error(f"❌ Booking feed error for {subscription.label}: {e}")
    finally:
        for task in tasks:
            task.cancel()
        hub.unsubscribe(subscription)
