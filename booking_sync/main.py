from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_sync.api import bookings, realtime
from booking_sync.core.catalog import ServiceCatalog, load_service_catalog
from booking_sync.core.config import settings
from booking_sync.core.errors import BookingSyncError
from booking_sync.core.logger import logger, setup_logging
from booking_sync.services.booking_service import BookingService
from booking_sync.services.broadcast import BroadcastHub
from booking_sync.services.email_service import EmailService
from booking_sync.services.store import BookingStore

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"🚀 Starting {settings.PROJECT_NAME} (store: {app.state.booking_service.store.path})")
    yield
    # Shutdown
    logger.info("🛑 Shutting down backend")


def build_booking_service(bookings_file: Optional[str] = None, catalog: Optional[ServiceCatalog] = None,
                          email_service: Optional[EmailService] = None,
                          enforce_no_overlap: Optional[bool] = None) -> BookingService:
    catalog = catalog or load_service_catalog(settings.SERVICES_FILE)
    store = BookingStore(
        bookings_file or settings.BOOKINGS_FILE,
        write_retries=settings.STORE_WRITE_RETRIES,
        retry_backoff=settings.STORE_RETRY_BACKOFF_SECONDS,
        enforce_no_overlap=settings.ENFORCE_NO_OVERLAP if enforce_no_overlap is None else enforce_no_overlap,
    )
    hub = BroadcastHub(queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
    email_service = email_service or EmailService(
        api_key=settings.RESEND_API_KEY,
        from_address=settings.EMAIL_FROM,
        timeout=settings.EMAIL_TIMEOUT_SECONDS,
    )
    return BookingService(store, hub, catalog, email_service)


def create_app(booking_service: Optional[BookingService] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.booking_service = booking_service or build_booking_service()

    # The booking widget is embedded on other sites via iframe/fetch
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BookingSyncError)
    async def booking_error_handler(request: Request, exc: BookingSyncError):
        logger.warning(f"⚠️ {exc.code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Global Exception Handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"🔥 UNHANDLED ERROR: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={"message": "Internal Server Error", "detail": "An unexpected error occurred. Please contact support."}
        )

    app.include_router(bookings.router, tags=["Bookings"])
    app.include_router(realtime.router, tags=["Realtime"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "subscribers": app.state.booking_service.hub.subscriber_count,
            "timestamp": datetime.now().isoformat(),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("booking_sync.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
