from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Good Vibes Booking Sync"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Storage
    BOOKINGS_FILE: str = "data/bookings.json"
    STORE_WRITE_RETRIES: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.05

    # Service catalog (optional JSON override of the default menu)
    SERVICES_FILE: str = ""

    # Booking policy
    ENFORCE_NO_OVERLAP: bool = False
    DEFAULT_LOOSE_DURATION_MINUTES: int = 60
    DEFAULT_LOOSE_START_TIME: str = "09:00"

    # Realtime
    SUBSCRIBER_QUEUE_SIZE: int = 100

    # Email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Good Vibes <onboarding@resend.dev>"
    EMAIL_TIMEOUT_SECONDS: float = 10.0
    EMAIL_MAX_RETRIES: int = 3
    EMAIL_RETRY_BACKOFF_SECONDS: float = 1.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/errors.log"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
