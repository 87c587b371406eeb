"""Application configuration."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Database (recovery records)
    DATABASE_URL: str = "sqlite+aiosqlite:///./courtbook.db"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DEBUG: bool = True

    # Booking backend
    BACKEND_BASE_URL: str = "http://localhost:3000"
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    MAX_RETRIES: int = 3

    # Holds
    HOLD_DURATION_MINUTES: int = 5
    UNAVAILABLE_HOLD_MINUTES: int = 60

    # Pricing fallbacks (venue currency)
    WEEKDAY_FALLBACK_PRICE: float = 100000
    WEEKEND_FALLBACK_PRICE: float = 400000

    # Venue
    VENUE_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    COURT_LABEL_PREFIX: str = "Sân"

    # Recovery
    RECOVERY_STORAGE_KEY: str = "pendingBookingHold"
    RECOVERY_SWEEP_INTERVAL_MINUTES: int = 1

    # Booking sessions
    SESSION_IDLE_MINUTES: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
