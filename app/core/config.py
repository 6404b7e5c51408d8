from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Cowork Booking API"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./cowork.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Platform local zone; pass time-of-day rules are evaluated here.
    TIMEZONE: str = "Asia/Singapore"
    CURRENCY: str = "SGD"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "bookings@cowork.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""
    NOTIFICATION_TIMEOUT_SECONDS: int = 10

    # Hourly rate per person, by role
    HOURLY_RATE_MEMBER: Decimal = Decimal("6.00")
    HOURLY_RATE_STUDENT: Decimal = Decimal("5.00")
    HOURLY_RATE_TUTOR: Decimal = Decimal("4.00")

    # Fallback payment settings when the settings table is unreachable
    DEFAULT_CARD_FEE_PERCENTAGE: Decimal = Decimal("5.0")
    DEFAULT_TRANSFER_FEE: Decimal = Decimal("0.20")
    DEFAULT_TRANSFER_FEE_THRESHOLD: Decimal = Decimal("10.00")
    PAYMENT_SETTINGS_REFRESH_SECONDS: int = 300
    PAYMENT_SETTINGS_MAX_STALENESS_SECONDS: int = 900

    # Two overlapping requests by the same user whose start and end both differ
    # by less than this are treated as one in-flight retry.
    DUPLICATE_SKEW_SECONDS: int = 60
    # Unpaid bookings older than this are cancelled by the hold sweep.
    UNPAID_HOLD_MINUTES: int = 30

    # Comma-separated seat map used when listing free seats
    SEAT_MAP: str = "S1,S2,S3,S4,S5,S6,S7,S8,S9,S10,S11,S12,S13,S14,S15,S16,S17,S18,S19,S20"

    CREDIT_SWEEP_SCHEDULE_SECONDS: float = 86400.0


settings = Settings()
