"""Environment configuration for the notification engine."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int_list(name: str, default: str) -> list[int]:
    raw = os.getenv(name, default)
    return [int(part) for part in raw.split(",") if part.strip()]


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.DATABASE_SSLMODE: str = os.getenv("DATABASE_SSLMODE", "prefer")
        self.ADMIN_JWT_SECRET: str = os.getenv("ADMIN_JWT_SECRET", "")
        self.JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

        # Expiry rules (days remaining before / after the expiry date)
        self.EXPIRY_THRESHOLD_DAYS: list[int] = _env_int_list(
            "EXPIRY_THRESHOLD_DAYS", "30,15,7"
        )
        self.EXPIRY_GRACE_PERIOD_DAYS: int = int(
            os.getenv("EXPIRY_GRACE_PERIOD_DAYS", "7")
        )
        self.EXPIRY_DELETION_WINDOW_DAYS: int = int(
            os.getenv("EXPIRY_DELETION_WINDOW_DAYS", "30")
        )
        self.SERVICE_EXPIRY_NOTIFICATIONS_ENABLED: bool = _env_bool(
            "SERVICE_EXPIRY_NOTIFICATIONS_ENABLED", True
        )
        # Local zone used to interpret invoice reminder send times
        self.NOTIFICATION_TIMEZONE: str = os.getenv(
            "NOTIFICATION_TIMEZONE", "Asia/Ho_Chi_Minh"
        )

        # Delivery worker
        self.WORKER_BATCH_SIZE: int = int(os.getenv("WORKER_BATCH_SIZE", "50"))
        self.WORKER_MAX_RETRIES: int = int(os.getenv("WORKER_MAX_RETRIES", "3"))
        self.WORKER_RETRY_DELAY_SECONDS: int = int(
            os.getenv("WORKER_RETRY_DELAY_SECONDS", "60")
        )
        self.WORKER_RETRY_BACKOFF_MULTIPLIER: float = float(
            os.getenv("WORKER_RETRY_BACKOFF_MULTIPLIER", "2.0")
        )
        self.WORKER_RETRY_MAX_DELAY_SECONDS: int = int(
            os.getenv("WORKER_RETRY_MAX_DELAY_SECONDS", "3600")
        )
        self.WORKER_POLL_INTERVAL_SECONDS: int = int(
            os.getenv("WORKER_POLL_INTERVAL_SECONDS", "60")
        )

        # Mail transport
        self.MAILER_API_URL: str = os.getenv("MAILER_API_URL", "")
        self.MAILER_API_KEY: str = os.getenv("MAILER_API_KEY", "")
        self.MAILER_FROM_ADDRESS: str = os.getenv(
            "MAILER_FROM_ADDRESS", "no-reply@localhost"
        )
        self.MAILER_TIMEOUT_SECONDS: float = float(
            os.getenv("MAILER_TIMEOUT_SECONDS", "10")
        )
        self.ACCOUNTING_EMAIL: str = os.getenv("ACCOUNTING_EMAIL", "")
        self.COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Hosting Services")

        # Dashboard endpoint listing services with an expiry date
        self.SERVICE_CATALOG_URL: str = os.getenv("SERVICE_CATALOG_URL", "")
        self.SERVICE_CATALOG_API_KEY: str = os.getenv("SERVICE_CATALOG_API_KEY", "")

    def validate(self) -> None:
        """Validate that required environment variables are set and consistent."""
        if not self.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable is required")

        thresholds = self.EXPIRY_THRESHOLD_DAYS
        if not 1 <= len(thresholds) <= 3:
            raise ValueError("EXPIRY_THRESHOLD_DAYS must list between 1 and 3 values")
        if any(t <= 0 for t in thresholds) or thresholds != sorted(
            set(thresholds), reverse=True
        ):
            raise ValueError(
                "EXPIRY_THRESHOLD_DAYS must be positive and strictly descending"
            )
        if self.EXPIRY_GRACE_PERIOD_DAYS <= 0:
            raise ValueError("EXPIRY_GRACE_PERIOD_DAYS must be positive")
        if self.EXPIRY_DELETION_WINDOW_DAYS <= self.EXPIRY_GRACE_PERIOD_DAYS:
            raise ValueError(
                "EXPIRY_DELETION_WINDOW_DAYS must be greater than EXPIRY_GRACE_PERIOD_DAYS"
            )
        if self.WORKER_MAX_RETRIES < 1:
            raise ValueError("WORKER_MAX_RETRIES must be at least 1")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
