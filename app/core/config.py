"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./lead_cascade.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Rate Limiting (requests per minute)
    RATE_LIMIT_WEBHOOK: int = 100  # Lead ingestion and conversion events

    # Lead cascade
    CASCADE_DEFAULT_SLA_HOURS: int = 24
    CASCADE_SWEEP_INTERVAL_SECONDS: int = 60
    CASCADE_SWEEP_BATCH_SIZE: int = 100
    # "head_only": rotate only when the assigned consultant is at the head of the order
    # "always": every assignment moves the consultant to the tail
    CASCADE_ROTATION_POLICY: str = "head_only"
    CASCADE_ROTATION_MAX_RETRIES: int = 5
    CASCADE_DAILY_SUMMARY_HOUR: int = 8  # UTC hour, negative disables
    JOB_BATCH_SIZE: int = 20  # Delivery jobs processed per worker tick

    # Notifications
    NOTIFY_CHANNELS: str = "push,whatsapp,email"
    WHATSAPP_API_URL: str = ""  # Evolution API base URL
    WHATSAPP_API_KEY: str = ""
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def notify_channels_list(self) -> list[str]:
        """Parse NOTIFY_CHANNELS into lowercase channel keys."""
        return [c.strip().lower() for c in self.NOTIFY_CHANNELS.split(",") if c.strip()]


settings = Settings()
