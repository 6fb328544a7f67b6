"""Rate limiting configuration for the cascade API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

# Single-process API; in-memory storage is enough for ingestion throttling.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=not IS_TESTING,
)

WEBHOOK_LIMIT = (
    f"{settings.RATE_LIMIT_WEBHOOK}/minute" if settings.RATE_LIMIT_WEBHOOK > 0 else "1000000/minute"
)
