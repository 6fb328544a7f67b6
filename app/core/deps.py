"""FastAPI dependencies for database access and internal endpoints."""

from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import verify_secret
from app.db.session import SessionLocal

INTERNAL_SECRET_HEADER = "X-Internal-Secret"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_internal_secret(
    x_internal_secret: str | None = Header(default=None),
) -> None:
    """Verify the internal secret header for scheduled/cron endpoints."""
    if not settings.INTERNAL_SECRET:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not verify_secret(x_internal_secret, settings.INTERNAL_SECRET):
        raise HTTPException(status_code=403, detail="Invalid internal secret")
