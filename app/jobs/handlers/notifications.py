"""Notification job handlers."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from app.core.structured_logging import build_log_context
from app.db.models import Consultant
from app.services import notification_service
from app.services.notification_service import NotificationMessage

logger = logging.getLogger(__name__)


def _coerce_uuid(raw_id: str | None) -> UUID | None:
    if not raw_id:
        return None
    try:
        return UUID(str(raw_id))
    except (TypeError, ValueError):
        logger.warning("Invalid UUID value '%s' in notification payload", raw_id)
        return None


async def process_notification_delivery(db, job) -> None:
    """Deliver a queued WhatsApp or email notification through its provider."""
    payload = job.payload or {}
    channel_key = payload.get("channel")
    consultant_id = _coerce_uuid(payload.get("consultant_id"))
    logger.info("Processing %s delivery job %s", channel_key, job.id)

    consultant = db.get(Consultant, consultant_id) if consultant_id else None
    if consultant is None:
        logger.warning(
            "Consultant for delivery job %s not found, dropping", job.id,
            extra=build_log_context(consultant_id=consultant_id),
        )
        return

    channel = notification_service.build_external_channel(str(channel_key))
    message = NotificationMessage.from_payload(payload.get("message") or {})
    # Provider calls are blocking (httpx.Client with retry sleeps)
    await asyncio.to_thread(channel.send, consultant, message)
    logger.info(
        "Delivered %s via %s",
        message.type.value,
        channel_key,
        extra=build_log_context(consultant_id=consultant.id, client_id=message.client_id),
    )
