"""
Notifier gateway - fan-out of cascade events to consultant channels.

Channels are independent: a failing WhatsApp call never blocks the in-app
notification or the email. Every dispatch is best-effort; errors are logged
and swallowed so the cascade itself never depends on delivery.

The in-app (push) row is written inline. WhatsApp and email go through
QueuedChannel, which only schedules a NOTIFICATION_DELIVERY job; the worker
makes the provider call, so a slow provider never holds up an assignment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.enums import (
    JobType,
    NotificationChannelType,
    NotificationPriority,
    NotificationType,
)
from app.db.models import CascadeAssignment, Client, Consultant, Notification
from app.db.session import SessionLocal
from app.services import job_service
from app.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries
from app.types import JsonObject

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 20.0
HTTP_MAX_ATTEMPTS = 3
RESEND_SEND_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class NotificationMessage:
    type: NotificationType
    title: str
    short_text: str
    body: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    client_id: UUID | None = None
    lead_id: UUID | None = None

    def to_payload(self) -> JsonObject:
        """JSON-safe form stored in a delivery job."""
        return {
            "type": self.type.value,
            "title": self.title,
            "short_text": self.short_text,
            "body": self.body,
            "priority": self.priority.value,
            "client_id": str(self.client_id) if self.client_id else None,
            "lead_id": str(self.lead_id) if self.lead_id else None,
        }

    @classmethod
    def from_payload(cls, payload: JsonObject) -> "NotificationMessage":
        client_id = payload.get("client_id")
        lead_id = payload.get("lead_id")
        return cls(
            type=NotificationType(payload["type"]),
            title=str(payload["title"]),
            short_text=str(payload.get("short_text") or ""),
            body=str(payload.get("body") or ""),
            priority=NotificationPriority(payload.get("priority") or NotificationPriority.NORMAL),
            client_id=UUID(str(client_id)) if client_id else None,
            lead_id=UUID(str(lead_id)) if lead_id else None,
        )


class NotificationChannel(Protocol):
    key: str

    def send(self, consultant: Consultant, message: NotificationMessage) -> None:
        """Deliver the message or raise; skipping is not an error."""


# =============================================================================
# Channels
# =============================================================================


class PushChannel:
    """In-app notification row, written in its own session."""

    key = NotificationChannelType.PUSH.value

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def send(self, consultant: Consultant, message: NotificationMessage) -> None:
        with self._session_factory() as db:
            db.add(
                Notification(
                    consultant_id=consultant.id,
                    type=message.type.value,
                    title=message.title,
                    body=message.short_text,
                    priority=message.priority.value,
                    client_id=message.client_id,
                    lead_id=message.lead_id,
                )
            )
            db.commit()


class WhatsAppChannel:
    """Chat message through the Evolution API instance of the consultant."""

    key = NotificationChannelType.WHATSAPP.value

    def __init__(
        self,
        api_url: str,
        api_key: str,
        transport: httpx.BaseTransport | None = None,
        base_delay: float = 0.5,
    ):
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._transport = transport
        self._base_delay = base_delay

    def is_configured(self) -> bool:
        return bool(self._api_url and self._api_key)

    def send(self, consultant: Consultant, message: NotificationMessage) -> None:
        if not self.is_configured():
            logger.debug("WhatsApp API not configured, skipping")
            return
        if not consultant.whatsapp_instance or not consultant.phone:
            logger.info(
                "WhatsApp unavailable for consultant",
                extra=build_log_context(consultant_id=consultant.id),
            )
            return

        url = f"{self._api_url}/message/sendText/{consultant.whatsapp_instance}"
        payload: JsonObject = {"number": consultant.phone, "text": message.body}
        headers = {"apikey": self._api_key, "Content-Type": "application/json"}

        with httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = request_with_retries(
                lambda: client.post(url, headers=headers, json=payload),
                max_attempts=HTTP_MAX_ATTEMPTS,
                base_delay=self._base_delay,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
        response.raise_for_status()


class EmailChannel:
    """Email through the Resend REST API."""

    key = NotificationChannelType.EMAIL.value

    def __init__(
        self,
        api_key: str,
        from_email: str,
        transport: httpx.BaseTransport | None = None,
        base_delay: float = 0.5,
    ):
        self._api_key = api_key
        self._from_email = from_email
        self._transport = transport
        self._base_delay = base_delay

    def is_configured(self) -> bool:
        return bool(self._api_key and self._from_email)

    def send(self, consultant: Consultant, message: NotificationMessage) -> None:
        if not self.is_configured():
            logger.debug("Email sender not configured, skipping")
            return
        if not consultant.email:
            logger.info(
                "Email unavailable for consultant",
                extra=build_log_context(consultant_id=consultant.id),
            )
            return

        payload: JsonObject = {
            "from": self._from_email,
            "to": [consultant.email],
            "subject": message.title,
            "text": message.body,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        with httpx.Client(timeout=HTTP_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = request_with_retries(
                lambda: client.post(RESEND_SEND_URL, headers=headers, json=payload),
                max_attempts=HTTP_MAX_ATTEMPTS,
                base_delay=self._base_delay,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
        response.raise_for_status()


class QueuedChannel:
    """
    Defers an external channel to the job queue.

    send() only writes a pending job in its own session; the worker later
    rebuilds the message and calls the real channel with retries.
    """

    def __init__(
        self,
        channel: WhatsAppChannel | EmailChannel,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.channel = channel
        self.key = channel.key
        self._session_factory = session_factory

    def send(self, consultant: Consultant, message: NotificationMessage) -> None:
        if not self.channel.is_configured():
            logger.debug("Channel %s not configured, nothing queued", self.key)
            return
        with self._session_factory() as db:
            job_service.schedule_job(
                db,
                JobType.NOTIFICATION_DELIVERY,
                {
                    "channel": self.key,
                    "consultant_id": str(consultant.id),
                    "message": message.to_payload(),
                },
            )


def build_external_channel(key: str) -> WhatsAppChannel | EmailChannel:
    """Provider-backed channel for `key`, configured from settings."""
    if key == NotificationChannelType.WHATSAPP.value:
        return WhatsAppChannel(settings.WHATSAPP_API_URL, settings.WHATSAPP_API_KEY)
    if key == NotificationChannelType.EMAIL.value:
        return EmailChannel(settings.RESEND_API_KEY, settings.EMAIL_FROM)
    raise ValueError(f"Unknown external notification channel: {key!r}")


# =============================================================================
# Message builders
# =============================================================================


def _client_lines(client: Client) -> list[str]:
    return [
        f"Client: {client.full_name}",
        f"Phone: {client.phone or 'not provided'}",
        f"Email: {client.email or 'not provided'}",
        f"Source: {client.source or 'not provided'}",
    ]


def build_assignment_message(client: Client, assignment: CascadeAssignment) -> NotificationMessage:
    """First assignment for sequence 1, cascade assignment for escalations."""
    if assignment.sequence == 1:
        lines = [
            "New lead assigned",
            "",
            *_client_lines(client),
            "",
            f"SLA: {assignment.sla_hours} hours for first contact",
        ]
        return NotificationMessage(
            type=NotificationType.FIRST_ASSIGNMENT,
            title="New lead assigned",
            short_text=f"New lead: {client.full_name}",
            body="\n".join(lines),
            priority=NotificationPriority.HIGH,
            client_id=client.id,
            lead_id=assignment.lead_id,
        )

    lines = [
        "Cascade lead - your turn",
        "",
        *_client_lines(client),
        f"Attempt: #{assignment.sequence}",
        "",
        "The previous consultant's SLA expired without a booking.",
        f"Your SLA: {assignment.sla_hours} hours",
    ]
    return NotificationMessage(
        type=NotificationType.CASCADE_ASSIGNMENT,
        title="Cascade lead - your turn",
        short_text=f"Cascade lead: {client.full_name} (attempt {assignment.sequence})",
        body="\n".join(lines),
        priority=NotificationPriority.VERY_HIGH,
        client_id=client.id,
        lead_id=assignment.lead_id,
    )


def build_won_message(client: Client) -> NotificationMessage:
    return NotificationMessage(
        type=NotificationType.CASCADE_WON,
        title="Client booked",
        short_text=f"You booked {client.full_name}",
        body=f"Congratulations! {client.full_name} was booked and credited to you.",
        priority=NotificationPriority.HIGH,
        client_id=client.id,
    )


def build_lost_message(client: Client, winner: Consultant | None) -> NotificationMessage:
    by = f" by {winner.display_name}" if winner else ""
    return NotificationMessage(
        type=NotificationType.CASCADE_LOST,
        title="Client booked by another consultant",
        short_text=f"{client.full_name} was booked{by}",
        body=(
            f"{client.full_name} was booked{by}. "
            "The lead has been closed in your queue; no action is needed."
        ),
        client_id=client.id,
    )


def build_summary_message(summary: JsonObject) -> NotificationMessage:
    lines = [
        "Daily cascade summary",
        "",
        f"Assignments: {summary.get('total', 0)}",
        f"Finalized: {summary.get('finalized', 0)}",
        f"Expired: {summary.get('expired', 0)}",
        f"Active: {summary.get('active', 0)}",
    ]
    return NotificationMessage(
        type=NotificationType.PERFORMANCE_SUMMARY,
        title="Daily cascade summary",
        short_text=(
            f"{summary.get('finalized', 0)} finalized, {summary.get('expired', 0)} expired"
        ),
        body="\n".join(lines),
    )


# =============================================================================
# Gateway
# =============================================================================


class NotifierGateway:
    """Fan-out of cascade events to every configured channel."""

    def __init__(self, channels: Sequence[NotificationChannel]):
        self.channels = list(channels)

    def dispatch(self, consultant: Consultant, message: NotificationMessage) -> int:
        """Send to all channels; returns how many accepted the message."""
        delivered = 0
        for channel in self.channels:
            try:
                channel.send(consultant, message)
                delivered += 1
            except Exception as exc:
                logger.error(
                    "Notification channel %s failed for %s: %s",
                    channel.key,
                    message.type.value,
                    type(exc).__name__,
                    extra=build_log_context(
                        consultant_id=consultant.id, client_id=message.client_id
                    ),
                )
        return delivered

    def notify_assignment(
        self, consultant: Consultant, client: Client, assignment: CascadeAssignment
    ) -> None:
        self.dispatch(consultant, build_assignment_message(client, assignment))

    def notify_cascade_finalized(
        self,
        client: Client,
        winner: Consultant | None,
        displaced: Sequence[Consultant],
    ) -> None:
        if winner is not None:
            self.dispatch(winner, build_won_message(client))
        lost = build_lost_message(client, winner)
        for consultant in displaced:
            self.dispatch(consultant, lost)

    def notify_performance_summary(self, consultant: Consultant, summary: JsonObject) -> None:
        self.dispatch(consultant, build_summary_message(summary))


def build_default_gateway(
    session_factory: Callable[[], Session] = SessionLocal,
) -> NotifierGateway:
    """Gateway with the channels enabled in NOTIFY_CHANNELS."""
    available: dict[str, NotificationChannel] = {
        NotificationChannelType.PUSH.value: PushChannel(session_factory),
        NotificationChannelType.WHATSAPP.value: QueuedChannel(
            build_external_channel(NotificationChannelType.WHATSAPP.value), session_factory
        ),
        NotificationChannelType.EMAIL.value: QueuedChannel(
            build_external_channel(NotificationChannelType.EMAIL.value), session_factory
        ),
    }
    channels = []
    for key in settings.notify_channels_list:
        channel = available.get(key)
        if channel is None:
            logger.warning("Unknown notification channel %r ignored", key)
            continue
        channels.append(channel)
    return NotifierGateway(channels)


_default_gateway: NotifierGateway | None = None


def get_notifier() -> NotifierGateway:
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = build_default_gateway()
    return _default_gateway


def set_notifier(gateway: NotifierGateway | None) -> None:
    """Replace the process-wide gateway (None resets to the default on next use)."""
    global _default_gateway
    _default_gateway = gateway
