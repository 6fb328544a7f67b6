"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.enums import DEFAULT_NOTIFICATION_PRIORITY


class Notification(Base):
    """
    In-app (push) notifications for consultants.

    Written by the notifier gateway when a consultant is assigned a lead or a
    cascade is resolved.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_consultant_unread", "consultant_id", "read_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    consultant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False
    )

    # Notification type (enum)
    type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_NOTIFICATION_PRIORITY.value, nullable=False
    )

    # Entity reference (for click-through)
    client_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Read status
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
