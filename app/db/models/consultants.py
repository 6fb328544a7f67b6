"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, String, Uuid, func, true
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Consultant(Base):
    """
    A sales consultant who can receive leads.

    Owned by the identity store; the cascade engine only reads it.
    """

    __tablename__ = "consultants"
    __table_args__ = (Index("idx_consultants_active", "is_active"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # Evolution API instance used to reach the consultant on WhatsApp
    whatsapp_instance: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
