"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
    text,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import DEFAULT_ASSIGNMENT_STATUS, AssignmentStatus

if TYPE_CHECKING:
    from app.db.models import Client, Consultant

_ACTIVE = AssignmentStatus.ACTIVE.value
_COMPLETED = AssignmentStatus.COMPLETED.value


class CascadeAssignment(Base):
    """
    One attempt to have a consultant close a client.

    Append-only: rows are created ACTIVE and leave that state exactly once
    (EXPIRED, COMPLETED or COMPLETED_DUPLICATE). Rows are never deleted so the
    full chain stays auditable.
    """

    __tablename__ = "cascade_assignments"
    __table_args__ = (
        UniqueConstraint("client_id", "sequence", name="uq_cascade_client_sequence"),
        CheckConstraint("sequence >= 1", name="ck_cascade_sequence_positive"),
        # One ACTIVE row per (client, consultant)
        Index(
            "uq_cascade_active_consultant",
            "client_id",
            "consultant_id",
            unique=True,
            postgresql_where=text(f"status = '{_ACTIVE}'"),
            sqlite_where=text(f"status = '{_ACTIVE}'"),
        ),
        # At most one COMPLETED row per client, ever
        Index(
            "uq_cascade_completed_client",
            "client_id",
            unique=True,
            postgresql_where=text(f"status = '{_COMPLETED}'"),
            sqlite_where=text(f"status = '{_COMPLETED}'"),
        ),
        Index("idx_cascade_status_expires", "status", "expires_at"),
        Index("idx_cascade_consultant_status", "consultant_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True
    )
    consultant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("consultants.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default=DEFAULT_ASSIGNMENT_STATUS.value, nullable=False
    )
    sla_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    # Relationships
    client: Mapped["Client"] = relationship()
    consultant: Mapped["Consultant"] = relationship()


class AutomationConfig(Base):
    """
    Lead distribution settings managed from the CRM admin screens.

    rotation_order is the fairness queue (consultant ids as strings).
    rotation_version is bumped on every write so concurrent assignments can
    update the order with compare-and-swap instead of last-write-wins.
    """

    __tablename__ = "lead_automation_config"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Default")
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    rotation_order: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list
    )
    rotation_version: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    sla_hours: Mapped[int] = mapped_column(
        Integer, default=24, server_default=text("24"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
