"""Pydantic schemas for the lead cascade API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.db.enums import FinalizeOutcome


class NewLeadRequest(BaseModel):
    """Inbound lead to start (or continue) a client's cascade."""

    client_id: UUID
    lead_id: UUID | None = None


class ConversionRequest(BaseModel):
    """Booking event crediting a consultant."""

    client_id: UUID
    consultant_id: UUID


class CascadeAssignmentRead(BaseModel):
    id: UUID
    client_id: UUID
    lead_id: UUID | None = None
    consultant_id: UUID
    sequence: int
    status: str
    sla_hours: int
    started_at: datetime
    expires_at: datetime
    finalized_at: datetime | None = None
    reason: str | None = None

    model_config = {"from_attributes": True}


class NewLeadResponse(BaseModel):
    """assignment is null when the client already has a running cascade."""

    assignment: CascadeAssignmentRead | None = None


class CascadeDataRow(CascadeAssignmentRead):
    """Dashboard row with display names."""

    client_name: str | None = None
    consultant_name: str | None = None


class FinalizeResultRead(BaseModel):
    outcome: FinalizeOutcome
    client_id: UUID
    consultant_id: UUID
    completed_assignment_id: UUID | None = None
    displaced_consultant_ids: list[UUID] = Field(default_factory=list)


class RotationRead(BaseModel):
    rotation_order: list[UUID]
    rotation_version: int
    sla_hours: int


class RotationUpdate(BaseModel):
    """Replace the rotation order and/or SLA hours."""

    rotation_order: list[UUID] | None = None
    sla_hours: int | None = Field(default=None, ge=1, le=24 * 30)


class MetricsPeriod(BaseModel):
    start: datetime
    end: datetime


class ConsultantMetrics(BaseModel):
    consultant_id: UUID
    consultant_name: str | None = None
    total: int
    completed: int
    duplicates: int
    expired: int
    active: int


class CascadeMetricsRead(BaseModel):
    period: MetricsPeriod
    total: int
    finalized: int
    expired: int
    active: int
    conversion_rate: float
    expiration_rate: float
    by_consultant: list[ConsultantMetrics]


class SweepResultRead(BaseModel):
    scanned: int
    expired: int
    escalated: int
    stalled: int
    skipped: int
    errors: int
