"""Shared type aliases for JSON payloads and cascade read models."""

from __future__ import annotations

from datetime import datetime
from typing import TypeAlias, TypedDict
from uuid import UUID

JsonValue: TypeAlias = object
JsonObject: TypeAlias = dict[str, JsonValue]


class CascadeDataRecord(TypedDict):
    """Dashboard row: one assignment with consultant and client names."""

    id: UUID
    client_id: UUID
    client_name: str | None
    consultant_id: UUID
    consultant_name: str | None
    lead_id: UUID | None
    sequence: int
    status: str
    reason: str | None
    sla_hours: int
    started_at: datetime
    expires_at: datetime
    finalized_at: datetime | None


class ConsultantStats(TypedDict):
    """Per-consultant assignment counts for a metrics period."""

    total: int
    completed: int
    duplicates: int
    expired: int
    active: int
