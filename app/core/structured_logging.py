"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    client_id: UUID | str | None = None,
    consultant_id: UUID | str | None = None,
    assignment_id: UUID | str | None = None,
    lead_id: UUID | str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never names or phones)."""
    context: dict[str, Any] = {}
    if client_id:
        context["client_id"] = str(client_id)
    if consultant_id:
        context["consultant_id"] = str(consultant_id)
    if assignment_id:
        context["assignment_id"] = str(assignment_id)
    if lead_id:
        context["lead_id"] = str(lead_id)
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
