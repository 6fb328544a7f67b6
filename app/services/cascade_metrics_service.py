"""Cascade performance metrics for dashboards and the daily summary."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.enums import AssignmentStatus
from app.db.models import Consultant
from app.db.types import utcnow
from app.services import cascade_store, rotation_service
from app.services.notification_service import NotifierGateway, get_notifier
from app.types import ConsultantStats, JsonObject

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30

_FINALIZED = {AssignmentStatus.COMPLETED.value, AssignmentStatus.COMPLETED_DUPLICATE.value}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _rate(part: int, total: int) -> float:
    if not total:
        return 0.0
    return round(part / total * 100, 2)


def get_performance_metrics(
    db: Session,
    start: datetime | None = None,
    end: datetime | None = None,
) -> JsonObject:
    """
    Counts and rates for assignments started in [start, end].

    Defaults to the last 30 days. Finalized covers both COMPLETED and
    COMPLETED_DUPLICATE rows; rates are percentages of all assignments.
    """
    end = _as_utc(end) if end else utcnow()
    start = _as_utc(start) if start else end - timedelta(days=DEFAULT_PERIOD_DAYS)
    if start > end:
        raise ValueError("start must be before end")

    assignments = cascade_store.list_started_between(db, start, end)

    total = len(assignments)
    finalized = sum(1 for a in assignments if a.status in _FINALIZED)
    expired = sum(1 for a in assignments if a.status == AssignmentStatus.EXPIRED.value)
    active = sum(1 for a in assignments if a.status == AssignmentStatus.ACTIVE.value)

    per_consultant: dict[UUID, ConsultantStats] = defaultdict(
        lambda: ConsultantStats(total=0, completed=0, duplicates=0, expired=0, active=0)
    )
    for a in assignments:
        stats = per_consultant[a.consultant_id]
        stats["total"] += 1
        if a.status == AssignmentStatus.COMPLETED.value:
            stats["completed"] += 1
        elif a.status == AssignmentStatus.COMPLETED_DUPLICATE.value:
            stats["duplicates"] += 1
        elif a.status == AssignmentStatus.EXPIRED.value:
            stats["expired"] += 1
        else:
            stats["active"] += 1

    names: dict = {}
    if per_consultant:
        names = {
            c.id: c.display_name
            for c in db.query(Consultant).filter(Consultant.id.in_(list(per_consultant))).all()
        }

    return {
        "period": {"start": start, "end": end},
        "total": total,
        "finalized": finalized,
        "expired": expired,
        "active": active,
        "conversion_rate": _rate(finalized, total),
        "expiration_rate": _rate(expired, total),
        "by_consultant": [
            {"consultant_id": cid, "consultant_name": names.get(cid), **stats}
            for cid, stats in sorted(
                per_consultant.items(), key=lambda item: item[1]["total"], reverse=True
            )
        ],
    }


def send_daily_summary(
    db: Session,
    now: datetime | None = None,
    notifier: NotifierGateway | None = None,
) -> int:
    """Send the last day's metrics to every active consultant; returns recipients."""
    now = now or utcnow()
    summary = get_performance_metrics(db, start=now - timedelta(days=1), end=now)
    consultants = rotation_service.active_consultants(db)
    gateway = notifier or get_notifier()
    for consultant in consultants:
        gateway.notify_performance_summary(consultant, summary)
    logger.info("Daily cascade summary sent to %s consultant(s)", len(consultants))
    return len(consultants)
