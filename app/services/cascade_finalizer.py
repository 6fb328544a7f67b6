"""
Outcome finalizer - credits exactly one consultant when a client converts.

Every ACTIVE row of the client is resolved in one transaction: the
converting consultant's row becomes COMPLETED, all others become
COMPLETED_DUPLICATE. The client row is locked while doing so and the
partial unique index on COMPLETED rows backs it up for databases without
row locks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.structured_logging import build_log_context
from app.db.enums import AssignmentReason, AssignmentStatus, FinalizeOutcome
from app.db.models import Client, Consultant
from app.db.types import utcnow
from app.services import cascade_store
from app.services.cascade_service import ClientNotFoundError
from app.services.cascade_store import StaleTransitionError
from app.services.notification_service import NotifierGateway, get_notifier
from app.types import JsonObject

logger = logging.getLogger(__name__)

MAX_FINALIZE_ATTEMPTS = 3


@dataclass
class FinalizeResult:
    outcome: FinalizeOutcome
    client_id: UUID
    consultant_id: UUID
    completed_assignment_id: UUID | None = None
    displaced_consultant_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> JsonObject:
        return {
            "outcome": self.outcome.value,
            "client_id": self.client_id,
            "consultant_id": self.consultant_id,
            "completed_assignment_id": self.completed_assignment_id,
            "displaced_consultant_ids": list(self.displaced_consultant_ids),
        }


def _finalize(db: Session, client_id: UUID, consultant_id: UUID, now: datetime) -> FinalizeResult:
    client = db.execute(
        select(Client).where(Client.id == client_id).with_for_update()
    ).scalar_one_or_none()
    if not client:
        raise ClientNotFoundError(f"Client {client_id} not found")

    result = FinalizeResult(
        outcome=FinalizeOutcome.NOTHING_TO_FINALIZE,
        client_id=client_id,
        consultant_id=consultant_id,
    )
    already_converted = cascade_store.has_completed(db, client_id)
    active = cascade_store.list_active_by_client(db, client_id)

    winner = None
    if not already_converted:
        winner = next((a for a in active if a.consultant_id == consultant_id), None)
    if winner is not None:
        try:
            cascade_store.transition_status(
                db,
                winner.id,
                AssignmentStatus.ACTIVE,
                AssignmentStatus.COMPLETED,
                finalized_at=now,
                reason=AssignmentReason.CONVERTED.value,
            )
            result.outcome = FinalizeOutcome.COMPLETED
            result.completed_assignment_id = winner.id
        except StaleTransitionError:
            winner = None

    loser_reason = (
        AssignmentReason.ALREADY_CONVERTED if already_converted else AssignmentReason.LOST_TO_OTHER
    )
    for row in active:
        if winner is not None and row.id == winner.id:
            continue
        try:
            cascade_store.transition_status(
                db,
                row.id,
                AssignmentStatus.ACTIVE,
                AssignmentStatus.COMPLETED_DUPLICATE,
                finalized_at=now,
                reason=loser_reason.value,
            )
            result.displaced_consultant_ids.append(row.consultant_id)
        except StaleTransitionError:
            continue

    if result.outcome == FinalizeOutcome.COMPLETED:
        db.execute(
            update(Client)
            .where(Client.id == client_id)
            .values(current_owner_id=consultant_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
    return result


def on_conversion(
    db: Session,
    client_id: UUID,
    consultant_id: UUID,
    now: datetime | None = None,
    notifier: NotifierGateway | None = None,
) -> FinalizeResult:
    """
    Resolve the client's cascade after a conversion by consultant_id.

    Returns NOTHING_TO_FINALIZE (never raises) when the consultant holds no
    ACTIVE row or the client was already converted; remaining ACTIVE rows are
    still closed as COMPLETED_DUPLICATE in that case.
    """
    now = now or utcnow()
    log_extra = build_log_context(client_id=client_id, consultant_id=consultant_id)

    for attempt in range(MAX_FINALIZE_ATTEMPTS):
        try:
            result = _finalize(db, client_id, consultant_id, now)
            db.commit()
            break
        except IntegrityError:
            # Another conversion completed a different row first
            db.rollback()
            if attempt >= MAX_FINALIZE_ATTEMPTS - 1:
                raise
            logger.info("Concurrent conversion detected, re-running finalize", extra=log_extra)

    if result.outcome == FinalizeOutcome.COMPLETED:
        logger.info(
            "Cascade finalized, %s other assignment(s) closed",
            len(result.displaced_consultant_ids),
            extra=log_extra,
        )
    else:
        logger.info(
            "Nothing to finalize, %s assignment(s) closed",
            len(result.displaced_consultant_ids),
            extra=log_extra,
        )

    _notify(db, result, notifier)
    return result


def _notify(db: Session, result: FinalizeResult, notifier: NotifierGateway | None) -> None:
    """
    Won notice to the winner, lost notice to everyone displaced.

    The consultant reporting the conversion never gets a lost notice, even
    when their own row was closed because the client had already converted.
    """
    lost_ids = [cid for cid in result.displaced_consultant_ids if cid != result.consultant_id]
    if result.outcome != FinalizeOutcome.COMPLETED and not lost_ids:
        return
    try:
        client = db.get(Client, result.client_id)
        winner = (
            db.get(Consultant, result.consultant_id)
            if result.outcome == FinalizeOutcome.COMPLETED
            else None
        )
        displaced = [
            c
            for c in (db.get(Consultant, cid) for cid in lost_ids)
            if c is not None
        ]
        (notifier or get_notifier()).notify_cascade_finalized(client, winner, displaced)
    except Exception:
        logger.exception(
            "Finalization notification failed",
            extra=build_log_context(client_id=result.client_id),
        )
