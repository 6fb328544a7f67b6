"""
Cascade store - persistence for the append-only assignment chain.

All status changes go through transition_status(), a single conditional
UPDATE guarded by the expected current status. Whoever moves a row out of
ACTIVE first wins; every other writer gets StaleTransitionError and must
treat the row as already resolved.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.enums import AssignmentStatus
from app.db.models import CascadeAssignment

logger = logging.getLogger(__name__)

# Columns a transition may write; expires_at and the chain identity are immutable.
TRANSITION_FIELDS = frozenset({"finalized_at", "reason"})


class CascadeError(Exception):
    """Base exception for lead cascade errors."""

    pass


class CascadeStoreError(CascadeError):
    """Base exception for cascade store errors."""

    pass


class DuplicateActiveAssignmentError(CascadeStoreError):
    """An ACTIVE row already exists for this (client, consultant)."""

    pass


class CascadeSequenceConflictError(CascadeStoreError):
    """Another writer took this sequence number for the client."""

    pass


class StaleTransitionError(CascadeStoreError):
    """The row's status no longer matches the expected from_status."""

    pass


class InvalidTransitionError(CascadeStoreError, ValueError):
    """Requested transition is not part of the assignment lifecycle."""

    pass


# =============================================================================
# Writes
# =============================================================================


def insert(db: Session, assignment: CascadeAssignment) -> CascadeAssignment:
    """
    Insert a new ACTIVE assignment.

    Raises DuplicateActiveAssignmentError if the consultant already holds an
    ACTIVE row for the client (checked up front and enforced by the partial
    unique index for concurrent inserts). The session is rolled back on
    integrity errors.
    """
    if has_active_for_consultant(db, assignment.client_id, assignment.consultant_id):
        raise DuplicateActiveAssignmentError(
            f"Consultant {assignment.consultant_id} already has an active "
            f"assignment for client {assignment.client_id}"
        )

    try:
        db.add(assignment)
        db.flush()
    except IntegrityError:
        db.rollback()
        if has_active_for_consultant(db, assignment.client_id, assignment.consultant_id):
            raise DuplicateActiveAssignmentError(
                f"Consultant {assignment.consultant_id} already has an active "
                f"assignment for client {assignment.client_id}"
            )
        raise CascadeSequenceConflictError(
            f"Sequence {assignment.sequence} already taken for client {assignment.client_id}"
        )
    return assignment


def transition_status(
    db: Session,
    assignment_id: UUID,
    from_status: AssignmentStatus,
    to_status: AssignmentStatus,
    **fields,
) -> None:
    """
    Atomically move a row from from_status to to_status.

    Implemented as UPDATE ... WHERE id = :id AND status = :from_status with an
    affected-row check, never as read-then-write. Raises StaleTransitionError
    (row untouched) when the status no longer matches.
    """
    if from_status != AssignmentStatus.ACTIVE or to_status not in AssignmentStatus.terminal():
        raise InvalidTransitionError(
            f"Invalid transition {from_status.value} -> {to_status.value}"
        )
    unknown = set(fields) - TRANSITION_FIELDS
    if unknown:
        raise InvalidTransitionError(f"Fields not writable on transition: {sorted(unknown)}")

    result = db.execute(
        update(CascadeAssignment)
        .where(
            CascadeAssignment.id == assignment_id,
            CascadeAssignment.status == from_status.value,
        )
        .values(status=to_status.value, **fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StaleTransitionError(
            f"Assignment {assignment_id} is no longer {from_status.value}"
        )

    # Keep an already-loaded instance in step with the row
    db.get(CascadeAssignment, assignment_id, populate_existing=True)


# =============================================================================
# Reads
# =============================================================================


def get_assignment(db: Session, assignment_id: UUID) -> CascadeAssignment | None:
    return db.get(CascadeAssignment, assignment_id)


def has_active_for_consultant(db: Session, client_id: UUID, consultant_id: UUID) -> bool:
    return (
        db.execute(
            select(CascadeAssignment.id).where(
                CascadeAssignment.client_id == client_id,
                CascadeAssignment.consultant_id == consultant_id,
                CascadeAssignment.status == AssignmentStatus.ACTIVE.value,
            )
        ).first()
        is not None
    )


def has_completed(db: Session, client_id: UUID) -> bool:
    """True if the client's chain already credited a conversion."""
    return (
        db.execute(
            select(CascadeAssignment.id).where(
                CascadeAssignment.client_id == client_id,
                CascadeAssignment.status == AssignmentStatus.COMPLETED.value,
            )
        ).first()
        is not None
    )


def next_sequence(db: Session, client_id: UUID) -> int:
    """Next gap-free sequence number for the client's chain."""
    current = db.execute(
        select(func.max(CascadeAssignment.sequence)).where(
            CascadeAssignment.client_id == client_id
        )
    ).scalar()
    return (current or 0) + 1


def list_active_expired(
    db: Session,
    now: datetime,
    batch_size: int = 100,
) -> Iterator[CascadeAssignment]:
    """
    Lazily yield ACTIVE rows with expires_at <= now, oldest first.

    Keyset-paginated on (expires_at, id), so the sequence is finite (bounded
    by `now`) and a new call starts over from the oldest row still ACTIVE.
    Rows resolved by someone else between batches simply stop matching.
    """
    last_key: tuple[datetime, UUID] | None = None
    while True:
        query = select(CascadeAssignment).where(
            CascadeAssignment.status == AssignmentStatus.ACTIVE.value,
            CascadeAssignment.expires_at <= now,
        )
        if last_key is not None:
            last_expires, last_id = last_key
            query = query.where(
                or_(
                    CascadeAssignment.expires_at > last_expires,
                    and_(
                        CascadeAssignment.expires_at == last_expires,
                        CascadeAssignment.id > last_id,
                    ),
                )
            )
        query = query.order_by(CascadeAssignment.expires_at, CascadeAssignment.id).limit(
            batch_size
        )
        batch = list(db.execute(query).scalars().all())
        if not batch:
            return
        # Capture the cursor before yielding; callers commit between rows
        last_key = (batch[-1].expires_at, batch[-1].id)
        yield from batch
        if len(batch) < batch_size:
            return


def list_active_by_client(db: Session, client_id: UUID) -> list[CascadeAssignment]:
    """All currently ACTIVE rows for a client, in chain order."""
    return list(
        db.execute(
            select(CascadeAssignment)
            .where(
                CascadeAssignment.client_id == client_id,
                CascadeAssignment.status == AssignmentStatus.ACTIVE.value,
            )
            .order_by(CascadeAssignment.sequence)
        ).scalars().all()
    )


def list_active_by_consultant(db: Session, consultant_id: UUID) -> list[CascadeAssignment]:
    """A consultant's open queue, most urgent first."""
    return list(
        db.execute(
            select(CascadeAssignment)
            .where(
                CascadeAssignment.consultant_id == consultant_id,
                CascadeAssignment.status == AssignmentStatus.ACTIVE.value,
            )
            .order_by(CascadeAssignment.expires_at)
        ).scalars().all()
    )


def list_history(db: Session, client_id: UUID) -> list[CascadeAssignment]:
    """Full chain for a client ordered by sequence."""
    return list(
        db.execute(
            select(CascadeAssignment)
            .where(CascadeAssignment.client_id == client_id)
            .order_by(CascadeAssignment.sequence)
        ).scalars().all()
    )


def list_all(db: Session, client_id: UUID | None = None) -> list[CascadeAssignment]:
    """Every row, newest first; optionally restricted to one client."""
    query = select(CascadeAssignment)
    if client_id:
        query = query.where(CascadeAssignment.client_id == client_id)
    query = query.order_by(CascadeAssignment.started_at.desc(), CascadeAssignment.sequence.desc())
    return list(db.execute(query).scalars().all())


def list_started_between(
    db: Session, start: datetime, end: datetime
) -> list[CascadeAssignment]:
    return list(
        db.execute(
            select(CascadeAssignment).where(
                CascadeAssignment.started_at >= start,
                CascadeAssignment.started_at <= end,
            )
        ).scalars().all()
    )
