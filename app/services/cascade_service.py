"""
Assignment selector - picks the consultant for a client's next cascade step.

Three entry points share one algorithm:
- on_new_lead(): first assignment for an inbound lead (head of the rotation).
- escalate(previous): SLA expiry of `previous` plus the next consultant after
  it (wrapping to the head), committed in one transaction.
- assign_next(previous=...): the next assignment alone, for callers that
  already resolved the previous row.

The new row is committed before the rotation, ownership and notification
side effects run; those are best-effort and never undo an assignment.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.structured_logging import build_log_context
from app.db.enums import AssignmentReason, AssignmentStatus
from app.db.models import CascadeAssignment, Client, Consultant, Lead
from app.db.types import utcnow
from app.services import automation_config_service, cascade_store, rotation_service
from app.services.cascade_store import (
    CascadeError,
    CascadeSequenceConflictError,
    DuplicateActiveAssignmentError,
)
from app.services.notification_service import NotifierGateway, get_notifier
from app.types import CascadeDataRecord

logger = logging.getLogger(__name__)

# Insert attempts when a concurrent writer takes the consultant or the sequence
MAX_INSERT_ATTEMPTS = 3


class NoEligibleConsultantError(CascadeError):
    """No active consultant without an Active row for the client."""

    pass


class ClientNotFoundError(CascadeError):
    """Client not found."""

    pass


def _select_consultant(
    consultants: list[Consultant],
    busy: set[UUID],
    previous: CascadeAssignment | None,
) -> Consultant:
    ids = [c.id for c in consultants]
    start = 0
    if previous is not None and previous.consultant_id in ids:
        start = ids.index(previous.consultant_id) + 1

    for offset in range(len(consultants)):
        candidate = consultants[(start + offset) % len(consultants)]
        if candidate.id not in busy:
            return candidate
    raise NoEligibleConsultantError("Every active consultant already holds this client")


def _new_assignment(
    db: Session,
    client_id: UUID,
    lead_id: UUID | None,
    consultants: list[Consultant],
    previous: CascadeAssignment | None,
    sla_hours: int,
    now: datetime,
) -> tuple[CascadeAssignment, Consultant]:
    """Select the consultant and insert the ACTIVE row (flushed, not committed)."""
    busy = {a.consultant_id for a in cascade_store.list_active_by_client(db, client_id)}
    selected = _select_consultant(consultants, busy, previous)
    assignment = CascadeAssignment(
        client_id=client_id,
        lead_id=lead_id,
        consultant_id=selected.id,
        sequence=cascade_store.next_sequence(db, client_id),
        status=AssignmentStatus.ACTIVE.value,
        sla_hours=sla_hours,
        started_at=now,
        expires_at=now + timedelta(hours=sla_hours),
    )
    cascade_store.insert(db, assignment)
    return assignment, selected


def _require_consultants(db: Session, client_id: UUID) -> list[Consultant]:
    consultants = rotation_service.active_consultants(db)
    if not consultants:
        logger.warning(
            "No eligible consultants in rotation",
            extra=build_log_context(client_id=client_id),
        )
        raise NoEligibleConsultantError("Rotation has no active consultants")
    return consultants


def _log_created(assignment: CascadeAssignment, consultant: Consultant) -> None:
    logger.info(
        "Cascade assignment #%s created",
        assignment.sequence,
        extra=build_log_context(
            client_id=assignment.client_id,
            consultant_id=consultant.id,
            assignment_id=assignment.id,
            lead_id=assignment.lead_id,
        ),
    )


def assign_next(
    db: Session,
    client_id: UUID,
    lead_id: UUID | None = None,
    previous: CascadeAssignment | None = None,
    now: datetime | None = None,
    notifier: NotifierGateway | None = None,
) -> CascadeAssignment:
    """
    Create the next ACTIVE assignment in the client's chain and commit it.

    Raises NoEligibleConsultantError when the rotation is empty or every
    active consultant already holds an Active row for the client.
    """
    now = now or utcnow()
    client = db.get(Client, client_id)
    if not client:
        raise ClientNotFoundError(f"Client {client_id} not found")
    if lead_id is None and previous is not None:
        lead_id = previous.lead_id

    consultants = _require_consultants(db, client_id)
    sla_hours = automation_config_service.get_sla_hours(db)

    for attempt in range(MAX_INSERT_ATTEMPTS):
        try:
            assignment, selected = _new_assignment(
                db, client_id, lead_id, consultants, previous, sla_hours, now
            )
            db.commit()
            break
        except (DuplicateActiveAssignmentError, CascadeSequenceConflictError) as exc:
            db.rollback()
            if attempt >= MAX_INSERT_ATTEMPTS - 1:
                raise
            logger.info(
                "Concurrent cascade write (%s), reselecting",
                type(exc).__name__,
                extra=build_log_context(client_id=client_id),
            )

    _log_created(assignment, selected)
    _after_assignment(db, client, selected, assignment, notifier)
    return assignment


def escalate(
    db: Session,
    previous: CascadeAssignment,
    now: datetime | None = None,
    notifier: NotifierGateway | None = None,
) -> CascadeAssignment:
    """
    Expire an overdue ACTIVE row and hand its client to the next consultant.

    The expiry and the successor insert commit together: if anything fails
    before the commit the row is still ACTIVE and the next sweep retries it.
    The one exception is NoEligibleConsultantError, where the expiry is
    committed alone and the chain stalls.

    Raises StaleTransitionError (nothing written) when the row was resolved
    concurrently.
    """
    now = now or utcnow()
    previous_id = previous.id
    client_id = previous.client_id
    lead_id = previous.lead_id

    for attempt in range(MAX_INSERT_ATTEMPTS):
        cascade_store.transition_status(
            db,
            previous_id,
            AssignmentStatus.ACTIVE,
            AssignmentStatus.EXPIRED,
            finalized_at=now,
            reason=AssignmentReason.SLA_EXPIRED.value,
        )
        try:
            client = db.get(Client, client_id)
            if not client:
                raise ClientNotFoundError(f"Client {client_id} not found")
            consultants = _require_consultants(db, client_id)
            sla_hours = automation_config_service.get_sla_hours(db)
            assignment, selected = _new_assignment(
                db, client_id, lead_id, consultants, previous, sla_hours, now
            )
            db.commit()
            break
        except NoEligibleConsultantError:
            db.commit()
            raise
        except (DuplicateActiveAssignmentError, CascadeSequenceConflictError) as exc:
            db.rollback()
            if attempt >= MAX_INSERT_ATTEMPTS - 1:
                raise
            logger.info(
                "Concurrent cascade write (%s), retrying escalation",
                type(exc).__name__,
                extra=build_log_context(client_id=client_id, assignment_id=previous_id),
            )
        except Exception:
            db.rollback()
            raise

    _log_created(assignment, selected)
    _after_assignment(db, client, selected, assignment, notifier)
    return assignment


def _after_assignment(
    db: Session,
    client: Client,
    consultant: Consultant,
    assignment: CascadeAssignment,
    notifier: NotifierGateway | None,
) -> None:
    """Rotation, ownership and notification; failures are logged only."""
    log_extra = build_log_context(
        client_id=client.id, consultant_id=consultant.id, assignment_id=assignment.id
    )
    try:
        rotation_service.rotate_to_tail(db, consultant.id)
    except Exception:
        db.rollback()
        logger.exception("Rotation update failed", extra=log_extra)

    try:
        _update_owner(db, client.id, assignment.lead_id, consultant.id)
    except Exception:
        db.rollback()
        logger.exception("Owner update failed", extra=log_extra)

    try:
        (notifier or get_notifier()).notify_assignment(consultant, client, assignment)
    except Exception:
        logger.exception("Assignment notification failed", extra=log_extra)


def _update_owner(
    db: Session, client_id: UUID, lead_id: UUID | None, consultant_id: UUID
) -> None:
    db.execute(
        update(Client)
        .where(Client.id == client_id)
        .values(current_owner_id=consultant_id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if lead_id is not None:
        db.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(assigned_to_id=consultant_id)
            .execution_options(synchronize_session=False)
        )
    db.commit()


def on_new_lead(
    db: Session,
    client_id: UUID,
    lead_id: UUID | None,
    now: datetime | None = None,
    notifier: NotifierGateway | None = None,
) -> CascadeAssignment | None:
    """
    Start the cascade for a new lead.

    Returns None when the client already has Active assignments; the running
    cascade continues instead of a second one starting. A recurring lead for
    a client whose chain has ended continues that client's sequence.

    The client row is locked for the check and the insert. A concurrent
    write that still gets through (unique index hit, or another Active row
    visible after the flush) means another lead started the cascade first,
    so this call backs off and returns None rather than reselecting.
    """
    now = now or utcnow()
    log_extra = build_log_context(client_id=client_id, lead_id=lead_id)
    client = db.execute(
        select(Client).where(Client.id == client_id).with_for_update()
    ).scalar_one_or_none()
    if not client:
        raise ClientNotFoundError(f"Client {client_id} not found")

    try:
        if cascade_store.list_active_by_client(db, client_id):
            db.rollback()
            logger.info(
                "Client already in an active cascade, not starting another",
                extra=log_extra,
            )
            return None

        consultants = _require_consultants(db, client_id)
        sla_hours = automation_config_service.get_sla_hours(db)
        assignment, selected = _new_assignment(
            db, client_id, lead_id, consultants, None, sla_hours, now
        )
        others = [
            a for a in cascade_store.list_active_by_client(db, client_id) if a.id != assignment.id
        ]
        if others:
            db.rollback()
            logger.info("Cascade started concurrently by another lead", extra=log_extra)
            return None
        db.commit()
    except (DuplicateActiveAssignmentError, CascadeSequenceConflictError) as exc:
        db.rollback()
        logger.info(
            "Cascade started concurrently by another lead (%s)",
            type(exc).__name__,
            extra=log_extra,
        )
        return None
    except Exception:
        db.rollback()
        raise

    _log_created(assignment, selected)
    _after_assignment(db, client, selected, assignment, notifier)
    return assignment


# =============================================================================
# Queries
# =============================================================================


def get_active_assignments(db: Session, consultant_id: UUID) -> list[CascadeAssignment]:
    """Consultant's open queue ordered by expires_at."""
    return cascade_store.list_active_by_consultant(db, consultant_id)


def get_cascade_history(db: Session, client_id: UUID) -> list[CascadeAssignment]:
    """Full chain for a client ordered by sequence."""
    return cascade_store.list_history(db, client_id)


def list_cascade_data(db: Session, client_id: UUID | None = None) -> list[CascadeDataRecord]:
    """Dashboard rows: assignments joined with consultant and client names."""
    assignments = cascade_store.list_all(db, client_id)
    consultant_ids = {a.consultant_id for a in assignments}
    client_ids = {a.client_id for a in assignments}
    consultant_names = dict(
        db.execute(
            select(Consultant.id, Consultant.display_name).where(Consultant.id.in_(consultant_ids))
        ).all()
    ) if consultant_ids else {}
    client_names = dict(
        db.execute(select(Client.id, Client.full_name).where(Client.id.in_(client_ids))).all()
    ) if client_ids else {}

    rows: list[CascadeDataRecord] = []
    for assignment in assignments:
        consultant_name = consultant_names.get(assignment.consultant_id)
        client_name = client_names.get(assignment.client_id)
        rows.append(
            {
                "id": assignment.id,
                "client_id": assignment.client_id,
                "client_name": client_name,
                "consultant_id": assignment.consultant_id,
                "consultant_name": consultant_name,
                "lead_id": assignment.lead_id,
                "sequence": assignment.sequence,
                "status": assignment.status,
                "reason": assignment.reason,
                "sla_hours": assignment.sla_hours,
                "started_at": assignment.started_at,
                "expires_at": assignment.expires_at,
                "finalized_at": assignment.finalized_at,
            }
        )
    return rows
