"""
Escalation sweeper - expires overdue assignments and escalates them.

One run walks every ACTIVE row whose SLA has elapsed and hands each client to
the next consultant through cascade_service.escalate(), which commits the
expiry together with the successor row. A failure leaves the row ACTIVE for
the next run. A row resolved concurrently (e.g. converted between the scan
and the update) loses the transition and is skipped, never escalated.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.session import SessionLocal
from app.db.types import utcnow
from app.services import cascade_service, cascade_store
from app.services.cascade_service import NoEligibleConsultantError
from app.services.cascade_store import StaleTransitionError
from app.services.notification_service import NotifierGateway

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    expired: int = 0
    escalated: int = 0
    stalled: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class CascadeSweeper:
    """
    Periodic SLA sweep.

    run() holds a non-reentrant lock for its whole duration: a run that starts
    while the previous one is still going waits for it instead of processing
    the same rows twice.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        batch_size: int | None = None,
        notifier: NotifierGateway | None = None,
    ):
        self._session_factory = session_factory
        self._batch_size = batch_size or settings.CASCADE_SWEEP_BATCH_SIZE
        self._notifier = notifier
        self._run_guard = threading.Lock()

    def run(self, now: datetime | None = None) -> SweepResult:
        with self._run_guard:
            now = now or utcnow()
            result = SweepResult()
            with self._session_factory() as db:
                for assignment in cascade_store.list_active_expired(
                    db, now, batch_size=self._batch_size
                ):
                    result.scanned += 1
                    self._process(db, assignment, now, result)

            if result.scanned:
                logger.info("Cascade sweep finished: %s", result.to_dict())
            return result

    def _process(self, db: Session, assignment, now: datetime, result: SweepResult) -> None:
        log_extra = build_log_context(
            client_id=assignment.client_id,
            consultant_id=assignment.consultant_id,
            assignment_id=assignment.id,
        )
        sequence = assignment.sequence
        try:
            cascade_service.escalate(db, assignment, now=now, notifier=self._notifier)
        except StaleTransitionError:
            db.rollback()
            result.skipped += 1
            logger.info("Assignment resolved concurrently, skipping", extra=log_extra)
            return
        except NoEligibleConsultantError:
            result.expired += 1
            result.stalled += 1
            logger.warning(
                "Assignment #%s expired, cascade stalled: no eligible consultant",
                sequence,
                extra=log_extra,
            )
            return
        except Exception:
            db.rollback()
            result.errors += 1
            logger.exception("Escalation failed, assignment left active", extra=log_extra)
            return

        result.expired += 1
        result.escalated += 1
        logger.info("Assignment #%s expired and escalated", sequence, extra=log_extra)


_default_sweeper: CascadeSweeper | None = None


def get_sweeper() -> CascadeSweeper:
    """Process-wide sweeper so the worker and the manual endpoint share one guard."""
    global _default_sweeper
    if _default_sweeper is None:
        _default_sweeper = CascadeSweeper()
    return _default_sweeper
