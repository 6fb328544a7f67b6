"""
Rotation directory - the fairness queue used to distribute leads.

The order lives in the active AutomationConfig row. Every write goes through
a compare-and-swap on rotation_version so two assignments for different
clients cannot silently overwrite each other's rotation.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.enums import RotationPolicy
from app.db.models import AutomationConfig, Consultant
from app.services import automation_config_service

logger = logging.getLogger(__name__)


class RotationConflictError(Exception):
    """Rotation order kept changing underneath us; gave up after max retries."""

    pass


def active_consultants(db: Session) -> list[Consultant]:
    """
    Active consultants in rotation order.

    Consultants missing from the consultants table or flagged inactive are
    skipped; repeated ids keep their first position. An empty list is a
    valid result and means "no eligible consultants".
    """
    order = automation_config_service.get_rotation_order(db)
    if not order:
        return []

    rows = db.execute(
        select(Consultant).where(
            Consultant.id.in_(order),
            Consultant.is_active.is_(True),
        )
    ).scalars().all()
    by_id = {c.id: c for c in rows}

    seen: set[UUID] = set()
    result: list[Consultant] = []
    for consultant_id in order:
        if consultant_id in seen:
            continue
        seen.add(consultant_id)
        consultant = by_id.get(consultant_id)
        if consultant:
            result.append(consultant)
    return result


def _rotated(order: list[UUID], consultant_id: UUID, policy: RotationPolicy) -> list[UUID] | None:
    """Return the new order, or None when the order should stay as is."""
    if consultant_id not in order:
        return None
    if policy == RotationPolicy.HEAD_ONLY:
        if order[0] != consultant_id:
            return None
        return order[1:] + [consultant_id]
    new_order = [c for c in order if c != consultant_id]
    new_order.append(consultant_id)
    return None if new_order == order else new_order


def _warn_if_head_blocked(db: Session, head_id: UUID) -> None:
    """
    Under HEAD_ONLY an inactive or unknown head is never assigned, so it
    never rotates and the order stays frozen until the config is fixed.
    """
    head = db.get(Consultant, head_id)
    if head is not None and head.is_active:
        return
    logger.warning(
        "Rotation head %s is %s; head_only rotation is frozen until the order is updated",
        head_id,
        "unknown" if head is None else "inactive",
    )


def rotate_to_tail(
    db: Session,
    consultant_id: UUID,
    policy: RotationPolicy | str | None = None,
) -> bool:
    """
    Move a consultant to the end of the rotation order.

    With the default HEAD_ONLY policy the consultant only moves when it is at
    the head of the configured order; escalations to a non-head consultant
    leave the order untouched. Returns True when the order changed.

    Raises RotationConflictError if the compare-and-swap keeps losing.
    """
    policy = RotationPolicy(policy or settings.CASCADE_ROTATION_POLICY)

    for attempt in range(settings.CASCADE_ROTATION_MAX_RETRIES):
        config = automation_config_service.get_active_config(db)
        if not config:
            return False
        # Re-read the committed row; a stale identity-map copy would never win the CAS
        db.refresh(config)

        order = automation_config_service.parse_rotation_order(config.rotation_order)
        new_order = _rotated(order, consultant_id, policy)
        if new_order is None:
            if policy == RotationPolicy.HEAD_ONLY and order and order[0] != consultant_id:
                _warn_if_head_blocked(db, order[0])
            logger.debug(
                "Rotation unchanged for consultant %s (policy=%s)", consultant_id, policy.value
            )
            return False

        seen_version = config.rotation_version
        result = db.execute(
            update(AutomationConfig)
            .where(
                AutomationConfig.id == config.id,
                AutomationConfig.rotation_version == seen_version,
            )
            .values(
                rotation_order=[str(c) for c in new_order],
                rotation_version=seen_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.commit()
            logger.info(
                "Rotated consultant %s to tail (version %s -> %s)",
                consultant_id,
                seen_version,
                seen_version + 1,
            )
            return True

        db.rollback()
        logger.info(
            "Rotation version changed concurrently, retrying (attempt %s)", attempt + 1
        )

    raise RotationConflictError(
        f"Could not rotate consultant {consultant_id} after "
        f"{settings.CASCADE_ROTATION_MAX_RETRIES} attempts"
    )
