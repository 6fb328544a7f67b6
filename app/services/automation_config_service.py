"""Lead automation configuration (rotation order + SLA hours)."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import AutomationConfig

logger = logging.getLogger(__name__)


def get_active_config(db: Session) -> AutomationConfig | None:
    """Return the active automation config, or None if none is configured."""
    return db.execute(
        select(AutomationConfig)
        .where(AutomationConfig.is_active.is_(True))
        .order_by(AutomationConfig.created_at)
        .limit(1)
    ).scalar_one_or_none()


def get_sla_hours(db: Session) -> int:
    """SLA window in hours; falls back to CASCADE_DEFAULT_SLA_HOURS."""
    config = get_active_config(db)
    if config and config.sla_hours and config.sla_hours > 0:
        return config.sla_hours
    return settings.CASCADE_DEFAULT_SLA_HOURS


def get_rotation_order(db: Session) -> list[UUID]:
    """Configured rotation order as UUIDs (unparseable entries are dropped)."""
    config = get_active_config(db)
    if not config:
        return []
    return parse_rotation_order(config.rotation_order)


def parse_rotation_order(raw: list | None) -> list[UUID]:
    order: list[UUID] = []
    for value in raw or []:
        try:
            order.append(value if isinstance(value, UUID) else UUID(str(value)))
        except ValueError:
            logger.warning("Ignoring invalid consultant id in rotation order: %r", value)
    return order


def save_config(
    db: Session,
    rotation_order: list[UUID] | None = None,
    sla_hours: int | None = None,
    name: str | None = None,
) -> AutomationConfig:
    """
    Create or update the active config.

    Rotation writes bump rotation_version so in-flight compare-and-swap
    rotations detect the change.
    """
    config = get_active_config(db)
    if not config:
        config = AutomationConfig(
            name=name or "Default",
            rotation_order=[str(c) for c in rotation_order or []],
            rotation_version=0,
            sla_hours=sla_hours or settings.CASCADE_DEFAULT_SLA_HOURS,
            is_active=True,
        )
        db.add(config)
        db.flush()
        return config

    values: dict = {}
    if rotation_order is not None:
        values["rotation_order"] = [str(c) for c in rotation_order]
        values["rotation_version"] = AutomationConfig.rotation_version + 1
    if sla_hours is not None:
        values["sla_hours"] = sla_hours
    if name is not None:
        values["name"] = name
    if values:
        db.execute(
            update(AutomationConfig)
            .where(AutomationConfig.id == config.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.flush()
        db.refresh(config)
    return config
