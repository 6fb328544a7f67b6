"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron (Cloud Scheduler, GH Actions) when the worker
process is not running.
"""

import logging

from fastapi import APIRouter, Depends

from app.core.deps import require_internal_secret
from app.schemas.cascade import SweepResultRead
from app.services.cascade_sweeper import get_sweeper

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)
logger = logging.getLogger(__name__)


@router.post("/cascade-sweep", response_model=SweepResultRead)
def run_cascade_sweep():
    """
    Expire overdue assignments and escalate them to the next consultant.

    Shares the worker's run guard, so a manual sweep waits for an in-flight
    one instead of overlapping it.
    """
    result = get_sweeper().run()
    logger.info("Manual cascade sweep: %s", result.to_dict())
    return SweepResultRead(**result.to_dict())
