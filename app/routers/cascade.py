"""Lead cascade router - ingestion, conversion and read-side endpoints."""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.rate_limit import WEBHOOK_LIMIT, limiter
from app.core.structured_logging import build_log_context
from app.schemas.cascade import (
    CascadeAssignmentRead,
    CascadeDataRow,
    CascadeMetricsRead,
    ConversionRequest,
    FinalizeResultRead,
    NewLeadRequest,
    NewLeadResponse,
    RotationRead,
    RotationUpdate,
)
from app.services import (
    automation_config_service,
    cascade_finalizer,
    cascade_metrics_service,
    cascade_service,
)
from app.services.cascade_service import ClientNotFoundError, NoEligibleConsultantError
from app.services.cascade_store import DuplicateActiveAssignmentError

router = APIRouter(prefix="/cascade", tags=["cascade"])
logger = logging.getLogger(__name__)


@router.post("/leads", response_model=NewLeadResponse)
@limiter.limit(WEBHOOK_LIMIT)
def receive_lead(
    request: Request,
    data: NewLeadRequest,
    db: Session = Depends(get_db),
):
    """
    Start the cascade for an inbound lead.

    Returns {"assignment": null} when the client is already in a running
    cascade.
    """
    try:
        assignment = cascade_service.on_new_lead(db, data.client_id, data.lead_id)
    except ClientNotFoundError:
        raise HTTPException(status_code=404, detail="Client not found")
    except NoEligibleConsultantError:
        logger.warning(
            "Lead left unassigned",
            extra=build_log_context(
                client_id=data.client_id,
                lead_id=data.lead_id,
                route=request.url.path,
                method=request.method,
            ),
        )
        raise HTTPException(status_code=409, detail="no_eligible_consultant")
    except DuplicateActiveAssignmentError:
        raise HTTPException(status_code=409, detail="duplicate_active_assignment")

    if assignment is None:
        return NewLeadResponse(assignment=None)
    return NewLeadResponse(assignment=CascadeAssignmentRead.model_validate(assignment))


@router.post("/conversions", response_model=FinalizeResultRead)
@limiter.limit(WEBHOOK_LIMIT)
def receive_conversion(
    request: Request,
    data: ConversionRequest,
    db: Session = Depends(get_db),
):
    """Credit the converting consultant and close the rest of the cascade."""
    try:
        result = cascade_finalizer.on_conversion(db, data.client_id, data.consultant_id)
    except ClientNotFoundError:
        raise HTTPException(status_code=404, detail="Client not found")
    return FinalizeResultRead(**result.to_dict())


@router.get("/consultants/{consultant_id}/active", response_model=list[CascadeAssignmentRead])
def list_consultant_queue(consultant_id: UUID, db: Session = Depends(get_db)):
    """Consultant's active assignments, most urgent first."""
    return cascade_service.get_active_assignments(db, consultant_id)


@router.get("/clients/{client_id}/history", response_model=list[CascadeAssignmentRead])
def get_client_history(client_id: UUID, db: Session = Depends(get_db)):
    return cascade_service.get_cascade_history(db, client_id)


@router.get("/data", response_model=list[CascadeDataRow])
def list_cascade_data(
    client_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
):
    """Dashboard data with consultant and client names."""
    return cascade_service.list_cascade_data(db, client_id)


@router.get("/metrics", response_model=CascadeMetricsRead)
def get_metrics(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    db: Session = Depends(get_db),
):
    """Performance metrics for the period (default: last 30 days)."""
    try:
        return cascade_metrics_service.get_performance_metrics(db, start=start, end=end)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _rotation_read(db: Session) -> RotationRead:
    config = automation_config_service.get_active_config(db)
    return RotationRead(
        rotation_order=automation_config_service.get_rotation_order(db),
        rotation_version=config.rotation_version if config else 0,
        sla_hours=automation_config_service.get_sla_hours(db),
    )


@router.get("/rotation", response_model=RotationRead)
def get_rotation(db: Session = Depends(get_db)):
    return _rotation_read(db)


@router.put("/rotation", response_model=RotationRead)
def update_rotation(data: RotationUpdate, db: Session = Depends(get_db)):
    """Replace the rotation order and/or the SLA window."""
    automation_config_service.save_config(
        db, rotation_order=data.rotation_order, sla_hours=data.sla_hours
    )
    db.commit()
    return _rotation_read(db)
