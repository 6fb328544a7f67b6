"""Pydantic schemas for API request/response models."""

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
    SweepResultRead,
)

__all__ = [
    "CascadeAssignmentRead",
    "CascadeDataRow",
    "CascadeMetricsRead",
    "ConversionRequest",
    "FinalizeResultRead",
    "NewLeadRequest",
    "NewLeadResponse",
    "RotationRead",
    "RotationUpdate",
    "SweepResultRead",
]
