"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from app.services import automation_config_service
from app.services import cascade_store
from app.services import rotation_service
from app.services import job_service
from app.services import notification_service
from app.services import cascade_service
from app.services import cascade_finalizer
from app.services import cascade_sweeper
from app.services import cascade_metrics_service

__all__ = [
    "automation_config_service",
    "cascade_store",
    "rotation_service",
    "job_service",
    "notification_service",
    "cascade_service",
    "cascade_finalizer",
    "cascade_sweeper",
    "cascade_metrics_service",
]
