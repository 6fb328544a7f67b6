"""Enum definitions for application constants."""

from app.db.enums.cascade import (
    AssignmentReason,
    AssignmentStatus,
    FinalizeOutcome,
    RotationPolicy,
)
from app.db.enums.defaults import (
    DEFAULT_ASSIGNMENT_STATUS,
    DEFAULT_JOB_STATUS,
    DEFAULT_NOTIFICATION_PRIORITY,
)
from app.db.enums.jobs import JobStatus, JobType
from app.db.enums.notifications import (
    NotificationChannelType,
    NotificationPriority,
    NotificationType,
)

__all__ = [
    "AssignmentReason",
    "AssignmentStatus",
    "FinalizeOutcome",
    "RotationPolicy",
    "DEFAULT_ASSIGNMENT_STATUS",
    "DEFAULT_JOB_STATUS",
    "DEFAULT_NOTIFICATION_PRIORITY",
    "JobStatus",
    "JobType",
    "NotificationChannelType",
    "NotificationPriority",
    "NotificationType",
]
