"""Centralized defaults for enums."""

from app.db.enums.cascade import AssignmentStatus
from app.db.enums.jobs import JobStatus
from app.db.enums.notifications import NotificationPriority


DEFAULT_ASSIGNMENT_STATUS: AssignmentStatus = AssignmentStatus.ACTIVE
DEFAULT_JOB_STATUS: JobStatus = JobStatus.PENDING
DEFAULT_NOTIFICATION_PRIORITY: NotificationPriority = NotificationPriority.NORMAL
