"""Background job enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    NOTIFICATION_DELIVERY = "notification_delivery"  # External channel send (WhatsApp, email)


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
