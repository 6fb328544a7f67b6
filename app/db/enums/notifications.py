"""Notification-related enums."""

from enum import Enum


class NotificationType(str, Enum):
    """Types of consultant notifications."""

    FIRST_ASSIGNMENT = "first_assignment"  # New lead, sequence 1
    CASCADE_ASSIGNMENT = "cascade_assignment"  # Lead escalated after SLA expiry
    CASCADE_WON = "cascade_won"
    CASCADE_LOST = "cascade_lost"  # Client converted by another consultant
    PERFORMANCE_SUMMARY = "performance_summary"


class NotificationPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    VERY_HIGH = "very_high"


class NotificationChannelType(str, Enum):
    """Delivery channels for the notifier fan-out."""

    PUSH = "push"  # In-app notification row
    WHATSAPP = "whatsapp"
    EMAIL = "email"
