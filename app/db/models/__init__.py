"""SQLAlchemy ORM models for the lead cascade engine."""

from app.db.models.cascade import AutomationConfig, CascadeAssignment
from app.db.models.clients import Client, Lead
from app.db.models.consultants import Consultant
from app.db.models.jobs import Job
from app.db.models.notifications import Notification

__all__ = [
    "AutomationConfig",
    "CascadeAssignment",
    "Client",
    "Consultant",
    "Job",
    "Lead",
    "Notification",
]
