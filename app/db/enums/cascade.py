"""Lead cascade enums."""

from enum import Enum


class AssignmentStatus(str, Enum):
    """
    Lifecycle of a cascade assignment row.

    ACTIVE is the only non-terminal state; a row leaves it exactly once.
    """

    ACTIVE = "Active"
    EXPIRED = "Expired"
    COMPLETED = "Completed"
    COMPLETED_DUPLICATE = "CompletedDuplicate"

    @classmethod
    def terminal(cls) -> tuple["AssignmentStatus", ...]:
        return (cls.EXPIRED, cls.COMPLETED, cls.COMPLETED_DUPLICATE)


class AssignmentReason(str, Enum):
    """Why an assignment left the ACTIVE state."""

    SLA_EXPIRED = "SLA_Expired"
    CONVERTED = "Converted"
    LOST_TO_OTHER = "LostToOther"
    ALREADY_CONVERTED = "AlreadyConverted"  # Client converted earlier in the chain


class RotationPolicy(str, Enum):
    """How the rotation order reacts to an assignment."""

    HEAD_ONLY = "head_only"  # Move to tail only when the consultant is at the head
    ALWAYS = "always"


class FinalizeOutcome(str, Enum):
    COMPLETED = "completed"
    NOTHING_TO_FINALIZE = "nothing_to_finalize"
