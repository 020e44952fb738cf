"""String enums for approval state and save outcomes."""

from enum import StrEnum


class ApprovalState(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SaveOutcome(StrEnum):
    CREATED = "created"
    COMMITTED = "committed"
    CAPTURED = "captured"
