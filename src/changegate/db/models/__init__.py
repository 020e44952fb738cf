"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from changegate.db.models.pending_approval import PendingApprovalRow

__all__ = [
    "PendingApprovalRow",
]
