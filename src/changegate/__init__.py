"""changegate - approval-gated persistence for SQLAlchemy records."""

from changegate.db.models.pending_approval import PendingApprovalRow
from changegate.errors.exceptions import (
    CaptureError,
    ChangeGateError,
    ConfigurationError,
    NotFoundError,
    ReconciliationError,
)
from changegate.mixins import ApprovableMixin
from changegate.models.enums import ApprovalState, SaveOutcome
from changegate.services.interception import save
from changegate.services.policy import register_approval, requires_approval
from changegate.services.reconciliation import (
    approve_changes,
    approve_pending_changes,
    has_pending_approval,
    pending_approvals,
    reject_changes,
    reject_pending_changes,
)

__all__ = [
    "ApprovableMixin",
    "ApprovalState",
    "CaptureError",
    "ChangeGateError",
    "ConfigurationError",
    "NotFoundError",
    "PendingApprovalRow",
    "ReconciliationError",
    "SaveOutcome",
    "approve_changes",
    "approve_pending_changes",
    "has_pending_approval",
    "pending_approvals",
    "register_approval",
    "reject_changes",
    "reject_pending_changes",
    "requires_approval",
    "save",
]
