"""Instance-level approval helpers for mapped models."""

from sqlalchemy.ext.asyncio import AsyncSession, async_object_session

from changegate.errors.exceptions import ConfigurationError
from changegate.services import reconciliation


class ApprovableMixin:
    """Adds approval queue accessors to a mapped model.

    The record must be attached to an AsyncSession; the helpers use that
    session and commit through it.
    """

    def _approval_session(self) -> AsyncSession:
        session = async_object_session(self)
        if session is None:
            raise ConfigurationError(
                f"{type(self).__name__} instance is not attached to an AsyncSession"
            )
        return session

    async def pending_approvals(self):
        return await reconciliation.pending_approvals(self._approval_session(), self)

    async def pending_approval(self) -> bool:
        return await reconciliation.has_pending_approval(self._approval_session(), self)

    async def approve_pending_changes(self) -> int:
        return await reconciliation.approve_pending_changes(self._approval_session(), self)

    async def reject_pending_changes(self) -> int:
        return await reconciliation.reject_pending_changes(self._approval_session(), self)
