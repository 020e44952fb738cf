"""Pending approval repository - the approval queue, scoped per record."""

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from changegate.db.models.pending_approval import PendingApprovalRow
from changegate.models.enums import ApprovalState
from changegate.repositories.base import BaseRepository


class PendingApprovalRepository(BaseRepository):
    def __init__(self, session: AsyncSession | Session):
        super().__init__(session, PendingApprovalRow)

    def stage(self, row: PendingApprovalRow) -> PendingApprovalRow:
        """Add an approval to the session without flushing.

        Safe to call from inside a flush; the row is written by that flush.
        """
        self.session.add(row)
        return row

    async def append(self, row: PendingApprovalRow) -> PendingApprovalRow:
        """Queue a new pending approval. Storage errors propagate."""
        self.stage(row)
        await self.session.flush()
        return row

    async def get(self, approval_id: str) -> PendingApprovalRow | None:
        return await self.get_by_id("approval_id", approval_id)

    async def list_pending(self, record_type: str, record_id: str) -> list[PendingApprovalRow]:
        """Pending approvals for one record, oldest first."""
        stmt = (
            select(PendingApprovalRow)
            .where(
                PendingApprovalRow.record_type == record_type,
                PendingApprovalRow.record_id == record_id,
                PendingApprovalRow.state == ApprovalState.PENDING,
            )
            .order_by(PendingApprovalRow.created_at, PendingApprovalRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_state(self, state: str) -> list[PendingApprovalRow]:
        return await self.list_by_field("state", state)

    async def has_pending(self, record_type: str, record_id: str) -> bool:
        stmt = select(
            exists().where(
                PendingApprovalRow.record_type == record_type,
                PendingApprovalRow.record_id == record_id,
                PendingApprovalRow.state == ApprovalState.PENDING,
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def remove(self, approval_id: str) -> int:
        """Delete one approval. Removing a missing approval is a no-op."""
        stmt = delete(PendingApprovalRow).where(PendingApprovalRow.approval_id == approval_id)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def remove_all(self, record_type: str, record_id: str) -> int:
        """Delete every pending approval queued for one record."""
        stmt = delete(PendingApprovalRow).where(
            PendingApprovalRow.record_type == record_type,
            PendingApprovalRow.record_id == record_id,
            PendingApprovalRow.state == ApprovalState.PENDING,
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def mark_decided(self, approval_id: str, state: str) -> int:
        """Archive one pending approval under a terminal state."""
        stmt = (
            update(PendingApprovalRow)
            .where(
                PendingApprovalRow.approval_id == approval_id,
                PendingApprovalRow.state == ApprovalState.PENDING,
            )
            .values(state=state)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def mark_all_decided(self, record_type: str, record_id: str, state: str) -> int:
        stmt = (
            update(PendingApprovalRow)
            .where(
                PendingApprovalRow.record_type == record_type,
                PendingApprovalRow.record_id == record_id,
                PendingApprovalRow.state == ApprovalState.PENDING,
            )
            .values(state=state)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
