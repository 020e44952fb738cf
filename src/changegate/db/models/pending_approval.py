"""Pending approval table: one queued, replayable change per row."""

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.ext.asyncio import async_object_session
from sqlalchemy.orm import Mapped, mapped_column

from changegate.db.base import Base, TimestampMixin
from changegate.errors.exceptions import ConfigurationError
from changegate.models.enums import ApprovalState


class PendingApprovalRow(Base, TimestampMixin):
    __tablename__ = "pending_approvals"
    __table_args__ = (
        Index("ix_pending_approvals_record", "record_type", "record_id", "state"),
    )

    # Insertion order; breaks created_at ties within the same clock tick
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    approval_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    record_type: Mapped[str] = mapped_column(String(255), nullable=False)
    record_id: Mapped[str] = mapped_column(String(255), nullable=False)
    object_changes: Mapped[dict] = mapped_column(JSON, nullable=False)
    raw_object: Mapped[dict] = mapped_column(JSON, nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=ApprovalState.PENDING)

    def __repr__(self) -> str:
        return (
            f"<PendingApprovalRow {self.approval_id} "
            f"{self.record_type}#{self.record_id} {self.state}>"
        )

    def _session(self):
        session = async_object_session(self)
        if session is None:
            raise ConfigurationError(
                f"Pending approval '{self.approval_id}' is not attached to an AsyncSession"
            )
        return session

    async def as_object(self):
        """Rebuild the proposed record from the snapshot without touching storage."""
        from changegate.services.reconciliation import load_proposed_record

        return await load_proposed_record(self._session(), self)

    async def approve_changes(self) -> bool:
        from changegate.services.reconciliation import approve_changes

        return await approve_changes(self._session(), self)

    async def reject_changes(self) -> bool:
        from changegate.services.reconciliation import reject_changes

        return await reject_changes(self._session(), self)
