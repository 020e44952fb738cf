"""Reconciliation engine - approve or reject queued changes.

Approving replays the stored snapshot onto the live record and dequeues the
approval in one transaction. Rejecting only dequeues; the record was never
written when the change was captured. Every operation commits its own
transaction so a failure leaves the approval pending and retryable.
"""

import logging
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from changegate.config import settings
from changegate.db.models.pending_approval import PendingApprovalRow
from changegate.errors.exceptions import NotFoundError, ReconciliationError
from changegate.logging_config import bind_approval_context, clear_approval_context
from changegate.models.enums import ApprovalState
from changegate.repositories.pending_approval_repo import PendingApprovalRepository
from changegate.services.interception import bypass_approval
from changegate.services.policy import record_key
from changegate.services.snapshot import coerce_column_value, restore_snapshot, snapshot_attributes

logger = logging.getLogger(__name__)


async def pending_approvals(session: AsyncSession, record: Any) -> list[PendingApprovalRow]:
    """Pending approvals for *record*, oldest first."""
    record_type, record_id = record_key(record)
    return await PendingApprovalRepository(session).list_pending(record_type, record_id)


async def has_pending_approval(session: AsyncSession, record: Any) -> bool:
    record_type, record_id = record_key(record)
    return await PendingApprovalRepository(session).has_pending(record_type, record_id)


async def load_proposed_record(session: AsyncSession, approval: PendingApprovalRow) -> Any:
    """Transient copy of the record as the approval would leave it."""
    row = await PendingApprovalRepository(session).get(approval.approval_id)
    if row is None or row.state != ApprovalState.PENDING:
        raise NotFoundError("Pending approval", approval.approval_id)
    return restore_snapshot(row.raw_object)


async def _dequeue(repo: PendingApprovalRepository, approval_id: str, state: ApprovalState) -> int:
    if settings.archive_decisions:
        return await repo.mark_decided(approval_id, state)
    return await repo.remove(approval_id)


async def approve_changes(session: AsyncSession, approval: PendingApprovalRow) -> bool:
    """Write the approval's snapshot to its record and dequeue it.

    Returns False when the approval was already approved or rejected.

    Raises:
        ReconciliationError: The snapshot could not be revived or the write
            failed. The approval stays pending.
    """
    return await _approve(session, approval.approval_id)


async def _approve(session: AsyncSession, approval_id: str) -> bool:
    repo = PendingApprovalRepository(session)
    row = await repo.get(approval_id)
    if row is None or row.state != ApprovalState.PENDING:
        logger.debug("Approval %s already decided, nothing to approve", approval_id)
        return False

    bind_approval_context(row.record_type, row.record_id, approval_id)
    try:
        try:
            proposed = restore_snapshot(row.raw_object)
        except ReconciliationError as exc:
            exc.approval_id = approval_id
            raise

        mapper = inspect(type(proposed))
        pk_prop = mapper.get_property_by_column(mapper.primary_key[0])
        pk_key = pk_prop.key
        try:
            pk_value = coerce_column_value(pk_prop, row.record_id)
        except (ValueError, TypeError) as exc:
            raise ReconciliationError(
                f"Bad record id '{row.record_id}' for {row.record_type}",
                approval_id=approval_id,
            ) from exc
        target = await session.get(type(proposed), pk_value)
        if target is None:
            raise ReconciliationError(
                f"{row.record_type} '{row.record_id}' no longer exists",
                approval_id=approval_id,
            )

        columns = set(mapper.column_attrs.keys())
        keys = (snapshot_attributes(row.raw_object) & columns) - {pk_key}
        try:
            with bypass_approval(session, target):
                for key in sorted(keys):
                    setattr(target, key, getattr(proposed, key))
                await session.flush()
                await _dequeue(repo, approval_id, ApprovalState.APPROVED)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error("approval_failed", extra={"approval_id": approval_id, "error": str(exc)})
            raise ReconciliationError(
                f"Could not apply approval '{approval_id}'", approval_id=approval_id
            ) from exc
    finally:
        clear_approval_context()

    logger.info("approval_approved", extra={"approval_id": approval_id, "fields": sorted(keys)})
    return True


async def reject_changes(session: AsyncSession, approval: PendingApprovalRow) -> bool:
    """Dequeue an approval without touching its record.

    Returns False when the approval was already approved or rejected.
    """
    approval_id = approval.approval_id
    removed = await _dequeue(PendingApprovalRepository(session), approval_id, ApprovalState.REJECTED)
    await session.commit()
    if removed:
        logger.info("approval_rejected", extra={"approval_id": approval_id})
    return bool(removed)


async def approve_pending_changes(session: AsyncSession, record: Any) -> int:
    """Approve every pending change to *record*, oldest first.

    Stops at the first failure; approvals before it stay applied and the
    rest stay pending. Returns the number approved.
    """
    # Ids up front: each approval commits and may expire the loaded rows
    approval_ids = [a.approval_id for a in await pending_approvals(session, record)]
    approved = 0
    for approval_id in approval_ids:
        if await _approve(session, approval_id):
            approved += 1
    return approved


async def reject_pending_changes(session: AsyncSession, record: Any) -> int:
    """Drop every pending change to *record*. Returns the number rejected."""
    record_type, record_id = record_key(record)
    repo = PendingApprovalRepository(session)
    if settings.archive_decisions:
        rejected = await repo.mark_all_decided(record_type, record_id, ApprovalState.REJECTED)
    else:
        rejected = await repo.remove_all(record_type, record_id)
    await session.commit()
    logger.info(
        "approvals_rejected",
        extra={"record_type": record_type, "record_id": record_id, "count": rejected},
    )
    return rejected
