"""Flush-time interception of changes to records that require approval.

A ``before_flush`` listener on the ORM Session inspects every dirty record
with a registered policy. When the policy asks for review, the listener
queues a PendingApprovalRow in the same flush and resets the record's
attributes to their committed values, so no UPDATE reaches the table.
"""

import logging
from contextlib import contextmanager
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import event, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from changegate.config import settings
from changegate.db.models.pending_approval import PendingApprovalRow
from changegate.errors.exceptions import CaptureError
from changegate.models.enums import ApprovalState, SaveOutcome
from changegate.repositories.pending_approval_repo import PendingApprovalRepository
from changegate.services.id_generator import generate_id
from changegate.services.policy import ApprovalPolicy, get_policy, record_key
from changegate.services.snapshot import take_snapshot

logger = logging.getLogger(__name__)

CAPTURED_KEY = "changegate.captured"
BYPASS_KEY = "changegate.bypass"


def install() -> None:
    """Attach the flush listener to every ORM Session (idempotent)."""
    if not event.contains(Session, "before_flush", _before_flush):
        event.listen(Session, "before_flush", _before_flush)


def uninstall() -> None:
    if event.contains(Session, "before_flush", _before_flush):
        event.remove(Session, "before_flush", _before_flush)


def _sync(session: Session | AsyncSession) -> Session:
    return getattr(session, "sync_session", session)


@contextmanager
def bypass_approval(session: Session | AsyncSession, record: Any):
    """Let writes to *record* through this session skip interception."""
    tokens = _sync(session).info.setdefault(BYPASS_KEY, set())
    token = id(record)
    tokens.add(token)
    try:
        yield
    finally:
        tokens.discard(token)


def dirty_changes(record: Any, committed: dict | None = None) -> dict[str, list]:
    """Column attributes with a net change, as key -> [old, new].

    *committed* supplies stored values for attributes that were assigned
    while expired, where the ORM history has no old value.
    """
    committed = committed or {}
    state = inspect(record)
    changes = {}
    for prop in state.mapper.column_attrs:
        history = state.attrs[prop.key].history
        if not history.has_changes():
            continue
        new = history.added[0] if history.added else None
        if history.deleted:
            old = history.deleted[0]
        elif prop.key in committed:
            old = committed[prop.key]
            if old == new:
                continue
        else:
            old = None
        changes[prop.key] = [old, new]
    return changes


def load_current_state(session: Session, record: Any) -> dict:
    """Load expired columns of a persistent record inside the flush.

    Pending edits are kept. Returns the stored values of columns that were
    assigned while expired.
    """
    state = inspect(record)
    mapper = state.mapper
    for prop in mapper.column_attrs:
        if prop.key in state.unloaded:
            # One access loads every expired, unmodified column
            getattr(record, prop.key)
            break

    blind = [
        prop for prop in mapper.column_attrs
        if state.attrs[prop.key].history.added and not state.attrs[prop.key].history.deleted
    ]
    if not blind:
        return {}
    stmt = select(*(prop.columns[0] for prop in blind)).where(
        mapper.primary_key[0] == state.identity[0]
    )
    stored = session.execute(stmt).one_or_none()
    if stored is None:
        return {}
    return {prop.key: value for prop, value in zip(blind, stored)}


def _revert(session: Session, record: Any, keys, committed: dict) -> None:
    state = inspect(record)
    expire = []
    for key in keys:
        history = state.attrs[key].history
        if history.deleted:
            set_committed_value(record, key, history.deleted[0])
        elif key in committed:
            set_committed_value(record, key, committed[key])
        elif history.unchanged:
            set_committed_value(record, key, history.unchanged[0])
        else:
            expire.append(key)
    if expire:
        session.expire(record, expire)


def capture(session: Session, record: Any, policy: ApprovalPolicy) -> PendingApprovalRow | None:
    """Divert the pending change on *record* into the approval queue.

    Returns the queued row, or None when the change may be written directly.
    """
    try:
        committed = load_current_state(session, record)
    except Exception as exc:
        raise CaptureError(
            f"Could not load stored state of {policy.record_type}", details={"error": str(exc)}
        ) from exc
    changes = dirty_changes(record, committed)
    effective = {k: v for k, v in changes.items() if k not in policy.excluded_fields()}
    if not effective:
        return None

    try:
        needs_approval = policy.needs_approval(record)
    except Exception as exc:
        raise CaptureError(
            f"Approval predicate failed for {policy.record_type}", details={"error": str(exc)}
        ) from exc
    if not needs_approval:
        return None

    try:
        record_type, record_id = record_key(record)
        row = PendingApprovalRow(
            approval_id=generate_id("papr_"),
            record_type=record_type,
            record_id=record_id,
            object_changes=to_jsonable_python(effective, bytes_mode="base64"),
            raw_object=take_snapshot(record),
            state=ApprovalState.PENDING,
        )
    except Exception as exc:
        raise CaptureError(
            f"Could not capture change to {policy.record_type}", details={"error": str(exc)}
        ) from exc

    PendingApprovalRepository(session).stage(row)
    _revert(session, record, set(changes) | set(committed), committed)

    extra = {
        "approval_id": row.approval_id,
        "record_type": record_type,
        "record_id": record_id,
        "fields": sorted(effective),
    }
    if settings.log_changed_values:
        extra["object_changes"] = row.object_changes
    logger.info("approval_captured", extra=extra)
    return row


def _before_flush(session: Session, flush_context, instances) -> None:
    captured = []
    bypass = session.info.get(BYPASS_KEY, ())
    for record in list(session.dirty):
        if id(record) in bypass:
            continue
        policy = get_policy(record)
        if policy is None or not inspect(record).persistent:
            continue
        row = capture(session, record, policy)
        if row is not None:
            captured.append(row)
    session.info[CAPTURED_KEY] = captured


def captured_approvals(session: Session | AsyncSession) -> list[PendingApprovalRow]:
    """Approvals queued by the most recent flush of *session*."""
    return list(_sync(session).info.get(CAPTURED_KEY, []))


async def save(session: AsyncSession, record: Any, commit: bool = True) -> SaveOutcome:
    """Persist *record* and report whether it was written or queued for approval.

    Raises:
        CaptureError: The change needed approval but could not be queued.
            Nothing is written; the caller should roll back.
    """
    state = inspect(record)
    is_new = state.key is None
    session.add(record)
    _sync(session).info[CAPTURED_KEY] = []
    await session.flush()

    outcome = SaveOutcome.CREATED if is_new else SaveOutcome.COMMITTED
    if not is_new:
        key = record_key(record)
        for row in captured_approvals(session):
            if (row.record_type, row.record_id) == key:
                outcome = SaveOutcome.CAPTURED
                break

    if commit:
        await session.commit()
    return outcome
