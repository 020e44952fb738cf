"""Walk a record through the approval queue end to end.

Creates an approved post, edits it twice (both edits are queued instead of
written), then approves the queue and prints the record at each step.

Usage:
    python scripts/simulate_approval_workflow.py

Prereq: None (uses in-memory DB unless CHANGEGATE_DATABASE_URL is set).
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from changegate import ApprovableMixin, requires_approval, save
from changegate.config import settings
from changegate.db.base import Base, TimestampMixin
from changegate.db.engine import create_db_engine, create_session_factory, create_tables
from changegate.logging_config import configure_logging

logger = logging.getLogger("simulate_approval_workflow")


@requires_approval(when="is_approved", skip_attributes=("updated_at",))
class Post(ApprovableMixin, TimestampMixin, Base):
    __tablename__ = "demo_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)

    def is_approved(self) -> bool:
        return self.state == "approved"


async def main() -> None:
    configure_logging(log_level=settings.log_level, json_output=settings.json_logs)
    url = os.environ.get("CHANGEGATE_DATABASE_URL", "sqlite+aiosqlite:///")
    engine = create_db_engine(url)
    await create_tables(engine)
    session_factory = create_session_factory(engine)

    async with session_factory() as session:
        post = Post(title="A", state="approved")
        print(f"create          -> {await save(session, post)}  title={post.title!r}")

        for title in ("B", "C"):
            post.title = title
            outcome = await save(session, post)
            await session.refresh(post)
            print(f"edit to {title!r}    -> {outcome}  stored title={post.title!r}")

        for approval in await post.pending_approvals():
            proposed = await approval.as_object()
            print(f"  queued {approval.approval_id}: {approval.object_changes} -> {proposed.title!r}")

        approved = await post.approve_pending_changes()
        await session.refresh(post)
        print(f"approved {approved}      -> stored title={post.title!r}, pending={await post.pending_approval()}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
