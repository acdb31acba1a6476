"""Fake implementations and store fixtures for testing.

Seeding helpers write conversations the way the messaging gateway does:
three envelope rows per message plus optional attachments.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from msgstore_gc.db import session_scope
from msgstore_gc.models import (
    AttachmentMetadata,
    ContentMode,
    MessageContent,
    MessageMetadata,
    MessageState,
    MessageType,
)
from msgstore_gc.services.gc.base import CycleResult

STORE_TABLES = {
    "metadata": (MessageMetadata.__table__, MessageMetadata.__table__.c.id),
    "content": (MessageContent.__table__, MessageContent.__table__.c.id),
    "state": (MessageState.__table__, MessageState.__table__.c.id),
    "attachments": (
        AttachmentMetadata.__table__,
        AttachmentMetadata.__table__.c.message_metadata_id,
    ),
}


def add_message(
    session: AsyncSession,
    message_id: str,
    message_type: MessageType,
    mode: ContentMode | str,
    *,
    reference_id: str | None = None,
    attachments: int = 1,
) -> None:
    """Add one envelope (metadata, content, state, attachments)."""
    session.add(
        MessageMetadata(
            id=message_id,
            message_type=message_type.value,
            reference_id=reference_id,
        )
    )
    session.add(MessageContent(id=message_id, mode=getattr(mode, "value", mode)))
    session.add(MessageState(id=message_id, state="DELIVERED"))
    for n in range(attachments):
        session.add(
            AttachmentMetadata(
                id=f"{message_id}-att-{n}",
                message_metadata_id=message_id,
                file_name=f"file-{n}.xml",
            )
        )


async def seed_conversation(
    engine: AsyncEngine,
    request_id: str,
    responses: Iterable[tuple[str, ContentMode]] = (),
    *,
    attachments: int = 1,
) -> None:
    """Store a REQUEST and its RESPONSE rows."""
    async with session_scope(engine) as session:
        add_message(
            session,
            request_id,
            MessageType.REQUEST,
            ContentMode.MESSAGE,
            attachments=attachments,
        )
        for response_id, mode in responses:
            add_message(
                session,
                response_id,
                MessageType.RESPONSE,
                mode,
                reference_id=request_id,
                attachments=attachments,
            )


async def count_rows(engine: AsyncEngine, message_ids: Iterable[str]) -> dict[str, int]:
    """Count rows keyed by the given message ids in every store table."""
    ids = list(message_ids)
    counts: dict[str, int] = {}
    async with engine.connect() as conn:
        for name, (table, column) in STORE_TABLES.items():
            result = await conn.execute(
                select(func.count()).select_from(table).where(column.in_(ids))
            )
            counts[name] = result.scalar_one()
    return counts


async def dump_store(engine: AsyncEngine) -> dict[str, set[str]]:
    """All keys of every store table."""
    dump: dict[str, set[str]] = {}
    async with engine.connect() as conn:
        for name, (table, _) in STORE_TABLES.items():
            result = await conn.execute(select(table.c.id))
            dump[name] = set(result.scalars())
    return dump


class FakeCollector:
    """Collector stand-in for scheduler tests."""

    def __init__(
        self,
        *,
        delay: float = 0.0,
        errors: list[str] | None = None,
        raises: Exception | None = None,
    ) -> None:
        self._delay = delay
        self._errors = errors or []
        self._raises = raises
        self.run_count = 0
        self.completed_count = 0
        self.active = 0
        self.max_active = 0

    async def run_cycle(self) -> CycleResult:
        self.run_count += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._raises is not None:
                raise self._raises
            result = CycleResult(closed_requests=1, waste_responses=1)
            for error in self._errors:
                result.add_error(error)
            self.completed_count += 1
            return result
        finally:
            self.active -= 1
