"""Collector - reclaim the rows of conversations that reached a terminal outcome."""

from __future__ import annotations

from dataclasses import asdict

import structlog
from sqlalchemy import Column, MetaData, Select, String, Table, delete, func, insert, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.schema import CreateTable, DropTable

from msgstore_gc.config import GCConfig
from msgstore_gc.errors import CleanupError, QueryError
from msgstore_gc.models import (
    AttachmentMetadata,
    MessageContent,
    MessageMetadata,
    MessageState,
    MessageType,
)
from msgstore_gc.services.gc.base import CycleResult, PendingWaste, SweepStats

logger = structlog.get_logger()

message_metadata = MessageMetadata.__table__
message_content = MessageContent.__table__
message_state = MessageState.__table__
attachment_metadata = AttachmentMetadata.__table__

# Cycle-scoped snapshots. Temporary tables are private to the collector's
# connection and are dropped at the end of every cycle. The names carry the
# collector prefix: an unqualified DROP falls back to a regular table of the
# same name when no temporary one exists.
_snapshot_metadata = MetaData()

closed_requests_snapshot = Table(
    "msgstore_gc_tmp_closed_requests",
    _snapshot_metadata,
    Column("id", String(), primary_key=True),
    prefixes=["TEMPORARY"],
)

waste_responses_snapshot = Table(
    "msgstore_gc_tmp_waste_responses",
    _snapshot_metadata,
    Column("id", String(), primary_key=True),
    prefixes=["TEMPORARY"],
)


class Collector:
    """Two-phase mark-and-sweep over the message store.

    Mark:
        closed requests = reference_id of every RESPONSE with a terminal mode
        waste responses = id of every RESPONSE referencing a closed request
                          (includes STATUS updates of the same conversation)

    Sweep (responses first, then requests), for every snapshot id:
        attachment_metadata, message_content, message_metadata, message_state

    Both marks are materialized into temporary tables and committed before
    the first delete, so deletions never change the working set of a cycle.
    Each sweep phase runs in its own transaction.

    Usage:
        collector = Collector(engine, settings.gc)
        result = await collector.run_cycle()
    """

    def __init__(self, engine: AsyncEngine, config: GCConfig) -> None:
        self._engine = engine
        self._terminal_modes = list(config.terminal_modes)
        self._log = logger.bind(component="collector")

        # Closed requests not yet swept. Taken from the snapshot before any
        # response is deleted: once their closing responses are gone a fresh
        # mark cannot find them, and a lost connection cannot be read from.
        self._unswept_requests: set[str] = set()

    @property
    def unswept_requests(self) -> frozenset[str]:
        """Request ids carried over to the next cycle."""
        return frozenset(self._unswept_requests)

    async def run_cycle(self) -> CycleResult:
        """Execute one mark-and-sweep cycle.

        Store failures abort the rest of the cycle and are recorded in the
        result; they are never raised.

        Returns:
            CycleResult with snapshot sizes and per-table deletion counts
        """
        result = CycleResult()
        self._log.info("gc.cycle.start", terminal_modes=self._terminal_modes)

        stage = "connect"
        responses_swept = False
        try:
            async with self._engine.connect() as conn:
                try:
                    stage = "mark"
                    await self._create_snapshots(conn)
                    result.closed_requests = await self._mark_closed_requests(conn)
                    result.waste_responses = await self._mark_waste_responses(conn)
                    self._unswept_requests = await self._snapshot_ids(
                        conn, closed_requests_snapshot
                    )

                    stage = "sweep_responses"
                    result.responses = await self._sweep(conn, waste_responses_snapshot)
                    responses_swept = True
                    self._log.info(
                        "gc.sweep.complete",
                        phase="responses",
                        **asdict(result.responses),
                    )

                    stage = "sweep_requests"
                    result.requests = await self._sweep(conn, closed_requests_snapshot)
                    self._unswept_requests.clear()
                    self._log.info(
                        "gc.sweep.complete",
                        phase="requests",
                        **asdict(result.requests),
                    )
                except SQLAlchemyError as e:
                    self._record_failure(result, stage, e)
                    if responses_swept:
                        self._log.warning(
                            "gc.sweep.requests_carried_over",
                            count=len(self._unswept_requests),
                        )
                finally:
                    await self._release_snapshots(conn, result)
        except SQLAlchemyError as e:
            # Only reached when the connection itself could not be opened
            self._record_failure(result, stage, e)

        if result.success:
            self._log.info(
                "gc.cycle.complete",
                closed_requests=result.closed_requests,
                waste_responses=result.waste_responses,
                cleaned=result.cleaned_count,
            )
        return result

    async def pending(self) -> PendingWaste:
        """Count what the next cycle would reclaim, without deleting.

        Carried-over requests count once, together with the responses
        that still reference them.
        """
        closed = self._closed_requests_query().subquery()
        references_closed = message_metadata.c.reference_id.in_(
            select(closed.c.reference_id)
        )
        if self._unswept_requests:
            references_closed = or_(
                references_closed,
                message_metadata.c.reference_id.in_(sorted(self._unswept_requests)),
            )
        waste_count = (
            select(func.count())
            .select_from(message_metadata)
            .where(
                message_metadata.c.message_type == MessageType.RESPONSE.value,
                references_closed,
            )
        )

        async with self._engine.connect() as conn:
            found = await conn.execute(select(closed.c.reference_id))
            closed_ids = set(found.scalars()) | self._unswept_requests
            waste_responses = (await conn.execute(waste_count)).scalar_one()

        return PendingWaste(
            closed_requests=len(closed_ids),
            waste_responses=waste_responses,
        )

    def _closed_requests_query(self) -> Select:
        """REQUEST ids answered by at least one terminal RESPONSE."""
        return (
            select(message_metadata.c.reference_id)
            .join(message_content, message_content.c.id == message_metadata.c.id)
            .where(
                message_metadata.c.message_type == MessageType.RESPONSE.value,
                message_metadata.c.reference_id.is_not(None),
                message_content.c.mode.in_(self._terminal_modes),
            )
            .distinct()
        )

    async def _create_snapshots(self, conn: AsyncConnection) -> None:
        # Replace leftovers of a cycle whose release failed
        for snapshot in (closed_requests_snapshot, waste_responses_snapshot):
            await conn.execute(DropTable(snapshot, if_exists=True))
            await conn.execute(CreateTable(snapshot))
        await conn.commit()

    async def _mark_closed_requests(self, conn: AsyncConnection) -> int:
        await conn.execute(
            insert(closed_requests_snapshot).from_select(
                ["id"], self._closed_requests_query()
            )
        )
        if self._unswept_requests:
            await self._add_unswept(conn)
        count = await self._count(conn, closed_requests_snapshot)
        await conn.commit()

        self._log.info("gc.mark.closed_requests", count=count)
        return count

    async def _add_unswept(self, conn: AsyncConnection) -> None:
        carried = sorted(self._unswept_requests)
        present = await conn.execute(
            select(closed_requests_snapshot.c.id).where(
                closed_requests_snapshot.c.id.in_(carried)
            )
        )
        missing = set(carried).difference(present.scalars())
        if missing:
            await conn.execute(
                insert(closed_requests_snapshot),
                [{"id": request_id} for request_id in sorted(missing)],
            )
            self._log.info("gc.mark.carried_over", count=len(missing))

    async def _mark_waste_responses(self, conn: AsyncConnection) -> int:
        responses = select(message_metadata.c.id).where(
            message_metadata.c.message_type == MessageType.RESPONSE.value,
            message_metadata.c.reference_id.in_(select(closed_requests_snapshot.c.id)),
        )
        await conn.execute(
            insert(waste_responses_snapshot).from_select(["id"], responses)
        )
        count = await self._count(conn, waste_responses_snapshot)
        await conn.commit()

        self._log.info("gc.mark.waste_responses", count=count)
        return count

    async def _sweep(self, conn: AsyncConnection, snapshot: Table) -> SweepStats:
        """Delete every row keyed by a snapshot id, in one transaction.

        Attachments go first so they never outlive their envelope.
        """
        ids = select(snapshot.c.id)
        stats = SweepStats()
        stats.attachments = await self._delete(
            conn,
            delete(attachment_metadata).where(
                attachment_metadata.c.message_metadata_id.in_(ids)
            ),
        )
        stats.contents = await self._delete(
            conn, delete(message_content).where(message_content.c.id.in_(ids))
        )
        stats.metadata = await self._delete(
            conn, delete(message_metadata).where(message_metadata.c.id.in_(ids))
        )
        stats.states = await self._delete(
            conn, delete(message_state).where(message_state.c.id.in_(ids))
        )
        await conn.commit()
        return stats

    @staticmethod
    async def _delete(conn: AsyncConnection, statement) -> int:
        result = await conn.execute(statement)
        # Some drivers report -1 when the count is unknown
        return max(result.rowcount, 0)

    @staticmethod
    async def _count(conn: AsyncConnection, snapshot: Table) -> int:
        result = await conn.execute(select(func.count()).select_from(snapshot))
        return result.scalar_one()

    @staticmethod
    async def _snapshot_ids(conn: AsyncConnection, snapshot: Table) -> set[str]:
        result = await conn.execute(select(snapshot.c.id))
        return set(result.scalars())

    async def _release_snapshots(self, conn: AsyncConnection, result: CycleResult) -> None:
        """Drop both snapshots. Failures are reported, never raised."""
        try:
            await conn.rollback()
            for snapshot in (waste_responses_snapshot, closed_requests_snapshot):
                await conn.execute(DropTable(snapshot, if_exists=True))
            await conn.commit()
        except SQLAlchemyError as e:
            error = CleanupError(f"Failed to release snapshots: {e}")
            result.cleanup_errors.append(error.message)
            self._log.warning("gc.snapshot.release_failed", **error.to_dict())

    def _record_failure(self, result: CycleResult, stage: str, exc: SQLAlchemyError) -> None:
        error = QueryError(f"{stage} failed: {exc}", details={"stage": stage})
        result.add_error(error.message)
        self._log.exception("gc.cycle.failed", **error.to_dict())
