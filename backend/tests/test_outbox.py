"""
Tests for the broadcast outbox — dispatch, claiming, retries and the
request-time flush.
"""
import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from db_models import OutboxMessage
from services import outbox_service
from services.broadcaster import InMemoryBroadcaster
from utils.clock import utcnow


class RecordingConnection:
    def __init__(self, delay: float = 0.0):
        self.sent = []
        self.delay = delay

    async def send_json(self, data):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(data)


class ExplodingBroadcaster(InMemoryBroadcaster):
    async def publish(self, topic, message):
        raise ConnectionError("broker unavailable")


async def _rows(db):
    res = await db.execute(
        select(OutboxMessage).order_by(OutboxMessage.id).execution_options(populate_existing=True)
    )
    return res.scalars().all()


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    """Session factory on a file database, so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}",
        connect_args={"timeout": 15},
    )
    import db_models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class TestOutbox:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dispatch_publishes_in_order(self, db_session):
        broadcaster = InMemoryBroadcaster()
        watcher = RecordingConnection()
        await broadcaster.subscribe("order:1", watcher)

        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {"n": 1}))
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {"n": 2}))
        outbox_service.enqueue(db_session, "user:nobody", outbox_service.frame("notification", {}))
        await db_session.commit()

        result = await outbox_service.dispatch_pending(db_session, broadcaster)

        assert result == {"dispatched": 3, "failed": 0, "reached": 2}
        assert [m["data"]["n"] for m in watcher.sent] == [1, 2]
        rows = await _rows(db_session)
        assert all(r.dispatched_at is not None for r in rows)
        assert all(r.attempts == 1 for r in rows)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dispatched_rows_are_not_resent(self, db_session):
        broadcaster = InMemoryBroadcaster()
        watcher = RecordingConnection()
        await broadcaster.subscribe("order:1", watcher)
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {}))
        await db_session.commit()

        await outbox_service.dispatch_pending(db_session, broadcaster)
        result = await outbox_service.dispatch_pending(db_session, broadcaster)

        assert result["dispatched"] == 0
        assert len(watcher.sent) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failures_are_retried_then_abandoned(self, db_session):
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {}))
        await db_session.commit()
        broken = ExplodingBroadcaster()

        for _ in range(3):
            result = await outbox_service.dispatch_pending(db_session, broken, max_attempts=2)
        [row] = await _rows(db_session)

        assert result == {"dispatched": 0, "failed": 0, "reached": 0}
        assert row.attempts == 2
        assert row.dispatched_at is None
        assert row.claimed_at is None
        assert "broker unavailable" in row.last_error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_row_recovers_on_next_pass(self, db_session):
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {}))
        await db_session.commit()

        failed = await outbox_service.dispatch_pending(db_session, ExplodingBroadcaster())
        assert failed["failed"] == 1

        recovered = await outbox_service.dispatch_pending(db_session, InMemoryBroadcaster())
        assert recovered["dispatched"] == 1


class TestOutboxClaims:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_claimed_row_is_skipped(self, db_session):
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {}))
        await db_session.commit()
        [row] = await _rows(db_session)
        # held by another pass, well inside the claim timeout
        row.claimed_at = utcnow()
        row.attempts = 1
        await db_session.commit()

        result = await outbox_service.dispatch_pending(db_session, InMemoryBroadcaster())
        assert result["dispatched"] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stale_claim_is_taken_over(self, db_session):
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {}))
        await db_session.commit()
        [row] = await _rows(db_session)
        row.claimed_at = utcnow() - timedelta(hours=1)
        row.attempts = 1
        await db_session.commit()

        result = await outbox_service.dispatch_pending(db_session, InMemoryBroadcaster())

        assert result["dispatched"] == 1
        [row] = await _rows(db_session)
        assert row.attempts == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_passes_publish_once(self, file_sessions):
        async with file_sessions() as db:
            outbox_service.enqueue(db, "order:1", outbox_service.frame("order_status", {"n": 1}))
            await db.commit()

        broadcaster = InMemoryBroadcaster()
        slow = RecordingConnection(delay=0.01)
        await broadcaster.subscribe("order:1", slow)

        async with file_sessions() as first, file_sessions() as second:
            results = await asyncio.gather(
                outbox_service.dispatch_pending(first, broadcaster),
                outbox_service.dispatch_pending(second, broadcaster),
            )

        assert slow.sent == [{"type": "order_status", "data": {"n": 1}}]
        assert sorted(r["dispatched"] for r in results) == [0, 1]

        async with file_sessions() as db:
            [row] = await _rows(db)
        assert row.attempts == 1
        assert row.dispatched_at is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_request_and_background_pass_publish_once(self, file_sessions):
        broadcaster = InMemoryBroadcaster()
        slow = RecordingConnection(delay=0.01)
        await broadcaster.subscribe("order:1", slow)

        async with file_sessions() as request_db, file_sessions() as background_db:
            outbox_service.enqueue(request_db, "order:1", outbox_service.frame("order_status", {"n": 1}))
            await request_db.commit()

            await asyncio.gather(
                outbox_service.flush_after_commit(request_db, broadcaster),
                outbox_service.dispatch_pending(background_db, broadcaster),
            )

        assert len(slow.sent) == 1


class TestFlushAfterCommit:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_rows_staged_on_the_session_are_sent(self, db_session):
        broadcaster = InMemoryBroadcaster()
        watcher = RecordingConnection()
        await broadcaster.subscribe("order:1", watcher)

        # staged by some other request, left for the background pass
        db_session.add(OutboxMessage(topic="order:1", message=outbox_service.frame("order_status", {"n": 0})))
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {"n": 1}))
        await db_session.commit()

        await outbox_service.flush_after_commit(db_session, broadcaster)

        assert [m["data"]["n"] for m in watcher.sent] == [1]
        rows = await _rows(db_session)
        assert [r.dispatched_at is None for r in rows] == [True, False]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_staged_rows_are_flushed_once(self, db_session):
        broadcaster = InMemoryBroadcaster()
        watcher = RecordingConnection()
        await broadcaster.subscribe("order:1", watcher)
        outbox_service.enqueue(db_session, "order:1", outbox_service.frame("order_status", {}))
        await db_session.commit()

        await outbox_service.flush_after_commit(db_session, broadcaster)
        await outbox_service.flush_after_commit(db_session, broadcaster)

        assert len(watcher.sent) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_publish_failure_leaves_rows_for_retry(self, db_session, placed_order):
        await outbox_service.flush_after_commit(db_session, ExplodingBroadcaster())

        rows = await _rows(db_session)
        assert rows
        assert all(r.dispatched_at is None for r in rows)
        assert all(r.claimed_at is None and r.attempts == 1 for r in rows)
        assert placed_order.status == "pending"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dispatch_error_keeps_request_instances_usable(self, db_session, placed_order, monkeypatch):
        async def locked(db, broadcaster, **kwargs):
            await db.execute(text("SELECT 1"))
            raise RuntimeError("database is locked")

        monkeypatch.setattr(outbox_service, "dispatch_pending", locked)

        await outbox_service.flush_after_commit(db_session, InMemoryBroadcaster())

        assert placed_order.status == "pending"
        assert [i.product_id for i in placed_order.items] == ["prod-1"]
