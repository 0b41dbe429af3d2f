"""
Broadcast outbox.

Services never publish directly. They stage a frame with enqueue() on the
same session that carries the mutation, so the frame is committed (or
rolled back) together with it. dispatch_pending() publishes committed
frames through the Broadcaster and stamps dispatched_at.

Dispatch runs twice:
    - right after the request commits (routes call flush_after_commit),
      limited to the frames that request enqueued
    - periodically from dispatcher_service, which picks up anything the
      request-time pass could not publish

Each frame is claimed with a committed conditional UPDATE before it is
published, so two passes racing on the same row publish it once. A claim
left behind by a crashed worker is taken over after
outbox_claim_timeout_seconds.

Publishing to a topic nobody is subscribed to counts as dispatched: live
frames are at-most-once and are never replayed to late subscribers.
"""
import logging
from datetime import timedelta
from typing import Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import OutboxMessage
from services.broadcaster import Broadcaster
from utils.clock import utcnow

logger = logging.getLogger(__name__)

# Session.info key holding the rows enqueued on that session
STAGED_KEY = "outbox_staged"


def frame(frame_type: str, data: dict) -> dict:
    """Build a server push frame: {type, data}."""
    return {"type": frame_type, "data": data}


def enqueue(db: AsyncSession, topic: str, message: dict) -> OutboxMessage:
    """Stage a frame for topic. Committed with the caller's transaction."""
    row = OutboxMessage(topic=topic, message=message, attempts=0)
    db.add(row)
    db.info.setdefault(STAGED_KEY, []).append(row)
    return row


def _claimable(max_attempts: int):
    stale_before = utcnow() - timedelta(seconds=settings.outbox_claim_timeout_seconds)
    return (
        OutboxMessage.dispatched_at.is_(None),
        OutboxMessage.attempts < max_attempts,
        or_(OutboxMessage.claimed_at.is_(None), OutboxMessage.claimed_at < stale_before),
    )


async def _claim(db: AsyncSession, row_id: int, max_attempts: int) -> bool:
    result = await db.execute(
        update(OutboxMessage)
        .where(OutboxMessage.id == row_id, *_claimable(max_attempts))
        .values(claimed_at=utcnow(), attempts=OutboxMessage.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _settle(db: AsyncSession, row_id: int, **values) -> None:
    await db.execute(
        update(OutboxMessage)
        .where(OutboxMessage.id == row_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def dispatch_pending(
    db: AsyncSession,
    broadcaster: Broadcaster,
    *,
    ids: Optional[Iterable[int]] = None,
    limit: int | None = None,
    max_attempts: int | None = None,
) -> dict:
    """
    Publish undispatched frames in insertion order.

    Every frame is claimed and committed before its publish is awaited; a
    frame another pass already holds is skipped. A frame whose publish
    raises keeps dispatched_at NULL, records the error, releases its claim
    and is retried on the next pass until max_attempts is reached.

    Args:
        ids: restrict the pass to these outbox rows (request-time dispatch)

    Returns:
        dict: {dispatched, failed, reached}
    """
    limit = limit or settings.outbox_batch_size
    max_attempts = max_attempts or settings.outbox_max_attempts

    query = select(OutboxMessage.id, OutboxMessage.topic, OutboxMessage.message, OutboxMessage.attempts)
    query = query.where(*_claimable(max_attempts))
    if ids is not None:
        ids = list(ids)
        if not ids:
            return {"dispatched": 0, "failed": 0, "reached": 0}
        query = query.where(OutboxMessage.id.in_(ids))
    result = await db.execute(query.order_by(OutboxMessage.id).limit(limit))
    candidates = result.all()

    dispatched = failed = reached = 0
    for row in candidates:
        if not await _claim(db, row.id, max_attempts):
            logger.debug(f"Outbox message #{row.id} already claimed, skipping")
            continue

        attempt = row.attempts + 1
        try:
            reached += await broadcaster.publish(row.topic, row.message)
        except Exception as e:
            failed += 1
            await _settle(db, row.id, claimed_at=None, last_error=str(e)[:500])
            logger.warning(
                f"Outbox publish failed for #{row.id} on {row.topic} "
                f"(attempt {attempt}/{max_attempts}): {e}"
            )
            if attempt >= max_attempts:
                logger.error(f"Outbox message #{row.id} abandoned after {attempt} attempts")
            continue

        await _settle(db, row.id, dispatched_at=utcnow())
        dispatched += 1

    return {"dispatched": dispatched, "failed": failed, "reached": reached}


async def flush_after_commit(db: AsyncSession, broadcaster: Broadcaster) -> None:
    """
    Request-time dispatch pass for the frames staged on db.

    Runs on its own session so nothing here can expire or roll back the
    request's instances. The mutation is already committed when this runs,
    so a failure is logged and left to the background dispatcher instead of
    failing the request.
    """
    staged = db.info.pop(STAGED_KEY, [])
    ids = [row.id for row in staged if row.id is not None]
    if not ids:
        return

    try:
        async with AsyncSession(db.bind, expire_on_commit=False) as dispatch_db:
            await dispatch_pending(dispatch_db, broadcaster, ids=ids)
    except Exception as e:
        logger.warning(f"Deferred outbox dispatch to background task: {e}")
