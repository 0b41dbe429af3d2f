"""
Real-time event log — audit trail of order and delivery transitions.

Events are kept for settings.realtime_event_ttl_days (30 by default). Reads
never return an event older than that, and purge_expired_events() deletes
them; it runs periodically from dispatcher_service. The log is an audit
trail, not a ledger: losing events past the TTL is expected.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import RealTimeEvent
from domain.enums import EntityType, EventType
from utils.clock import utcnow

logger = logging.getLogger(__name__)


def _json_safe(data: dict) -> dict:
    """Datetimes in event payloads are stored as ISO strings."""
    return {
        k: (v.isoformat() if isinstance(v, datetime) else v)
        for k, v in (data or {}).items()
    }


def expiry_cutoff(now: datetime | None = None) -> datetime:
    """Events created at or before this instant are expired."""
    return (now or utcnow()) - timedelta(days=settings.realtime_event_ttl_days)


async def create_event(
    db: AsyncSession,
    *,
    event_type: EventType,
    entity_id: str,
    entity_type: EntityType,
    user_id: str | None = None,
    data: dict | None = None,
) -> RealTimeEvent:
    event = RealTimeEvent(
        event_type=EventType(event_type).value,
        entity_id=entity_id,
        entity_type=EntityType(entity_type).value,
        user_id=user_id,
        data=_json_safe(data),
        processed=False,
        created_at=utcnow(),
    )
    db.add(event)
    await db.flush()
    return event


async def list_events(
    db: AsyncSession,
    *,
    entity_id: str | None = None,
    event_type: EventType | None = None,
    limit: int = 50,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[list[RealTimeEvent], int]:
    """Live (unexpired) events, newest first. Returns (page, total)."""
    conditions = [RealTimeEvent.created_at > expiry_cutoff(now)]
    if entity_id:
        conditions.append(RealTimeEvent.entity_id == entity_id)
    if event_type:
        conditions.append(RealTimeEvent.event_type == EventType(event_type).value)

    res = await db.execute(
        select(RealTimeEvent)
        .where(*conditions)
        .order_by(RealTimeEvent.created_at.desc(), RealTimeEvent.id.desc())
        .limit(limit)
        .offset(offset)
    )
    total = (
        await db.execute(select(func.count()).select_from(RealTimeEvent).where(*conditions))
    ).scalar_one()
    return res.scalars().all(), total


async def purge_expired_events(db: AsyncSession, now: datetime | None = None) -> int:
    """Delete expired events. Returns the number removed."""
    result = await db.execute(
        delete(RealTimeEvent).where(RealTimeEvent.created_at <= expiry_cutoff(now))
    )
    await db.commit()
    removed = result.rowcount or 0
    if removed:
        logger.info(f"Purged {removed} expired real-time event(s)")
    return removed
