"""
Background dispatcher — drains the broadcast outbox and sweeps expired events.

Runs as two asyncio background tasks during the FastAPI app lifespan:

    _outbox_loop  every outbox_poll_seconds, publishes frames the request
                  path did not get to (crash between commit and dispatch,
                  broadcaster errors)
    _sweep_loop   every event_sweep_seconds, deletes real-time events older
                  than realtime_event_ttl_days

Both loops open their own session per cycle and back off after repeated
errors.
"""
import asyncio
import logging
from typing import Optional

from config import settings
from database import async_session
from services import outbox_service, realtime_service
from services.broadcaster import Broadcaster

logger = logging.getLogger(__name__)

_outbox_task: Optional[asyncio.Task] = None
_sweep_task: Optional[asyncio.Task] = None
_is_running: bool = False
_errors_count: int = 0
_dispatched_total: int = 0
_purged_total: int = 0


async def _outbox_loop(broadcaster: Broadcaster):
    global _errors_count, _dispatched_total

    poll_interval = settings.outbox_poll_seconds
    logger.info(f"Outbox dispatcher started (poll every {poll_interval}s)")

    while _is_running:
        try:
            async with async_session() as db:
                result = await outbox_service.dispatch_pending(db, broadcaster)
            _dispatched_total += result["dispatched"]
            if result["dispatched"] or result["failed"]:
                logger.info(
                    f"  Outbox cycle: {result['dispatched']} dispatched, "
                    f"{result['failed']} failed"
                )
            await asyncio.sleep(poll_interval)
        except asyncio.CancelledError:
            logger.info("Outbox dispatcher cancelled")
            break
        except Exception as e:
            _errors_count += 1
            logger.error(f"Outbox cycle error: {e}")
            backoff = min(60, poll_interval * 2) if _errors_count > 5 else poll_interval
            await asyncio.sleep(backoff)


async def _sweep_loop():
    global _errors_count, _purged_total

    interval = settings.event_sweep_seconds
    while _is_running:
        try:
            async with async_session() as db:
                _purged_total += await realtime_service.purge_expired_events(db)
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Event sweeper cancelled")
            break
        except Exception as e:
            _errors_count += 1
            logger.error(f"Event sweep error: {e}")
            await asyncio.sleep(min(interval, 60))


# ════════════════════════════════════════════════════════════════════
# Public API — Start / Stop / Status
# ════════════════════════════════════════════════════════════════════


async def start(broadcaster: Broadcaster):
    """Start the outbox dispatcher and event sweeper as background tasks."""
    global _outbox_task, _sweep_task, _is_running

    if _outbox_task and not _outbox_task.done():
        logger.warning("Dispatcher already running")
        return

    _is_running = True
    _outbox_task = asyncio.create_task(_outbox_loop(broadcaster))
    _sweep_task = asyncio.create_task(_sweep_loop())
    logger.info("Dispatcher + sweeper tasks created")


async def stop():
    """Stop both background tasks gracefully."""
    global _outbox_task, _sweep_task, _is_running
    _is_running = False

    for task in [_outbox_task, _sweep_task]:
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    _outbox_task = None
    _sweep_task = None
    logger.info("Dispatcher + sweeper tasks stopped")


def get_status() -> dict:
    """Dispatcher status for the /health endpoint."""
    return {
        "running": _is_running,
        "errorsCount": _errors_count,
        "dispatchedTotal": _dispatched_total,
        "purgedEventsTotal": _purged_total,
        "pollIntervalSeconds": settings.outbox_poll_seconds,
        "maxAttempts": settings.outbox_max_attempts,
    }
