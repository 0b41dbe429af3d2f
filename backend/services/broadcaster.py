"""
Live broadcaster — fan-out of real-time frames to connected clients.

The registry maps a topic ("order:<id>", "delivery:<id>", "user:<id>") to
the set of connections currently subscribed to it. subscribe / unsubscribe /
publish are the only operations callers use, so the in-memory registry can
be replaced by a broker-backed implementation without touching them.

Delivery is at-most-once: a frame published to a topic with no subscribers
is dropped, and nothing is queued for clients that connect later. The
registry lives for the process lifetime; clients resubscribe after
reconnecting.

Each send is bounded by send_timeout. A subscriber that errors or stalls
past it is unsubscribed from every topic, so one slow client cannot hold up
the request that published the frame.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything frames can be pushed to (Starlette's WebSocket fits)."""

    async def send_json(self, data: Any) -> None: ...


class Broadcaster(ABC):
    @abstractmethod
    async def subscribe(self, topic: str, connection: Connection) -> None: ...

    @abstractmethod
    async def unsubscribe(self, topic: str, connection: Connection) -> None: ...

    @abstractmethod
    async def unsubscribe_all(self, connection: Connection) -> None: ...

    @abstractmethod
    async def publish(self, topic: str, message: dict) -> int:
        """Push message to every subscriber of topic. Returns the number reached."""

    def stats(self) -> dict:
        return {}


class InMemoryBroadcaster(Broadcaster):
    """
    Process-local registry.

    Not shared between workers: run a single worker, or swap in a
    broker-backed Broadcaster for multi-worker deployments.
    """

    def __init__(self, send_timeout: float = 2.0):
        self.send_timeout = send_timeout
        self._topics: dict[str, set] = defaultdict(set)
        self.published_total = 0
        self.dropped_total = 0

    async def subscribe(self, topic: str, connection: Connection) -> None:
        self._topics[topic].add(connection)

    async def unsubscribe(self, topic: str, connection: Connection) -> None:
        self._discard(topic, connection)

    async def unsubscribe_all(self, connection: Connection) -> None:
        for topic in list(self._topics):
            self._discard(topic, connection)

    def _discard(self, topic: str, connection: Connection) -> None:
        subscribers = self._topics.get(topic)
        if subscribers is None:
            return
        subscribers.discard(connection)
        if not subscribers:
            del self._topics[topic]

    async def publish(self, topic: str, message: dict) -> int:
        subscribers = list(self._topics.get(topic, ()))

        self.published_total += 1
        if not subscribers:
            self.dropped_total += 1
            return 0

        delivered = await asyncio.gather(
            *(self._send(topic, connection, message) for connection in subscribers)
        )

        for connection, ok in zip(subscribers, delivered):
            if not ok:
                await self.unsubscribe_all(connection)
        return sum(delivered)

    async def _send(self, topic: str, connection: Connection, message: dict) -> bool:
        try:
            await asyncio.wait_for(connection.send_json(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Dropping connection on {topic}: send timed out after {self.send_timeout}s")
        except Exception as e:
            logger.warning(f"Dropping connection on {topic}: send failed ({e})")
        return False

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def stats(self) -> dict:
        return {
            "topics": len(self._topics),
            "subscriptions": sum(len(s) for s in self._topics.values()),
            "publishedTotal": self.published_total,
            "droppedTotal": self.dropped_total,
        }
