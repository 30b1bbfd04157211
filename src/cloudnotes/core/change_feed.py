"""
Change feed for the notes collection.

The store publishes one ``ChangeEvent`` after every committed mutation. Each
live subscription owns a ``FeedListener`` that buffers events until the
subscription re-queries; closing the listener detaches it from the feed.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Set

from ..config import Settings
from .exceptions import ChangeFeedError
from .logging import get_logger
from .redis_client import RedisClient

logger = get_logger("change_feed")


@dataclass(frozen=True)
class ChangeEvent:
    """One committed mutation of the notes collection."""

    kind: str  # "created" | "updated" | "deleted"
    note_id: str
    collection: str = "notes"
    at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, payload: str) -> "ChangeEvent":
        data = json.loads(payload)
        return cls(
            kind=data["kind"],
            note_id=data["note_id"],
            collection=data.get("collection", "notes"),
            at=data.get("at") or datetime.now(timezone.utc).isoformat(),
        )


_FAILED = object()


class FeedListener:
    """Buffers change events for a single subscriber."""

    def __init__(self, feed: "ChangeFeed"):
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue()
        self._error: Optional[ChangeFeedError] = None
        self.closed = False

    def deliver(self, event: ChangeEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def fail(self, error: ChangeFeedError) -> None:
        """The feed stopped delivering; the next ``wait()`` raises ``error``."""
        if self.closed or self._error is not None:
            return
        self._error = error
        self._queue.put_nowait(_FAILED)

    async def wait(self) -> List[ChangeEvent]:
        """Wait for at least one event, then drain everything already queued.

        Raises ``ChangeFeedError`` once the feed has failed.
        """
        item = await self._queue.get()
        events = []
        while True:
            if item is _FAILED:
                raise self._error
            events.append(item)
            if self._queue.empty():
                return events
            item = self._queue.get_nowait()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed.detach(self)


class ChangeFeed(ABC):
    """Fan-out of change events to local listeners."""

    def __init__(self):
        self._listeners: Set[FeedListener] = set()
        self._failure: Optional[ChangeFeedError] = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def listen(self) -> FeedListener:
        listener = FeedListener(self)
        self._listeners.add(listener)
        if self._failure is not None:
            listener.fail(self._failure)
        return listener

    def detach(self, listener: FeedListener) -> None:
        self._listeners.discard(listener)

    def dispatch(self, event: ChangeEvent) -> None:
        """Hand an event to every attached listener."""
        for listener in list(self._listeners):
            listener.deliver(event)

    def fail(self, error: ChangeFeedError) -> None:
        """Mark the feed dead; current and future listeners get ``error``."""
        self._failure = error
        for listener in list(self._listeners):
            listener.fail(error)

    async def start(self) -> None:
        """Begin receiving events (no-op for in-process feeds)."""

    async def stop(self) -> None:
        """Stop receiving events and drop all listeners."""
        for listener in list(self._listeners):
            listener.close()

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Announce a committed change."""

    @abstractmethod
    async def health(self) -> dict:
        """Report feed status for the health endpoint."""


class LocalChangeFeed(ChangeFeed):
    """In-process change feed."""

    async def publish(self, event: ChangeEvent) -> None:
        logger.debug("Change event", extra={"kind": event.kind, "note_id": event.note_id})
        self.dispatch(event)

    async def health(self) -> dict:
        return {"backend": "memory", "connected": True, "listeners": self.listener_count}


class RedisChangeFeed(ChangeFeed):
    """Change feed carried over a Redis pub/sub channel.

    Local publishes go to Redis only; they come back through the channel
    reader like any other writer's events, so each event is dispatched once.
    """

    def __init__(self, redis_client: RedisClient, channel: str):
        super().__init__()
        self.redis_client = redis_client
        self.channel = channel
        self._reader: Optional[asyncio.Task] = None

    async def start(self) -> None:
        await self.redis_client.connect()
        # subscribed before returning, so writes right after startup are seen
        pubsub = await self.redis_client.subscribe(self.channel)
        self._failure = None
        self._reader = asyncio.get_running_loop().create_task(self._read(pubsub))
        logger.info("Redis change feed started", extra={"channel": self.channel})

    async def stop(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Change feed reader ended with an error: {e}")
            self._reader = None
        await super().stop()
        await self.redis_client.disconnect()
        logger.info("Redis change feed stopped", extra={"channel": self.channel})

    async def _read(self, pubsub) -> None:
        try:
            async for payload in self.redis_client.listen(pubsub):
                try:
                    event = ChangeEvent.from_json(payload)
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Ignoring malformed change event: {e}")
                    continue
                self.dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Redis change feed reader failed", exc_info=e, extra={"channel": self.channel})
            self.fail(ChangeFeedError(f"Change feed connection lost: {e}"))
            return
        logger.error("Redis change feed subscription ended", extra={"channel": self.channel})
        self.fail(ChangeFeedError("Change feed subscription ended"))

    async def publish(self, event: ChangeEvent) -> None:
        try:
            await self.redis_client.publish(self.channel, event.to_json())
        except Exception as e:
            raise ChangeFeedError(f"Failed to publish change event: {e}") from e

    async def health(self) -> dict:
        try:
            connected = await self.redis_client.ping()
        except Exception as e:
            return {"backend": "redis", "connected": False, "error": str(e), "listeners": self.listener_count}
        reader_alive = self._reader is not None and not self._reader.done()
        return {
            "backend": "redis",
            "connected": connected and reader_alive,
            "listeners": self.listener_count,
        }


def build_change_feed(settings: Settings) -> ChangeFeed:
    """Pick the feed backend named in settings."""
    if settings.change_feed_backend == "redis":
        return RedisChangeFeed(RedisClient(settings), settings.change_feed_channel)
    return LocalChangeFeed()
