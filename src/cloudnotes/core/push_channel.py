"""
Per-client push channel.

A ``PushChannel`` drains one ``LiveQuery`` into server-sent events. Whatever
ends the stream (client disconnect, failed write, store error, shutdown),
the store subscription is released exactly once.
"""

import uuid
from contextlib import aclosing
from typing import AsyncIterator, Dict, List, Optional

from .live_query import LiveQuery
from .logging import get_logger
from .schemas.notes import NoteRecord, dump_snapshot

logger = get_logger("push_channel")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream"

OPEN = "open"
STREAMING = "streaming"
CLOSED = "closed"


def format_event(records: List[NoteRecord]) -> str:
    """One SSE event carrying the full ordered collection."""
    return f"data: {dump_snapshot(records)}\n\n"


class PushChannel:
    """Server-to-client stream of snapshots for a single connection."""

    def __init__(self, live_query: LiveQuery, registry: Optional["PushChannelRegistry"] = None):
        self.id = uuid.uuid4().hex
        self.live_query = live_query
        self.state = OPEN
        self.close_reason: Optional[str] = None
        self.events_sent = 0
        self._registry = registry

    async def events(self) -> AsyncIterator[str]:
        """Formatted events until the live query ends or the consumer goes away."""
        if self.state == CLOSED:
            return
        self.state = STREAMING
        if self._registry is not None:
            self._registry.add(self)
        logger.info("Push channel open", extra={"channel_id": self.id, "user_id": self.live_query.user_id})
        reason = "disconnect"
        try:
            async with aclosing(self.live_query.snapshots()) as snapshots:
                async for records in snapshots:
                    yield format_event(records)
                    self.events_sent += 1
            reason = "error" if self.live_query.error is not None else "closed"
        finally:
            self.close(reason)

    def close(self, reason: str = "closed") -> bool:
        """Release the subscription and mark the channel closed, once."""
        if self.state == CLOSED:
            return False
        self.state = CLOSED
        self.close_reason = reason
        self.live_query.close()
        if self._registry is not None:
            self._registry.discard(self)
        logger.info(
            "Push channel closed",
            extra={"channel_id": self.id, "reason": reason, "events_sent": self.events_sent},
        )
        return True


class PushChannelRegistry:
    """Open push channels of this process."""

    def __init__(self):
        self._channels: Dict[str, PushChannel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def open(self, live_query: LiveQuery) -> PushChannel:
        """Create a channel; it is tracked once it starts streaming."""
        return PushChannel(live_query, registry=self)

    def add(self, channel: PushChannel) -> None:
        self._channels[channel.id] = channel

    def discard(self, channel: PushChannel) -> None:
        self._channels.pop(channel.id, None)

    def close_all(self, reason: str = "shutdown") -> int:
        """Close every open channel; returns how many were closed."""
        closed = 0
        for channel in list(self._channels.values()):
            if channel.close(reason):
                closed += 1
        return closed
