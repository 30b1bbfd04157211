"""
Client subscription manager.

Keeps one event-stream connection open to ``GET /notes`` while a user is
signed in and replaces the local note list with every snapshot received.
Dropped connections are reopened after the reconnect delay, which the server
may override with an SSE ``retry:`` field, the way a browser EventSource does.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import httpx
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..core.logging import get_logger
from ..core.schemas.notes import NoteRecord, parse_snapshot
from .session import SessionState, user_id_of

logger = get_logger("client.subscription")

NotesListener = Callable[[List[NoteRecord]], None]


@dataclass
class ServerSentEvent:
    data: str
    event: str = "message"
    id: Optional[str] = None


class EventStreamParser:
    """Incremental parser for ``text/event-stream`` lines."""

    def __init__(self):
        self.retry_ms: Optional[int] = None
        self.last_event_id: Optional[str] = None
        self._data: List[str] = []
        self._event = ""

    def feed_line(self, line: str) -> Optional[ServerSentEvent]:
        """Consume one line (without its newline); returns an event on a blank line."""
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            self.last_event_id = value
        elif name == "retry" and value.isdigit():
            self.retry_ms = int(value)
        return None

    def _dispatch(self) -> Optional[ServerSentEvent]:
        if not self._data:
            self._event = ""
            return None
        event = ServerSentEvent(data="\n".join(self._data), event=self._event or "message", id=self.last_event_id)
        self._data = []
        self._event = ""
        return event


class NotesSubscription:
    """Live note list for the signed-in session."""

    def __init__(
        self,
        session: SessionState,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        reconnect_delay: Optional[float] = None,
        scope_to_user: bool = False,
        on_change: Optional[NotesListener] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.session = session
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else settings.client_reconnect_delay_seconds
        )
        self.scope_to_user = scope_to_user
        self.on_change = on_change

        self.notes: List[NoteRecord] = []
        self.loading = False
        self.connected = False
        self.last_error: Optional[BaseException] = None
        self.snapshots_received = 0

        self._timeout = settings.client_timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._task: Optional[asyncio.Task] = None
        self._session_unsubscribe: Optional[Callable[[], None]] = None
        self._changed = asyncio.Event()

    async def __aenter__(self) -> "NotesSubscription":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Follow the session; opens the stream now if someone is signed in."""
        if self._client is None:
            # the stream stays idle between pushes, so no read timeout
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, read=None))
        self._session_unsubscribe = self.session.on_change(self._on_session_change)
        if self.session.current is not None:
            self._open(self.session.current)

    async def close(self) -> None:
        """Stop following the session and close the stream."""
        if self._session_unsubscribe is not None:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        task = self._cancel_stream()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def wait_for(self, predicate: Callable[[List[NoteRecord]], bool], timeout: float = 5.0) -> List[NoteRecord]:
        """Wait until the local note list satisfies ``predicate``."""

        async def _wait() -> List[NoteRecord]:
            while not predicate(self.notes):
                await self._changed.wait()
            return self.notes

        return await asyncio.wait_for(_wait(), timeout)

    def _on_session_change(self, user: Optional[Any]) -> None:
        self._cancel_stream()
        if user is None:
            logger.info("Session ended; notes stream closed")
            self._replace([])
            self.loading = False
        else:
            self._open(user)

    def _open(self, user: Any) -> None:
        self.loading = True
        self.last_error = None
        self._task = asyncio.get_running_loop().create_task(self._run(user_id_of(user)))

    def _cancel_stream(self) -> Optional[asyncio.Task]:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        self.connected = False
        return task

    async def _run(self, user_id: Optional[str]) -> None:
        params = {"userId": user_id} if self.scope_to_user and user_id else None
        while True:
            try:
                await self._consume(params)
                logger.info("Notes stream ended by server; reconnecting")
            except httpx.HTTPError as e:
                self.last_error = e
                logger.warning(
                    "Notes stream failed; reconnecting",
                    extra={"error": str(e), "retry_in_s": self.reconnect_delay},
                )
            self.connected = False
            self.loading = False
            await asyncio.sleep(self.reconnect_delay)

    async def _consume(self, params: Optional[dict]) -> None:
        parser = EventStreamParser()
        async with self._client.stream(
            "GET",
            f"{self.base_url}/notes",
            params=params,
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
        ) as response:
            response.raise_for_status()
            self.connected = True
            async for line in response.aiter_lines():
                event = parser.feed_line(line)
                if parser.retry_ms is not None:
                    self.reconnect_delay = parser.retry_ms / 1000
                if event is not None and event.event == "message":
                    self._handle_message(event.data)

    def _handle_message(self, data: str) -> None:
        try:
            records = parse_snapshot(data)
        except ValidationError as e:
            logger.warning("Ignoring malformed notes snapshot", extra={"error": str(e)})
            return
        self.snapshots_received += 1
        self.loading = False
        self._replace(records)

    def _replace(self, records: List[NoteRecord]) -> None:
        self.notes = records
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()
        if self.on_change is not None:
            try:
                self.on_change(records)
            except Exception:
                logger.exception("Notes listener failed")
