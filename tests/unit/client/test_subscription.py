"""Tests for the client subscription manager over a mocked transport."""

import asyncio
import json

import httpx
import pytest

from src.cloudnotes.client.session import SessionState
from src.cloudnotes.client.subscription import EventStreamParser, NotesSubscription
from src.cloudnotes.config import Settings

NOTE_A = {"id": "a", "text": "buy milk", "date": "2025-01-01 09:00:00", "createdAt": 1735722000000}
NOTE_B = {"id": "b", "text": "call mom", "date": "2025-01-01 10:00:00", "createdAt": 1735725600000}


def sse(*snapshots, retry=None) -> bytes:
    frames = [f"retry: {retry}\n\n"] if retry is not None else []
    frames += [f"data: {s if isinstance(s, str) else json.dumps(s)}\n\n" for s in snapshots]
    return "".join(frames).encode()


class StreamServer:
    """Serves scripted event streams; each request takes the next response."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self._hold = asyncio.Event()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            # idle connection that only ends when the client goes away
            await self._hold.wait()
        item = self.responses.pop(0)
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=item)


@pytest.fixture
def settings():
    return Settings(_env_file=None, api_base_url="http://notes.test", client_reconnect_delay_seconds=0.01)


def make_subscription(server, session, settings, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    return NotesSubscription(session, client=client, settings=settings, **kwargs), client


class TestEventStreamParser:
    def test_data_lines_dispatch_on_blank_line(self):
        parser = EventStreamParser()
        assert parser.feed_line("data: [1,") is None
        assert parser.feed_line("data: 2]") is None
        event = parser.feed_line("")
        assert event.data == "[1,\n2]"
        assert event.event == "message"

    def test_comments_and_empty_events_are_ignored(self):
        parser = EventStreamParser()
        assert parser.feed_line(": keep-alive") is None
        assert parser.feed_line("") is None

    def test_event_id_and_retry_fields(self):
        parser = EventStreamParser()
        parser.feed_line("event: ping")
        parser.feed_line("id: 7")
        parser.feed_line("retry: 1500")
        parser.feed_line("data:x")
        event = parser.feed_line("")

        assert (event.event, event.id, event.data) == ("ping", "7", "x")
        assert parser.retry_ms == 1500

    def test_invalid_retry_is_ignored(self):
        parser = EventStreamParser()
        parser.feed_line("retry: soon")
        assert parser.retry_ms is None


class TestNotesSubscription:
    @pytest.mark.asyncio
    async def test_no_stream_without_user(self, settings):
        server = StreamServer(sse([NOTE_A]))
        sub, client = make_subscription(server, SessionState(), settings)

        await sub.start()
        await asyncio.sleep(0.02)

        assert not sub.active
        assert server.requests == []
        await sub.close()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_snapshots_replace_local_list(self, settings):
        server = StreamServer(sse([NOTE_A], [NOTE_B, NOTE_A]))
        changes = []
        sub, client = make_subscription(server, SessionState("u-1"), settings, on_change=changes.append)

        async with sub:
            notes = await sub.wait_for(lambda n: [r.id for r in n] == ["b", "a"])

            assert notes[0].created_at == NOTE_B["createdAt"]
            assert [[r.id for r in c] for c in changes][:2] == [["a"], ["b", "a"]]
            assert sub.loading is False
        assert str(server.requests[0].url) == "http://notes.test/notes"
        assert server.requests[0].headers["accept"] == "text/event-stream"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_sign_in_opens_and_sign_out_clears(self, settings):
        server = StreamServer(sse([NOTE_A]))
        session = SessionState()
        sub, client = make_subscription(server, session, settings)
        await sub.start()

        session.set({"uid": "u-1"})
        assert sub.loading is True
        await sub.wait_for(lambda n: len(n) == 1)

        session.clear()

        assert sub.notes == []
        assert not sub.active
        assert sub.connected is False
        await sub.close()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_malformed_snapshot_keeps_previous_state(self, settings):
        server = StreamServer(sse([NOTE_A], "not json", [{"id": "x"}]))
        sub, client = make_subscription(server, SessionState("u-1"), settings)

        async with sub:
            await sub.wait_for(lambda n: len(n) == 1)
            while len(server.requests) < 2:
                await asyncio.sleep(0.01)

            assert [r.id for r in sub.notes] == ["a"]
            assert sub.snapshots_received == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_reconnects_after_server_error(self, settings):
        server = StreamServer(httpx.Response(503), sse([NOTE_A]))
        sub, client = make_subscription(server, SessionState("u-1"), settings)

        async with sub:
            await sub.wait_for(lambda n: len(n) == 1)

            assert len(server.requests) >= 2
            assert isinstance(sub.last_error, httpx.HTTPStatusError)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_reconnects_after_network_error(self, settings):
        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, content=sse([NOTE_B]))

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        sub = NotesSubscription(SessionState("u-1"), client=client, settings=settings)

        async with sub:
            await sub.wait_for(lambda n: len(n) == 1)
            assert isinstance(sub.last_error, httpx.ConnectError)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_retry_overrides_reconnect_delay(self, settings):
        server = StreamServer(sse([], retry=20))
        sub, client = make_subscription(server, SessionState("u-1"), settings)

        async with sub:
            await sub.wait_for(lambda n: sub.snapshots_received == 1)
            assert sub.reconnect_delay == 0.02
        await client.aclose()

    @pytest.mark.asyncio
    async def test_scope_to_user_sends_user_id(self, settings):
        server = StreamServer(sse([]))
        sub, client = make_subscription(server, SessionState({"uid": "u-9"}), settings, scope_to_user=True)

        async with sub:
            await sub.wait_for(lambda n: sub.snapshots_received == 1)
        assert server.requests[0].url.params["userId"] == "u-9"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_stops_following_session(self, settings):
        server = StreamServer()
        session = SessionState("u-1")
        sub, client = make_subscription(server, session, settings)
        await sub.start()
        while not server.requests:
            await asyncio.sleep(0.01)

        await sub.close()
        session.set("u-2")
        await asyncio.sleep(0.02)

        assert not sub.active
        assert len(server.requests) == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_stream(self, settings):
        server = StreamServer(sse([NOTE_A]), sse([NOTE_B, NOTE_A]))
        calls = []

        def render(notes):
            calls.append(notes)
            if len(calls) == 1:
                raise RuntimeError("render failed")

        sub, client = make_subscription(server, SessionState("u-1"), settings, on_change=render)

        async with sub:
            notes = await sub.wait_for(lambda n: [r.id for r in n] == ["b", "a"])

            assert sub.active
            assert len(calls) >= 2
            assert [r.id for r in notes] == ["b", "a"]
        await client.aclose()
