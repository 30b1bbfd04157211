"""Tests for the Redis pub/sub wrapper against a stub connection."""

from unittest.mock import AsyncMock, Mock

import pytest

from src.cloudnotes.config import Settings
from src.cloudnotes.core.redis_client import RedisClient


class DummyPubSub:
    def __init__(self, messages):
        self.messages = messages
        self.subscribed = []
        self.unsubscribed = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, *channels):
        self.unsubscribed.append(channels)

    async def listen(self):
        for message in self.messages:
            yield message

    async def aclose(self):
        self.closed = True


@pytest.fixture
def connection():
    conn = Mock()
    conn.ping = AsyncMock(return_value=True)
    conn.publish = AsyncMock(return_value=2)
    conn.aclose = AsyncMock()
    return conn


@pytest.mark.asyncio
async def test_connect_pings_and_disconnect_closes(connection):
    client = RedisClient(Settings(_env_file=None), connection=connection)

    await client.connect()
    assert client.redis is connection
    connection.ping.assert_awaited_once()

    await client.disconnect()
    connection.aclose.assert_awaited_once()
    assert client.redis is None
    assert await client.ping() is False


@pytest.mark.asyncio
async def test_connect_failure_propagates(connection):
    connection.ping = AsyncMock(side_effect=ConnectionError("refused"))
    client = RedisClient(Settings(_env_file=None), connection=connection)

    with pytest.raises(ConnectionError):
        await client.connect()


@pytest.mark.asyncio
async def test_publish(connection):
    client = RedisClient(Settings(_env_file=None), connection=connection)

    assert await client.publish("chan", "payload") == 2
    connection.publish.assert_awaited_once_with("chan", "payload")


@pytest.mark.asyncio
async def test_publish_requires_connection():
    client = RedisClient(Settings(_env_file=None))
    with pytest.raises(RuntimeError):
        await client.publish("chan", "payload")


@pytest.mark.asyncio
async def test_listen_yields_only_messages(connection):
    pubsub = DummyPubSub(
        [
            {"type": "subscribe", "data": 1},
            {"type": "message", "data": "first"},
            {"type": "message", "data": "second"},
        ]
    )
    connection.pubsub = Mock(return_value=pubsub)
    client = RedisClient(Settings(_env_file=None), connection=connection)

    subscription = await client.subscribe("chan")
    assert pubsub.subscribed == ["chan"]

    received = [payload async for payload in client.listen(subscription)]

    assert received == ["first", "second"]
    assert pubsub.unsubscribed == [()]
    assert pubsub.closed


@pytest.mark.asyncio
async def test_subscribe_requires_connection():
    client = RedisClient(Settings(_env_file=None))
    with pytest.raises(RuntimeError):
        await client.subscribe("chan")


@pytest.mark.asyncio
async def test_listen_cleans_up_when_connection_fails(connection):
    class BrokenPubSub(DummyPubSub):
        async def listen(self):
            yield {"type": "message", "data": "first"}
            raise ConnectionError("connection lost")

    pubsub = BrokenPubSub([])
    connection.pubsub = Mock(return_value=pubsub)
    client = RedisClient(Settings(_env_file=None), connection=connection)
    received = []

    with pytest.raises(ConnectionError):
        async for payload in client.listen(await client.subscribe("chan")):
            received.append(payload)

    assert received == ["first"]
    assert pubsub.closed
