"""HTTP tests for the notes endpoints."""

import json
import uuid

import pytest
from fastapi.testclient import TestClient

from src.cloudnotes.dependencies import get_store
from src.cloudnotes.main import create_app
from tests.fakes import FakeStore, at, make_doc


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def create_calls(app, client, monkeypatch):
    """Spy on store.create to prove rejected requests never reach the store."""
    calls = []
    store = app.state.store
    original = store.create

    async def spy(data):
        calls.append(data)
        return await original(data)

    monkeypatch.setattr(store, "create", spy)
    return calls


class TestCreateNote:
    def test_create_returns_201_with_record(self, client, create_calls):
        response = client.post("/notes", json={"text": "buy milk"})

        assert response.status_code == 201
        body = response.json()
        assert body["text"] == "buy milk"
        assert uuid.UUID(body["id"])
        assert isinstance(body["createdAt"], int)
        assert body["date"]
        assert len(create_calls) == 1

    def test_create_with_user_id(self, client, create_calls):
        response = client.post("/notes", json={"text": "t", "userId": "u-1"})

        assert response.status_code == 201
        assert create_calls == [{"text": "t", "user_id": "u-1"}]

    @pytest.mark.parametrize(
        "payload",
        [{"text": ""}, {}, {"text": "   "}, {"text": 42}, {"title": "wrong field"}],
    )
    def test_invalid_body_is_rejected_without_mutation(self, client, create_calls, payload):
        response = client.post("/notes", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"]
        assert create_calls == []

    def test_malformed_json_is_rejected(self, client, create_calls):
        response = client.post("/notes", content="{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert create_calls == []


class TestUpdateNote:
    def test_update_existing_note(self, client):
        created = client.post("/notes", json={"text": "old"}).json()

        response = client.put(f"/notes/{created['id']}", json={"text": "new"})

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == created["id"]
        assert body["text"] == "new"
        assert body["createdAt"] == created["createdAt"]

    def test_update_with_empty_text_is_400(self, client):
        created = client.post("/notes", json={"text": "old"}).json()

        response = client.put(f"/notes/{created['id']}", json={"text": ""})

        assert response.status_code == 400
        assert client.get(f"/notes/{created['id']}").json()["text"] == "old"

    def test_update_missing_note_is_store_error(self, client):
        response = client.put(f"/notes/{uuid.uuid4()}", json={"text": "x"})

        assert response.status_code == 500
        assert response.json()["error"] == "NoteNotFoundError"


class TestDeleteNote:
    def test_delete_is_idempotent(self, client):
        created = client.post("/notes", json={"text": "bye"}).json()

        first = client.delete(f"/notes/{created['id']}")
        second = client.delete(f"/notes/{created['id']}")

        assert first.status_code == 204
        assert second.status_code == 204
        assert first.content == b""
        assert client.get(f"/notes/{created['id']}").status_code == 404

    def test_delete_unknown_id(self, client):
        assert client.delete("/notes/does-not-exist").status_code == 204


class TestGetNote:
    def test_get_existing(self, client):
        created = client.post("/notes", json={"text": "hello"}).json()

        response = client.get(f"/notes/{created['id']}")

        assert response.status_code == 200
        assert response.json() == created

    def test_get_missing(self, client):
        response = client.get(f"/notes/{uuid.uuid4()}")
        assert response.status_code == 404


class TestNotesStream:
    """The stream never ends on its own, so these drive it with a store that fails after one snapshot."""

    def _stream(self, app, store, **params):
        app.dependency_overrides[get_store] = lambda: store
        with TestClient(app) as c:
            response = c.get("/notes", params=params)
            open_channels = len(app.state.channels)
        return response, open_channels

    def test_stream_headers_and_snapshot(self, app):
        store = FakeStore(script=[[make_doc("a", "first", at(9)), make_doc("b", "second", at(10))], RuntimeError("down")])

        response, open_channels = self._stream(app, store)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.text.startswith("data: ")
        assert response.text.endswith("\n\n")
        records = json.loads(response.text[len("data: "):])
        assert [r["id"] for r in records] == ["b", "a"]
        assert set(records[0]) == {"id", "text", "date", "createdAt"}
        assert store.unsubscribe_calls == 1
        assert open_channels == 0

    def test_stream_scoped_to_user(self, app):
        store = FakeStore(script=[[], RuntimeError("down")])

        response, _ = self._stream(app, store, userId="u-1")

        assert response.text == "data: []\n\n"
        assert store.subscriptions[0].user_id == "u-1"


def test_health_details(client):
    response = client.get("/health/details")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["connected"] is True


def test_health_change_feed(client):
    body = client.get("/health/change-feed").json()

    assert body["backend"] == "memory"
    assert body["push_channels"]["open"] == 0
