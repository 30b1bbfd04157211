"""
Client mutation dispatcher.

Sends create/update/delete requests and reports only whether they succeeded.
Local state is never touched here: the change reaches the UI through the next
snapshot on the notes stream, however long that takes.
"""

from typing import Callable, Optional

import httpx

from ..config import Settings, get_settings
from ..core.logging import get_logger

logger = get_logger("client.mutations")


class MutationError(Exception):
    """A mutation request failed or was rejected."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.status_code = status_code


ErrorListener = Callable[[MutationError], None]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


class MutationDispatcher:
    """Fire-and-forget note mutations against the Cloud Notes API."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        on_error: Optional[ErrorListener] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.on_error = on_error
        self._client = client or httpx.AsyncClient(timeout=settings.client_timeout_seconds)
        self._owns_client = client is None

    async def __aenter__(self) -> "MutationDispatcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def create(self, text: str, user_id: Optional[str] = None) -> bool:
        if not text or not text.strip():
            self._report(MutationError("create", "Note text cannot be empty"))
            return False
        body = {"text": text}
        if user_id is not None:
            body["userId"] = user_id
        return await self._send("create", "POST", "/notes", 201, json=body)

    async def update(self, note_id: str, text: str) -> bool:
        if not text or not text.strip():
            self._report(MutationError("update", "Note text cannot be empty"))
            return False
        return await self._send("update", "PUT", f"/notes/{note_id}", 200, json={"text": text})

    async def delete(self, note_id: str) -> bool:
        return await self._send("delete", "DELETE", f"/notes/{note_id}", 204)

    async def _send(self, operation: str, method: str, path: str, expected_status: int, json=None) -> bool:
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", json=json)
        except httpx.HTTPError as e:
            self._report(MutationError(operation, f"network error: {e}"))
            return False

        if response.status_code != expected_status:
            self._report(MutationError(operation, _error_message(response), response.status_code))
            return False

        logger.debug(f"{operation} accepted", extra={"path": path, "status_code": response.status_code})
        return True

    def _report(self, error: MutationError) -> None:
        logger.error(
            f"Note {error.operation} failed",
            extra={"status_code": error.status_code, "error": error.message},
        )
        if self.on_error is not None:
            self.on_error(error)
