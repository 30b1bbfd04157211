"""Client-side view of the identity provider: the current user, or None."""

from typing import Any, Callable, List, Optional

from ..core.logging import get_logger

logger = get_logger("client.session")

SessionListener = Callable[[Optional[Any]], None]


class SessionState:
    """Current signed-in user plus change notification.

    The identity provider owns sign-in; this object only mirrors its state so
    the subscription manager can open and close streams with the session.
    """

    def __init__(self, user: Optional[Any] = None):
        self._user = user
        self._listeners: List[SessionListener] = []

    @property
    def current(self) -> Optional[Any]:
        return self._user

    def set(self, user: Optional[Any]) -> None:
        """Replace the current user and notify listeners if it changed."""
        if user is self._user:
            return
        self._user = user
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception:
                logger.exception("Session listener failed")

    def clear(self) -> None:
        self.set(None)

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def user_id_of(user: Optional[Any]) -> Optional[str]:
    """Best-effort opaque id of a session user (``uid``/``id`` attr or key, or a plain string)."""
    if user is None:
        return None
    if isinstance(user, str):
        return user
    if isinstance(user, dict):
        value = user.get("uid") or user.get("id")
    else:
        value = getattr(user, "uid", None) or getattr(user, "id", None)
    return str(value) if value is not None else None
