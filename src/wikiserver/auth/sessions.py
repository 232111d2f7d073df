"""Server-side session store for the browser UI.

Learn: the session cookie (Starlette SessionMiddleware, signed with
itsdangerous) only carries an opaque session id. The id maps to a username
here, in process memory. Nothing else is kept: claims are re-resolved from
the credential store on each request.

Sessions expire after WIKI_SESSION_TIMEOUT_MINUTES without a request.
All methods are synchronous and never await, so the event loop can't
interleave two of them.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from wikiserver.config import settings


@dataclass
class _SessionEntry:
    username: str
    last_seen: float


class SessionStore:
    def __init__(
        self,
        timeout_minutes: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout_minutes * 60
        self._clock = clock
        self._entries: dict[str, _SessionEntry] = {}

    def create(self, username: str) -> str:
        """Start a new session for `username` and return its id."""
        self.purge_expired()
        session_id = secrets.token_urlsafe(32)
        self._entries[session_id] = _SessionEntry(username, self._clock())
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[str]:
        """Username bound to a live session, refreshing its idle timer."""
        if not session_id:
            return None
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        now = self._clock()
        if now - entry.last_seen > self.timeout:
            del self._entries[session_id]
            return None
        entry.last_seen = now
        return entry.username

    def destroy(self, session_id: Optional[str]) -> None:
        if session_id:
            self._entries.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            sid for sid, entry in self._entries.items()
            if now - entry.last_seen > self.timeout
        ]
        for sid in expired:
            del self._entries[sid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


_store: Optional[SessionStore] = None


def init_session_store(timeout_minutes: Optional[int] = None) -> SessionStore:
    global _store
    _store = SessionStore(
        timeout_minutes if timeout_minutes is not None else settings.session_timeout_minutes
    )
    return _store


def get_session_store() -> SessionStore:
    """FastAPI dependency — the process-wide session store."""
    if _store is None:
        raise RuntimeError("Session store not initialized. Call init_session_store() first.")
    return _store
