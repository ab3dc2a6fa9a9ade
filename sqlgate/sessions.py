"""Per-session storage of connection parameters.

Connection metadata and the password live under separate keys so that
reading the metadata (for a status display, say) never touches the secret.
The backing key-value store is injected; :class:`MemoryKeyValueStore` is the
in-process default and optionally expires entries after a fixed lifetime.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from pydantic import ValidationError

from .errors import SqlGateError
from .models import ConnectionParameters

LOG = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 24 * 60 * 60


class NotConnected(SqlGateError):
    """Raised when a session holds no complete connection record."""

    def __init__(self, session_id: str) -> None:
        super().__init__("No active database connection. Please connect to a database first.")
        self.session_id = session_id


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal storage capability the credential store depends on."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Thread-safe dict with optional time-boxed expiry."""

    def __init__(self, *, ttl: float | None = DEFAULT_SESSION_TTL, clock: Callable[[], float] | None = None) -> None:
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        expires_at = self._clock() + self._ttl if self._ttl is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SessionCredentialStore:
    """Save, load and clear connection parameters keyed by session id."""

    METADATA_FIELD = "db_connection"
    PASSWORD_FIELD = "db_password"

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self._store = store if store is not None else MemoryKeyValueStore()

    def save(self, session_id: str, params: ConnectionParameters) -> None:
        self._store.set(self._key(session_id, self.METADATA_FIELD), params.metadata())
        self._store.set(self._key(session_id, self.PASSWORD_FIELD), params.password)
        LOG.info("Stored connection for session %s: %s", session_id, params.describe())

    def load(self, session_id: str) -> ConnectionParameters:
        """Rebuild full parameters; raise :class:`NotConnected` unless both parts exist."""

        metadata = self._store.get(self._key(session_id, self.METADATA_FIELD))
        password = self._store.get(self._key(session_id, self.PASSWORD_FIELD))
        if not isinstance(metadata, Mapping) or not isinstance(password, str):
            raise NotConnected(session_id)
        try:
            return ConnectionParameters.from_parts(metadata, password)
        except ValidationError as exc:
            LOG.warning("Discarding malformed session record %s: %s", session_id, exc)
            raise NotConnected(session_id) from exc

    def metadata(self, session_id: str) -> dict[str, Any] | None:
        """Connection metadata without the password, if the session is connected."""

        metadata = self._store.get(self._key(session_id, self.METADATA_FIELD))
        password = self._store.get(self._key(session_id, self.PASSWORD_FIELD))
        if not isinstance(metadata, Mapping) or not isinstance(password, str):
            return None
        return dict(metadata)

    def is_connected(self, session_id: str) -> bool:
        return self.metadata(session_id) is not None

    def clear(self, session_id: str) -> None:
        self._store.delete(self._key(session_id, self.METADATA_FIELD))
        self._store.delete(self._key(session_id, self.PASSWORD_FIELD))

    @staticmethod
    def _key(session_id: str, field: str) -> str:
        return f"{session_id}:{field}"


__all__ = [
    "DEFAULT_SESSION_TTL",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "NotConnected",
    "SessionCredentialStore",
]
