"""
Client-local key-value state.

Holds the best-effort, non-authoritative caches a client keeps between
requests. Documented keys:

    guest_query_count         int, guest queries; reset by clear() or when its TTL lapses
    chat_history_{owner}      list of transcript messages; owner is a user id or "guest"

Values may carry a TTL; expired keys read as missing.
"""
from typing import Any, Callable, Dict, Optional, Tuple
import threading
import time

GUEST_QUERY_COUNT_KEY = "guest_query_count"
GUEST_OWNER = "guest"


def chat_history_key(user_id: Optional[str]) -> str:
    return f"chat_history_{user_id or GUEST_OWNER}"


class LocalStore:
    """Interface for client-local state."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryLocalStore(LocalStore):
    """Dictionary-backed store with optional per-key expiry.

    Expired keys are dropped when read, and swept every purge_every writes.
    """

    def __init__(self, clock: Callable[[], float] = time.time, purge_every: int = 256):
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._clock = clock
        self._lock = threading.Lock()
        self.purge_every = purge_every
        self._writes = 0

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        with self._lock:
            self._data[key] = (value, expires_at)
            self._writes += 1
            if self._writes >= self.purge_every:
                self._writes = 0
                self._purge(now)

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._data.items() if expires_at is not None and now >= expires_at]
        for key in expired:
            del self._data[key]

    def purge_expired(self) -> int:
        """Drop every expired key now; returns the number of keys left."""
        with self._lock:
            self._purge(self._clock())
            return len(self._data)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class NamespacedStore(LocalStore):
    """
    Prefixes every key so several clients can share one backing store.

    owner is the user id whose transcript lives in this namespace (None for a
    guest). default_ttl applies to writes that do not pass their own TTL, so
    abandoned namespaces expire from the backing store.
    """

    def __init__(
        self,
        backing: LocalStore,
        namespace: str,
        owner: Optional[str] = None,
        default_ttl: Optional[float] = None,
    ):
        self.backing = backing
        self.namespace = namespace
        self.owner = owner
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str, default: Any = None) -> Any:
        return self.backing.get(self._key(key), default)

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl
        self.backing.set(self._key(key), value, ttl_seconds)

    def delete(self, key: str) -> None:
        self.backing.delete(self._key(key))

    def clear(self) -> None:
        self.backing.delete(self._key(GUEST_QUERY_COUNT_KEY))
        self.backing.delete(self._key(chat_history_key(self.owner)))
