"""
In-memory bearer session store.

Tokens map to an immutable principal snapshot and the monotonic time of the
last access. Expiry slides: every successful lookup moves the deadline. The
store lives in a single process and is lost on restart.
"""
import asyncio
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.core import config
from app.utils import get_logger


log = get_logger(__name__)

P = TypeVar("P")

# 32 random bytes, well above the 128-bit floor
TOKEN_BYTES = 32


@dataclass
class _Entry(Generic[P]):
    principal: P
    last_access: float


@dataclass(frozen=True)
class SessionStats:
    hits: int
    misses: int
    evictions: int
    issued: int
    invalidations: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class SessionStore(Generic[P]):
    """
    Thread-safe token to principal map with sliding expiry.

    Every public operation takes the internal lock, so callers never need
    their own. Stale entries are evicted lazily by ``lookup`` and in bulk by
    ``sweep``; ``lookup`` never returns one.
    """

    def __init__(
        self,
        expiry_seconds: float = config.SESSION_EXPIRY_MINUTES * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if expiry_seconds <= 0:
            raise ValueError("expiry_seconds must be positive")
        self.expiry_seconds = expiry_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry[P]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._issued = 0
        self._invalidations = 0

    def _expired(self, entry: _Entry[P], now: float) -> bool:
        return now - entry.last_access > self.expiry_seconds

    def issue(self, principal: P) -> str:
        """Store ``principal`` under a fresh unguessable token and return it."""
        with self._lock:
            token = secrets.token_urlsafe(TOKEN_BYTES)
            while token in self._entries:
                token = secrets.token_urlsafe(TOKEN_BYTES)
            self._entries[token] = _Entry(principal, self._clock())
            self._issued += 1
            live = len(self._entries)
        log.debug("Issued session, %d live", live)
        return token

    def lookup(self, token: str) -> P | None:
        """Return the principal for ``token`` and refresh its last access, or None."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                self._misses += 1
                return None
            now = self._clock()
            if self._expired(entry, now):
                del self._entries[token]
                self._evictions += 1
                self._misses += 1
                return None
            entry.last_access = now
            self._hits += 1
            return entry.principal

    def invalidate(self, token: str) -> None:
        """Drop ``token``; unknown tokens are ignored."""
        with self._lock:
            if self._entries.pop(token, None) is not None:
                self._invalidations += 1

    def sweep(self) -> int:
        """
        Evict every expired entry and return how many were removed.

        The lock is held for one eviction at a time, never for the whole pass.
        """
        with self._lock:
            tokens = list(self._entries)
        removed = 0
        for token in tokens:
            with self._lock:
                entry = self._entries.get(token)
                if entry is not None and self._expired(entry, self._clock()):
                    del self._entries[token]
                    self._evictions += 1
                    removed += 1
        if removed:
            log.debug("Swept %d expired sessions", removed)
        return removed

    def revoke(self, predicate: Callable[[P], bool]) -> int:
        """
        Invalidate every session whose principal matches ``predicate``.

        Like ``sweep``, the lock is held per entry.
        """
        with self._lock:
            tokens = list(self._entries)
        removed = 0
        for token in tokens:
            with self._lock:
                entry = self._entries.get(token)
                if entry is not None and predicate(entry.principal):
                    del self._entries[token]
                    self._invalidations += 1
                    removed += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> SessionStats:
        with self._lock:
            return SessionStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                issued=self._issued,
                invalidations=self._invalidations,
                size=len(self._entries),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


async def sweep_periodically(store: SessionStore, interval_seconds: float) -> None:
    """Run ``store.sweep`` forever; cancel the task to stop it."""
    while True:
        await asyncio.sleep(interval_seconds)
        store.sweep()


sessions: SessionStore = SessionStore()
