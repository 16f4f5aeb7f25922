"""In-process TTL cache for generated results.

Entries expire a fixed time after they are written. Expired entries are
dropped lazily when read and periodically by an optional sweeper thread, so
readers never see a stale value whether or not the sweeper runs.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    def __init__(
        self,
        ttl_seconds: float = 3600,
        sweep_interval_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl_seconds
        self.sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def _live_entry(self, key: str, now: float) -> Optional[CacheEntry]:
        # caller holds the lock
        entry = self._store.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            del self._store[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key``, or ``default`` if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._live_entry(key, now)
        if entry is None:
            return default
        return entry.value

    def set(self, key: str, value: Any) -> None:
        expires_at = self._clock() + self.ttl
        with self._lock:
            self._store[key] = CacheEntry(value=value, expires_at=expires_at)

    def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            return self._live_entry(key, now) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear_expired(self) -> int:
        """Drop every entry that has expired. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._store.items() if now >= entry.expires_at]
            for key in expired:
                del self._store[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Raw number of stored entries.

        Includes expired entries that have not been swept or read yet; call
        ``clear_expired`` first when a live count is needed.
        """
        with self._lock:
            return len(self._store)

    def __len__(self) -> int:
        return self.size()

    # Background reclamation

    def _sweep_loop(self, stop_event: threading.Event):
        logger.info(f"Cache sweeper started (interval={self.sweep_interval}s)")
        while not stop_event.wait(self.sweep_interval):
            try:
                removed = self.clear_expired()
                if removed:
                    logger.info(f"Cache sweep removed {removed} expired entries")
            except Exception as e:
                logger.error(f"Cache sweep error: {e}")
        logger.info("Cache sweeper stopped")

    def start_sweeper(self) -> None:
        if self.sweeper_running:
            return
        # A thread still finishing after a timed-out stop keeps its own, already set, event
        self._stop_event = threading.Event()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, args=(self._stop_event,), name="result-cache-sweeper", daemon=True
        )
        self._sweeper.start()

    def stop_sweeper(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            if not self._sweeper.is_alive():
                self._sweeper = None

    @property
    def sweeper_running(self) -> bool:
        return (
            self._sweeper is not None
            and self._sweeper.is_alive()
            and not self._stop_event.is_set()
        )
