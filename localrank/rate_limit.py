"""Fixed-window request throttling for the calling HTTP layer.

The store is injected so a deployment can swap the in-memory map for a shared
backend; nothing here is a module-level singleton.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Protocol

from . import config

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class WindowRecord:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[WindowRecord]:
        ...

    def put(self, key: str, record: WindowRecord) -> None:
        ...


class InMemoryRateLimitStore:
    """Keyed window records that expire once their window has passed."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._records: Dict[str, WindowRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[WindowRecord]:
        with self._lock:
            record = self._records.get(key)
            if record is not None and self.clock() > record.reset_at:
                del self._records[key]
                return None
            return record

    def put(self, key: str, record: WindowRecord) -> None:
        with self._lock:
            self._records[key] = record

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [k for k, r in self._records.items() if now > r.reset_at]
            for key in expired:
                del self._records[key]
        if expired:
            logger.debug("Rate limit store purged %s expired windows", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        window_seconds: Optional[float] = None,
        max_requests: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.window_seconds = float(
            window_seconds if window_seconds is not None else config.RATE_LIMIT_WINDOW_SECONDS
        )
        self.max_requests = int(
            max_requests if max_requests is not None else config.RATE_LIMIT_MAX_REQUESTS
        )
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        self.clock = clock
        self._lock = threading.Lock()

    def check(self, identifier: str) -> RateLimitDecision:
        with self._lock:
            now = self.clock()
            record = self.store.get(identifier)
            if record is None or now > record.reset_at:
                reset_at = now + self.window_seconds
                self.store.put(identifier, WindowRecord(count=1, reset_at=reset_at))
                return RateLimitDecision(True, self.max_requests - 1, reset_at)

            if record.count >= self.max_requests:
                logger.warning("Rate limit exceeded for %s", identifier)
                return RateLimitDecision(False, 0, record.reset_at)

            updated = WindowRecord(count=record.count + 1, reset_at=record.reset_at)
            self.store.put(identifier, updated)
            return RateLimitDecision(True, self.max_requests - updated.count, record.reset_at)


def client_identifier(headers: Mapping[str, str]) -> str:
    forwarded = None
    for key, value in headers.items():
        if key.lower() == "x-forwarded-for":
            forwarded = value
            break
    if not forwarded:
        return UNKNOWN_CLIENT
    first = forwarded.split(",")[0].strip()
    return first or UNKNOWN_CLIENT
