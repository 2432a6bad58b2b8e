# FILE: portrait_backend/services/rate_limiter.py
"""
Per-client admission control over a rolling window

State per identity: no entry -> first request creates {count=1, reset=now+window};
later requests in the window increment; at the ceiling requests are denied
until reset, after which the entry is replaced with a fresh window. Expired
entries are swept lazily on every check.
"""
import logging
import math
import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from portrait_backend.config import get_settings
from portrait_backend.constants import RATE_LIMIT_PROFILES

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateLimitEntry:
    identity: str
    count: int
    reset_time: float  # epoch seconds
    last_request: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float  # epoch seconds
    retry_after: Optional[int] = None

    @property
    def reset_time_ms(self) -> int:
        return int(self.reset_time * 1000)


class RateLimitStore:
    """Storage interface for rate limit entries"""

    def get(self, identity: str) -> Optional[RateLimitEntry]:
        raise NotImplementedError

    def put(self, entry: RateLimitEntry) -> None:
        raise NotImplementedError

    def delete(self, identity: str) -> bool:
        raise NotImplementedError

    def sweep(self, now: float) -> int:
        """Remove entries whose window has expired; return how many"""
        raise NotImplementedError

    def items(self) -> List[RateLimitEntry]:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    """Single-process store (dict guarded by a lock)"""

    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def get(self, identity: str) -> Optional[RateLimitEntry]:
        with self._lock:
            return self._entries.get(identity)

    def put(self, entry: RateLimitEntry) -> None:
        with self._lock:
            self._entries[entry.identity] = entry

    def delete(self, identity: str) -> bool:
        with self._lock:
            return self._entries.pop(identity, None) is not None

    def sweep(self, now: float) -> int:
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.reset_time]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def items(self) -> List[RateLimitEntry]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RateLimiter:
    """Admission control: max_attempts per window_seconds per identity"""

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.store = store or InMemoryRateLimitStore()
        self.clock = clock
        # Serializes check-then-increment across concurrent requests
        self._lock = threading.Lock()

    def check_rate_limit(self, identity: str) -> RateLimitResult:
        """Admit or deny one request from identity, updating its counter"""
        with self._lock:
            now = self.clock()
            self.store.sweep(now)
            entry = self.store.get(identity)

            if entry is None or now > entry.reset_time:
                entry = RateLimitEntry(
                    identity=identity,
                    count=0,
                    reset_time=now + self.window_seconds,
                    last_request=now,
                )

            if entry.count >= self.max_attempts:
                retry_after = max(1, math.ceil(entry.reset_time - now))
                logger.warning(f"Rate limit exceeded for {identity} (retry after {retry_after}s)")
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_time=entry.reset_time,
                    retry_after=retry_after,
                )

            entry.count += 1
            entry.last_request = now
            self.store.put(entry)

            return RateLimitResult(
                allowed=True,
                remaining=self.max_attempts - entry.count,
                reset_time=entry.reset_time,
            )

    def get_status(self, identity: str) -> Optional[RateLimitResult]:
        """Read-only view of an identity's standing"""
        entry = self.store.get(identity)
        if entry is None:
            return None

        now = self.clock()
        if now > entry.reset_time:
            return RateLimitResult(
                allowed=True,
                remaining=self.max_attempts,
                reset_time=now + self.window_seconds,
            )

        exhausted = entry.count >= self.max_attempts
        return RateLimitResult(
            allowed=not exhausted,
            remaining=max(0, self.max_attempts - entry.count),
            reset_time=entry.reset_time,
            retry_after=max(1, math.ceil(entry.reset_time - now)) if exhausted else None,
        )

    def reset(self, identity: str) -> bool:
        return self.store.delete(identity)

    def clear_all(self) -> None:
        self.store.clear()

    def entries(self) -> List[RateLimitEntry]:
        return self.store.items()

    def debug_info(self, identity: str) -> Dict[str, object]:
        entry = self.store.get(identity)
        return {
            "entry": asdict(entry) if entry else None,
            "maxAttempts": self.max_attempts,
            "windowSeconds": self.window_seconds,
        }


def get_client_identity(headers: Mapping[str, str]) -> str:
    """Best available network-origin header, else the shared 'unknown' bucket"""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    for header in ("x-real-ip", "x-remote-addr"):
        value = headers.get(header)
        if value and value.strip():
            return value.strip()

    return UNKNOWN_CLIENT


def profile_limits(profile: str) -> Tuple[int, int]:
    return RATE_LIMIT_PROFILES[profile]


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the process-wide rate limiter"""
    global _rate_limiter
    if _rate_limiter is None:
        profile = get_settings().rate_limit_profile
        max_attempts, window_seconds = profile_limits(profile)
        _rate_limiter = RateLimiter(max_attempts=max_attempts, window_seconds=window_seconds)
        logger.info(f"Rate limiter: profile={profile} max_attempts={max_attempts} window={window_seconds}s")
    return _rate_limiter


def set_rate_limiter(limiter: Optional[RateLimiter]) -> None:
    global _rate_limiter
    _rate_limiter = limiter
