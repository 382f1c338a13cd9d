"""
Rate Limiting for PayFlow API.

Two limiters share one injectable record store:

- FixedWindowRateLimiter: per-client request cap (100 per 15 min general,
  10 per 15 min on auth routes).
- LoginAttemptLimiter: per-email lockout after repeated failed logins.

Both expire their state lazily on access; nothing sweeps in the background.
State lives in the store handed to the constructor, so a multi-instance
deployment swaps MemoryLimiterStore for a shared one without touching callers.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Request

from payflow.core.errors import RateLimitError

logger = logging.getLogger("payflow.rate_limit")

Clock = Callable[[], float]


# =============================================================================
# Client Identification
# =============================================================================

def client_ip(request: Request) -> str:
    """
    Best-effort client IP, respecting proxy headers.
    Unidentifiable clients share the "unknown" bucket.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


# =============================================================================
# Record Store
# =============================================================================

class MemoryLimiterStore:
    """
    Process-local keyed record store.

    Records expire lazily when their key comes back. Keys come from client
    supplied headers, so once the store holds more than ``max_entries`` the
    limiters sweep their own expired records on write.
    """

    def __init__(self, max_entries: int = 10_000):
        self._records: dict[str, Any] = {}
        self.max_entries = max_entries

    def get(self, key: str) -> Any | None:
        return self._records.get(key)

    def set(self, key: str, record: Any) -> None:
        self._records[key] = record

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    @property
    def over_capacity(self) -> bool:
        return len(self._records) > self.max_entries

    def sweep(self, is_expired: Callable[[str, Any], bool]) -> int:
        """Drop every record for which ``is_expired(key, record)`` holds."""
        stale = [k for k, r in self._records.items() if is_expired(k, r)]
        for key in stale:
            del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class WindowRecord:
    count: int
    window_start: float


@dataclass
class AttemptRecord:
    count: int
    last_attempt: float


# =============================================================================
# Request Rate Limiter
# =============================================================================

class FixedWindowRateLimiter:
    """
    Fixed-window request counter.

    The window starts with the first request for a key and restarts with the
    first request after it has elapsed.
    """

    def __init__(
        self,
        store: MemoryLimiterStore,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        clock: Clock = time.monotonic,
        name: str = "api",
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.name = name

    def _key(self, key: str) -> str:
        return f"{self.name}:{key}"

    def is_blocked(self, key: str) -> bool:
        """Count this request and report whether the key is over its limit."""
        now = self.clock()
        store_key = self._key(key)
        record = self.store.get(store_key)

        if record is None or now - record.window_start >= self.window_seconds:
            self.store.set(store_key, WindowRecord(count=1, window_start=now))
            if self.store.over_capacity:
                self._sweep(now)
            return False

        record.count += 1
        self.store.set(store_key, record)
        return record.count > self.max_requests

    def _sweep(self, now: float) -> None:
        prefix = self._key("")
        removed = self.store.sweep(
            lambda k, r: k.startswith(prefix) and now - r.window_start >= self.window_seconds
        )
        logger.debug("Swept %d expired %s windows", removed, self.name)

    def remaining_time(self, key: str) -> float:
        """Seconds until the key's window resets (0 if none is open)."""
        record = self.store.get(self._key(key))
        if record is None:
            return 0.0
        elapsed = self.clock() - record.window_start
        return max(0.0, self.window_seconds - elapsed)


# =============================================================================
# Login Attempt Limiter
# =============================================================================

class LoginAttemptLimiter:
    """
    Per-identifier brute-force lockout.

    Clear -> (failed attempt)* -> Locked -> (lockout elapses) -> Clear
    """

    def __init__(
        self,
        store: MemoryLimiterStore,
        max_attempts: int = 5,
        lockout_seconds: float = 15 * 60,
        clock: Clock = time.monotonic,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.clock = clock

    @staticmethod
    def _key(identifier: str) -> str:
        return f"login:{identifier.strip().lower()}"

    def is_blocked(self, identifier: str) -> bool:
        key = self._key(identifier)
        record = self.store.get(key)
        if record is None or record.count < self.max_attempts:
            return False

        if self.clock() - record.last_attempt < self.lockout_seconds:
            return True

        # Lockout served
        self.store.delete(key)
        return False

    def record_attempt(self, identifier: str, success: bool) -> None:
        key = self._key(identifier)
        if success:
            self.store.delete(key)
            return

        now = self.clock()
        record = self.store.get(key)
        count = record.count + 1 if record else 1
        self.store.set(key, AttemptRecord(count=count, last_attempt=now))

        if self.store.over_capacity:
            # Failures older than a lockout no longer matter
            self.store.sweep(
                lambda k, r: k.startswith("login:") and now - r.last_attempt >= self.lockout_seconds
            )

    def remaining_lock_time(self, identifier: str) -> float:
        """Seconds left on the lockout, 0 when not locked."""
        record = self.store.get(self._key(identifier))
        if record is None or record.count < self.max_attempts:
            return 0.0
        elapsed = self.clock() - record.last_attempt
        return max(0.0, self.lockout_seconds - elapsed)


# =============================================================================
# FastAPI Dependency
# =============================================================================

def rate_limit_dependency(limiter_attr: str = "api_rate_limiter"):
    """
    Create a dependency that enforces the limiter stored on ``app.state``.

    Usage:
        router = APIRouter(dependencies=[Depends(rate_limit_dependency("auth_rate_limiter"))])
    """
    async def check_rate_limit(request: Request) -> None:
        limiter: Optional[FixedWindowRateLimiter] = getattr(request.app.state, limiter_attr, None)
        if limiter is None:
            return

        key = client_ip(request)
        if limiter.is_blocked(key):
            retry_after = limiter.remaining_time(key)
            logger.warning(
                "Rate limit exceeded: %s on %s %s",
                key,
                request.method,
                request.url.path,
                extra={"client_ip": key, "limiter": limiter.name, "retry_after": retry_after},
            )
            raise RateLimitError(retry_after)

    return check_rate_limit
