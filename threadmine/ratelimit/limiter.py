"""
Windowed Rate Limiter

Self-imposed request budget per endpoint, kept below the platform's
published limit. The limiter is a thin layer over a RateLimitStore so the
window survives restarts when the store is persistent.

Check-then-record is not atomic: the limiter assumes a single writer
process per store.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from threadmine.models.ratelimit import RateLimitKey, RateLimitState

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 20
DEFAULT_SAFETY_LIMIT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitStore(Protocol):
    """Persistence for rate limit windows."""

    def init_rate_limit(self, state: RateLimitState) -> None:
        """Insert the state unless the key already exists."""

    def get_rate_limit(self, key: RateLimitKey) -> Optional[RateLimitState]:
        ...

    def record_request(self, key: RateLimitKey) -> None:
        """Increment requests_made; unknown keys are left alone."""

    def reset_window(self, key: RateLimitKey, window_start: datetime) -> None:
        ...


class RateLimiter:
    """Check / record guard around rate-limited calls."""

    def __init__(
        self,
        store: RateLimitStore,
        clock: Callable[[], datetime] = _utcnow,
        default_window: int = DEFAULT_WINDOW_SECONDS,
        default_max: int = DEFAULT_MAX_REQUESTS,
        default_safety: int = DEFAULT_SAFETY_LIMIT,
    ):
        self.store = store
        self.clock = clock
        self.default_window = default_window
        self.default_max = default_max
        self.default_safety = default_safety

    def init(
        self,
        key: RateLimitKey,
        window_duration: int,
        max_requests: int,
        safety_limit: int,
    ) -> None:
        """
        Create the window for key if it does not exist yet.

        Raises:
            ValueError: If a limit is negative or safety_limit exceeds max_requests
        """
        if window_duration < 0 or max_requests < 0 or safety_limit < 0:
            raise ValueError(f"Rate limit values must be non-negative for {key}")
        if safety_limit > max_requests:
            raise ValueError(
                f"Safety limit {safety_limit} exceeds max requests {max_requests} for {key}"
            )

        self.store.init_rate_limit(
            RateLimitState(
                key=key,
                requests_made=0,
                window_start=self.clock(),
                window_duration=window_duration,
                max_requests=max_requests,
                safety_limit=safety_limit,
            )
        )

    def check(self, key: RateLimitKey) -> bool:
        """
        Whether one more request is allowed now.

        Unknown keys are initialized with the default limits. An expired
        window is reset before deciding.
        """
        state = self.store.get_rate_limit(key)
        if state is None:
            self.init(key, self.default_window, self.default_max, self.default_safety)
            return True

        now = self.clock()
        if state.is_expired(now):
            logger.debug(f"Rate limit window expired for {key}, resetting")
            self.store.reset_window(key, now)
            return True

        if state.requests_made < state.safety_limit:
            return True

        logger.warning(
            f"Rate limit reached for {key}: {state.requests_made}/{state.safety_limit} "
            f"until {state.window_end.isoformat()}"
        )
        return False

    def record(self, key: RateLimitKey) -> None:
        """
        Count one request; call only after the guarded request succeeded.

        A key that was never checked is initialized with the default limits
        first, so the request is always counted.
        """
        if self.store.get_rate_limit(key) is None:
            self.init(key, self.default_window, self.default_max, self.default_safety)
        self.store.record_request(key)

    def reset(self, key: RateLimitKey) -> None:
        self.store.reset_window(key, self.clock())

    def status(self, key: RateLimitKey) -> Optional[Dict[str, object]]:
        state = self.store.get_rate_limit(key)
        if state is None:
            return None
        return {
            "key": str(key),
            "requests_made": state.requests_made,
            "safety_limit": state.safety_limit,
            "max_requests": state.max_requests,
            "remaining": state.remaining,
            "window_start": state.window_start.isoformat(),
            "window_end": state.window_end.isoformat(),
            "expired": state.is_expired(self.clock()),
        }
