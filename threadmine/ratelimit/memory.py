"""
In-memory rate limit store, for tests and one-off runs.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from threadmine.models.ratelimit import RateLimitKey, RateLimitState


class InMemoryRateLimitStore:
    def __init__(self):
        self._states: Dict[RateLimitKey, RateLimitState] = {}

    def init_rate_limit(self, state: RateLimitState) -> None:
        self._states.setdefault(state.key, state)

    def get_rate_limit(self, key: RateLimitKey) -> Optional[RateLimitState]:
        state = self._states.get(key)
        return replace(state) if state else None

    def record_request(self, key: RateLimitKey) -> None:
        state = self._states.get(key)
        if state is not None:
            state.requests_made += 1

    def reset_window(self, key: RateLimitKey, window_start: datetime) -> None:
        state = self._states.get(key)
        if state is not None:
            state.requests_made = 0
            state.window_start = window_start
