"""
Rate Limit State Models
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class RateLimitKey:
    """Identifies one throttled endpoint."""

    source_type: str
    endpoint: str
    workspace_id: Optional[str] = None

    def __str__(self) -> str:
        scope = f"{self.workspace_id}/" if self.workspace_id else ""
        return f"{self.source_type}:{scope}{self.endpoint}"


@dataclass
class RateLimitState:
    """Windowed request counter for one key."""

    key: RateLimitKey
    requests_made: int
    window_start: datetime
    window_duration: int  # seconds
    max_requests: int
    safety_limit: int

    @property
    def window_end(self) -> datetime:
        return self.window_start + timedelta(seconds=self.window_duration)

    def is_expired(self, now: datetime) -> bool:
        return now > self.window_end

    @property
    def remaining(self) -> int:
        return max(self.safety_limit - self.requests_made, 0)
