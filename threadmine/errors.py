"""
Error taxonomy shared by the fetch, normalize and storage layers.

- AuthenticationError: fatal, aborts the run
- RateLimitExceeded: recoverable, stops the current batch early
- NetworkError / NormalizationError / PersistenceError: per item, logged and skipped
"""

from typing import Optional


class ThreadMineError(Exception):
    """Base class for all ThreadMine errors."""


class AuthenticationError(ThreadMineError):
    """Raised when a source rejects the configured credentials."""


class RateLimitExceeded(ThreadMineError):
    """Raised when the self-imposed safety limit for an endpoint is reached."""

    def __init__(self, endpoint: str, message: Optional[str] = None):
        self.endpoint = endpoint
        super().__init__(message or f"Rate limit exceeded for {endpoint}")


class NetworkError(ThreadMineError):
    """Raised when a single upstream request fails."""


class NormalizationError(ThreadMineError):
    """Raised when one native record cannot be mapped to the canonical schema."""

    def __init__(self, record_kind: str, message: str):
        self.record_kind = record_kind
        super().__init__(f"{record_kind}: {message}")


class PersistenceError(ThreadMineError):
    """Raised when a single record cannot be saved."""
