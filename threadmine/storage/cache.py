"""
Raw Snapshot Cache

JSON snapshots of upstream responses under `cache_dir/<source>/<key>.json`.
Used cache-aside by the GitHub client for per-item sub-resources.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from threadmine.storage.atomic import atomic_write_json

logger = logging.getLogger(__name__)

UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotCache:
    """
    File cache with freshness checks.

    A snapshot is fresh when it is younger than max_age_seconds and the
    `since` it was fetched with covers the requested one (an older or equal
    cutoff means it already contains everything asked for).
    """

    def __init__(
        self,
        cache_dir: str,
        max_age_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.cache_dir = Path(cache_dir).expanduser()
        self.max_age_seconds = max_age_seconds
        self.clock = clock

    def _path(self, source: str, key: str) -> Path:
        safe_key = UNSAFE_KEY_CHARS.sub("_", key).strip("_") or "snapshot"
        return self.cache_dir / source / f"{safe_key}.json"

    def get(self, source: str, key: str, since: Optional[datetime] = None) -> Optional[Any]:
        """Return cached data, or None when missing, stale or unreadable."""
        path = self._path(source, key)
        if not path.exists():
            return None

        try:
            snapshot = json.loads(path.read_text(encoding="utf-8"))
            fetched_at = datetime.fromisoformat(snapshot["fetched_at"])
            cached_since = snapshot.get("since")
            cached_since = datetime.fromisoformat(cached_since) if cached_since else None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cache snapshot {path}: {e}")
            return None

        age = (self.clock() - fetched_at).total_seconds()
        if age >= self.max_age_seconds:
            logger.debug(f"Cache snapshot {path.name} is stale ({age:.0f}s old)")
            return None

        if since is not None and cached_since is not None and cached_since > since:
            logger.debug(f"Cache snapshot {path.name} does not cover since={since.isoformat()}")
            return None

        logger.debug(f"Cache hit: {source}/{key}")
        return snapshot.get("data")

    def put(self, source: str, key: str, data: Any, since: Optional[datetime] = None) -> Path:
        path = self._path(source, key)
        atomic_write_json(
            path,
            {
                "fetched_at": self.clock().isoformat(),
                "since": since.isoformat() if since else None,
                "data": data,
            },
        )
        return path
