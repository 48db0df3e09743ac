"""
Date helpers for fetch filters.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

RELATIVE_DAYS_PATTERN = re.compile(r"(-?\d+)d")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_since_date(since: str, now: Optional[Callable[[], datetime]] = None) -> datetime:
    """
    Parse a since filter.

    Accepts:
        "7d"          -> 7 days before now
        "2025-12-15"  -> midnight UTC on that date

    Raises:
        ValueError: If the value is empty, negative or in neither format
    """
    since = (since or "").strip()
    if not since:
        raise ValueError("since date cannot be empty")

    if since.endswith("d"):
        match = RELATIVE_DAYS_PATTERN.fullmatch(since)
        if not match:
            raise ValueError(f"invalid relative date format '{since}': expected format like '7d'")
        days = int(match.group(1))
        if days < 0:
            raise ValueError(f"days cannot be negative: {days}")
        return (now or _utcnow)() - timedelta(days=days)

    try:
        parsed = datetime.strptime(since, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(
            f"invalid date format '{since}': expected 'YYYY-MM-DD' or relative format like '7d'"
        ) from e
    return parsed.replace(tzinfo=timezone.utc)


def format_day(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")
