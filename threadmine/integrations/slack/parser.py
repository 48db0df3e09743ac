"""
Slack Permalink Parser

Parses Slack permalinks to extract channel_id, message ts and thread_ts.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

PERMALINK_PATTERN = re.compile(r"https://([^.]+)\.slack\.com/archives/([A-Z0-9]+)/p(\d{16})")


@dataclass
class ParsedPermalink:
    """Parsed Slack permalink components."""

    workspace: str
    channel_id: str
    message_ts: str
    thread_ts: Optional[str] = None


def _to_ts(raw: str) -> str:
    # p1234567890123456 -> 1234567890.123456 (10 digits before the dot, 6 after)
    return f"{raw[:10]}.{raw[10:]}"


def parse_permalink(permalink: str) -> ParsedPermalink:
    """
    Parse a Slack message permalink.

    Examples:
        https://myworkspace.slack.com/archives/C123ABC456/p1234567890123456
        -> channel_id: C123ABC456, message_ts: 1234567890.123456

        https://ws.slack.com/archives/C1/p1234567890123456?thread_ts=1234567800.000100&cid=C1
        -> thread_ts: 1234567800.000100

    Raises:
        ValueError: If permalink format is invalid
    """
    match = PERMALINK_PATTERN.match(permalink or "")
    if not match:
        raise ValueError(f"Invalid Slack permalink format: {permalink}")

    workspace, channel_id, ts_raw = match.groups()

    return ParsedPermalink(
        workspace=workspace,
        channel_id=channel_id,
        message_ts=_to_ts(ts_raw),
        thread_ts=thread_ts_from_permalink(permalink),
    )


def thread_ts_from_permalink(permalink: str) -> Optional[str]:
    """
    Recover thread_ts from a permalink query string.

    search.messages sometimes omits thread_ts on replies but keeps it in the
    permalink: .../pMSGTS?thread_ts=THREADTS&cid=CHANNEL
    """
    if not permalink or "thread_ts=" not in permalink:
        return None
    values = parse_qs(urlparse(permalink).query).get("thread_ts")
    return values[0] if values else None
