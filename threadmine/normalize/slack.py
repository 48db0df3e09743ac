"""
Slack Normalizer

Maps decoded Slack records (search matches and thread messages) to the
canonical message schema, plus the User and Channel records they imply.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from threadmine.errors import NormalizationError
from threadmine.integrations.slack.models import (
    SlackChannelRef,
    SlackSearchMatch,
    SlackThreadMessage,
)
from threadmine.integrations.slack.parser import thread_ts_from_permalink
from threadmine.models.message import (
    Attachment,
    CanonicalMessage,
    Channel,
    SourceType,
    User,
)
from threadmine.normalize.extract import (
    extract_code_blocks,
    extract_mentions,
    extract_urls,
    normalize_slack_markup,
)

logger = logging.getLogger(__name__)


def slack_message_id(channel_id: str, ts: str) -> str:
    return f"msg_slack_{channel_id}_{ts}"


def slack_user_id(user: str) -> str:
    return f"user_slack_{user}"


def slack_channel_id(channel_id: str) -> str:
    return f"chan_slack_{channel_id}"


def parse_slack_ts(ts: str) -> datetime:
    """
    Convert a Slack ts ("1712345678.000100") to an aware UTC datetime.

    Raises:
        NormalizationError: If ts is missing or not a number
    """
    try:
        return datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as e:
        raise NormalizationError("slack", f"invalid timestamp {ts!r}") from e


def _attachments(files: List[Dict[str, Any]]) -> List[Attachment]:
    return [
        Attachment(
            type=f.get("filetype") or "file",
            url=f.get("url_private") or f.get("permalink") or "",
            title=f.get("title") or f.get("name") or "",
            mime_type=f.get("mimetype") or "",
        )
        for f in files
    ]


def _build_message(
    *,
    channel_id: str,
    ts: str,
    thread_ts: Optional[str],
    author: str,
    text: str,
    files: List[Dict[str, Any]],
    metadata: Dict[str, Any],
    fetched_at: Optional[datetime],
) -> CanonicalMessage:
    if not channel_id:
        raise NormalizationError("slack", f"message {ts} has no channel")

    timestamp = parse_slack_ts(ts)
    msg_id = slack_message_id(channel_id, ts)

    # A message is its own thread root unless it points at a different ts
    is_root = not thread_ts or thread_ts == ts
    thread_id = msg_id if is_root else slack_message_id(channel_id, thread_ts)

    content = normalize_slack_markup(text)

    return CanonicalMessage(
        id=msg_id,
        source_type=SourceType.SLACK,
        source_id=f"{channel_id}_{ts}",
        timestamp=timestamp,
        author_id=slack_user_id(author or "unknown"),
        content=content,
        channel_id=slack_channel_id(channel_id),
        thread_id=thread_id,
        parent_id=None if is_root else thread_id,
        is_thread_root=is_root,
        mentions=extract_mentions(content),
        urls=extract_urls(text),
        code_blocks=extract_code_blocks(content),
        attachments=_attachments(files),
        source_metadata={k: v for k, v in metadata.items() if v not in (None, "")},
        fetched_at=fetched_at,
        normalized_at=datetime.now(timezone.utc),
    )


def normalize_search_match(
    match: SlackSearchMatch, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    """
    Normalize a search.messages match.

    Search results often omit thread_ts on replies; it is recovered from
    the permalink's ?thread_ts= parameter when missing.
    """
    thread_ts = match.thread_ts or thread_ts_from_permalink(match.permalink)

    return _build_message(
        channel_id=match.channel.id,
        ts=match.ts,
        thread_ts=thread_ts,
        author=match.user,
        text=match.text,
        files=match.files,
        metadata={
            "ts": match.ts,
            "thread_ts": thread_ts,
            "permalink": match.permalink,
            "channel_name": match.channel.name,
            "username": match.username,
        },
        fetched_at=fetched_at,
    )


def normalize_thread_message(
    message: SlackThreadMessage, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    """Normalize a conversations.replies message."""
    return _build_message(
        channel_id=message.channel_id,
        ts=message.ts,
        thread_ts=message.thread_ts,
        author=message.user or message.bot_id or "",
        text=message.text,
        files=message.files,
        metadata={
            "ts": message.ts,
            "thread_ts": message.thread_ts,
            "subtype": message.subtype,
            "bot_id": message.bot_id,
            "reply_count": message.reply_count or None,
        },
        fetched_at=fetched_at,
    )


NORMALIZERS = {
    "search_match": normalize_search_match,
    "thread_message": normalize_thread_message,
}


def normalize_slack_record(record, fetched_at: Optional[datetime] = None) -> CanonicalMessage:
    """Normalize any decoded Slack record by its kind."""
    return NORMALIZERS[record.kind](record, fetched_at=fetched_at)


def slack_user(user_id: str, username: Optional[str] = None) -> User:
    return User(
        id=slack_user_id(user_id),
        source_type=SourceType.SLACK,
        source_id=user_id,
        display_name=username or None,
    )


def slack_channel(channel: SlackChannelRef, workspace_id: Optional[str] = None) -> Channel:
    if channel.is_im:
        channel_type = "dm"
    else:
        channel_type = "channel"

    return Channel(
        id=slack_channel_id(channel.id),
        source_type=SourceType.SLACK,
        source_id=channel.id,
        name=channel.name or channel.id,
        display_name=f"#{channel.name}" if channel.name and channel_type == "channel" else None,
        type=channel_type,
        is_private=channel.is_private,
        parent_space=workspace_id,
    )
