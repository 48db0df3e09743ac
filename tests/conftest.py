"""
Shared fixtures.
"""

from datetime import datetime, timedelta, timezone

import pytest

from threadmine.models.message import CanonicalMessage, SourceType

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_message():
    """Factory for canonical messages with sensible defaults."""

    def _make(
        msg_id: str,
        content: str = "",
        thread_id: str = None,
        parent_id: str = None,
        author: str = "user_slack_U1",
        minutes: int = 0,
        **kwargs,
    ) -> CanonicalMessage:
        thread_id = thread_id or msg_id
        return CanonicalMessage(
            id=msg_id,
            source_type=kwargs.pop("source_type", SourceType.SLACK),
            source_id=kwargs.pop("source_id", msg_id),
            timestamp=BASE_TIME + timedelta(minutes=minutes),
            author_id=author,
            content=content,
            channel_id=kwargs.pop("channel_id", "chan_slack_C1"),
            thread_id=thread_id,
            parent_id=parent_id,
            is_thread_root=kwargs.pop("is_thread_root", parent_id is None),
            **kwargs,
        )

    return _make
