"""
Tests for Slack record normalization.
"""

from datetime import datetime, timezone

import pytest

from threadmine.errors import NormalizationError
from threadmine.graph import ReplyGraph
from threadmine.integrations.slack.models import SlackChannelRef, decode_slack_record
from threadmine.models.message import SourceType
from threadmine.normalize.slack import (
    normalize_search_match,
    normalize_slack_record,
    normalize_thread_message,
    parse_slack_ts,
    slack_channel,
    slack_user,
)

FETCHED_AT = datetime(2025, 3, 2, tzinfo=timezone.utc)


def thread_message(ts, thread_ts=None, text="", user="U1", **extra):
    raw = {"ts": ts, "user": user, "text": text, **extra}
    if thread_ts:
        raw["thread_ts"] = thread_ts
    return decode_slack_record("thread_message", raw, channel_id="C1")


class TestParseSlackTs:
    def test_converts_to_utc(self):
        parsed = parse_slack_ts("1700000000.000100")
        assert parsed.tzinfo == timezone.utc
        assert parsed.year == 2023
        assert parsed.microsecond == 100

    @pytest.mark.parametrize("bad", ["", "yesterday", None])
    def test_rejects_invalid(self, bad):
        with pytest.raises(NormalizationError):
            parse_slack_ts(bad)


class TestNormalizeThreadMessage:
    def test_root_message(self):
        msg = normalize_thread_message(
            thread_message("1700000000.000100", "1700000000.000100", text="How do I deploy?"),
            fetched_at=FETCHED_AT,
        )

        assert msg.id == "msg_slack_C1_1700000000.000100"
        assert msg.source_type == SourceType.SLACK
        assert msg.source_id == "C1_1700000000.000100"
        assert msg.author_id == "user_slack_U1"
        assert msg.channel_id == "chan_slack_C1"
        assert msg.is_thread_root is True
        assert msg.parent_id is None
        assert msg.thread_id == msg.id
        assert msg.fetched_at == FETCHED_AT
        assert msg.normalized_at is not None

    def test_message_without_thread_ts_is_root(self):
        msg = normalize_thread_message(thread_message("1700000000.000100"))
        assert msg.is_thread_root is True
        assert msg.thread_id == msg.id

    def test_reply_points_at_root(self):
        msg = normalize_thread_message(
            thread_message("1700000050.000200", "1700000000.000100", text="Try restarting")
        )

        root_id = "msg_slack_C1_1700000000.000100"
        assert msg.is_thread_root is False
        assert msg.parent_id == root_id
        assert msg.thread_id == root_id

    def test_markup_and_entities(self):
        msg = normalize_thread_message(
            thread_message(
                "1700000000.000100",
                text="<@U2|alice> see <https://docs.example.com|docs> and run `make build`",
            )
        )

        assert msg.content == "@alice see docs (https://docs.example.com) and run `make build`"
        assert msg.mentions == {"alice"}
        assert msg.urls == ["https://docs.example.com"]
        assert [b.code for b in msg.code_blocks] == ["make build"]

    def test_bot_message_uses_bot_id(self):
        msg = normalize_thread_message(
            thread_message("1700000000.000100", user="", bot_id="B9", subtype="bot_message")
        )
        assert msg.author_id == "user_slack_B9"
        assert msg.source_metadata["subtype"] == "bot_message"

    def test_files_become_attachments(self):
        msg = normalize_thread_message(
            thread_message(
                "1700000000.000100",
                files=[{"filetype": "png", "url_private": "https://files/x.png", "name": "x.png", "mimetype": "image/png"}],
            )
        )
        assert len(msg.attachments) == 1
        assert msg.attachments[0].type == "png"
        assert msg.attachments[0].title == "x.png"

    def test_empty_metadata_values_dropped(self):
        msg = normalize_thread_message(thread_message("1700000000.000100"))
        assert "bot_id" not in msg.source_metadata
        assert "reply_count" not in msg.source_metadata

    def test_bad_timestamp_raises(self):
        record = decode_slack_record("thread_message", {"ts": "not-a-ts"}, channel_id="C1")
        with pytest.raises(NormalizationError):
            normalize_thread_message(record)

    def test_idempotent(self):
        """Same input gives the same canonical fields apart from normalized_at."""
        record = thread_message("1700000050.000200", "1700000000.000100", text="a &amp; b")
        first = normalize_thread_message(record, fetched_at=FETCHED_AT)
        second = normalize_thread_message(record, fetched_at=FETCHED_AT)

        exclude = {"normalized_at"}
        assert first.model_dump(exclude=exclude) == second.model_dump(exclude=exclude)


class TestNormalizeSearchMatch:
    def make_match(self, **overrides):
        raw = {
            "ts": "1700000050.000200",
            "user": "U2",
            "username": "bob",
            "text": "It works now",
            "permalink": "https://acme.slack.com/archives/C1/p1700000050000200",
            "channel": {"id": "C1", "name": "help"},
        }
        raw.update(overrides)
        return decode_slack_record("search_match", raw)

    def test_root_match(self):
        msg = normalize_search_match(self.make_match())
        assert msg.is_thread_root is True
        assert msg.source_metadata["channel_name"] == "help"
        assert msg.source_metadata["username"] == "bob"

    def test_thread_ts_recovered_from_permalink(self):
        match = self.make_match(
            permalink="https://acme.slack.com/archives/C1/p1700000050000200"
            "?thread_ts=1700000000.000100&cid=C1"
        )
        msg = normalize_search_match(match)

        assert msg.is_thread_root is False
        assert msg.parent_id == "msg_slack_C1_1700000000.000100"
        assert msg.source_metadata["thread_ts"] == "1700000000.000100"

    def test_explicit_thread_ts_wins(self):
        msg = normalize_search_match(self.make_match(thread_ts="1700000000.000100"))
        assert msg.thread_id == "msg_slack_C1_1700000000.000100"

    def test_dispatch_by_kind(self):
        msg = normalize_slack_record(self.make_match(), fetched_at=FETCHED_AT)
        assert msg.id == "msg_slack_C1_1700000050.000200"


class TestDecodeSlackRecord:
    def test_unknown_kind(self):
        with pytest.raises(NormalizationError):
            decode_slack_record("reaction", {})

    def test_missing_required_field(self):
        with pytest.raises(NormalizationError):
            decode_slack_record("search_match", {"ts": "1700000000.000100"})

    def test_thread_message_needs_channel(self):
        with pytest.raises(NormalizationError):
            decode_slack_record("thread_message", {"ts": "1700000000.000100"})


class TestSlackThreadEndToEnd:
    def test_root_and_reply_form_one_thread(self):
        """A root plus one reply yields one thread of depth 1."""
        root = normalize_thread_message(
            thread_message("1700000000.000100", "1700000000.000100", text="How do I reset my token?")
        )
        reply = normalize_thread_message(
            thread_message("1700000050.000200", "1700000000.000100", text="Go to settings", user="U2")
        )

        graph = ReplyGraph.build([root, reply])

        assert graph.roots == [root.id]
        assert reply.parent_id == root.id
        assert graph.depth(root.id) == 1
        assert [n.message_id for n in graph.thread(root.id)] == [root.id, reply.id]


class TestSlackUserAndChannel:
    def test_user(self):
        user = slack_user("U1", "alice")
        assert user.id == "user_slack_U1"
        assert user.display_name == "alice"

    def test_channel(self):
        channel = slack_channel(SlackChannelRef(id="C1", name="help"), "ws_slack_T1")
        assert channel.id == "chan_slack_C1"
        assert channel.type == "channel"
        assert channel.display_name == "#help"
        assert channel.parent_space == "ws_slack_T1"

    def test_dm(self):
        channel = slack_channel(SlackChannelRef(id="D1", is_im=True))
        assert channel.type == "dm"
        assert channel.name == "D1"
        assert channel.display_name is None
