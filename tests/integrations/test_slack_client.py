"""
Tests for the Slack API client, with a mocked WebClient.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from slack_sdk.errors import SlackApiError

from threadmine.config import Settings
from threadmine.errors import AuthenticationError, NetworkError, RateLimitExceeded
from threadmine.integrations.slack.client import SlackClient


def api_error(code):
    return SlackApiError(f"The request to the Slack API failed: {code}", {"ok": False, "error": code})


@pytest.fixture
def web():
    return MagicMock()


@pytest.fixture
def client(web):
    return SlackClient(Settings(slack_token="xoxp-test"), client=web)


class TestAuthenticate:
    def test_success(self, client, web):
        web.auth_test.return_value = {"team_id": "T1", "team": "acme", "user_id": "U1", "user": "miner"}

        auth = asyncio.run(client.authenticate())

        assert auth.workspace_id == "ws_slack_T1"
        assert auth.user == "miner"

    def test_missing_token(self, web):
        client = SlackClient(Settings(slack_token=""), client=web)
        with pytest.raises(AuthenticationError):
            asyncio.run(client.authenticate())
        web.auth_test.assert_not_called()

    def test_rejected_token(self, client, web):
        web.auth_test.side_effect = api_error("invalid_auth")
        with pytest.raises(AuthenticationError):
            asyncio.run(client.authenticate())


class TestSearchMessages:
    def test_pages_until_exhausted(self, client, web):
        web.search_messages.side_effect = [
            {"messages": {"matches": [{"ts": "1"}, {"ts": "2"}], "paging": {"pages": 2}}},
            {"messages": {"matches": [{"ts": "3"}], "paging": {"pages": 2}}},
        ]

        matches = asyncio.run(client.search_messages("in:#help", limit=10))

        assert [m["ts"] for m in matches] == ["1", "2", "3"]
        assert web.search_messages.call_count == 2
        second = web.search_messages.call_args_list[1].kwargs
        assert second["page"] == 2
        assert second["sort"] == "timestamp"
        assert second["sort_dir"] == "desc"

    def test_stops_at_limit(self, client, web):
        web.search_messages.return_value = {
            "messages": {"matches": [{"ts": "1"}, {"ts": "2"}], "paging": {"pages": 5}}
        }

        matches = asyncio.run(client.search_messages("deploy", limit=2))

        assert len(matches) == 2
        assert web.search_messages.call_count == 1
        assert web.search_messages.call_args.kwargs["count"] == 2

    def test_no_results(self, client, web):
        web.search_messages.return_value = {"messages": {"matches": [], "paging": {"pages": 0}}}
        assert asyncio.run(client.search_messages("nothing")) == []

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("ratelimited", RateLimitExceeded),
            ("not_authed", AuthenticationError),
            ("internal_error", NetworkError),
        ],
    )
    def test_error_translation(self, client, web, code, expected):
        web.search_messages.side_effect = api_error(code)
        with pytest.raises(expected):
            asyncio.run(client.search_messages("deploy"))


class TestGetThreadReplies:
    def test_follows_cursor(self, client, web):
        web.conversations_replies.side_effect = [
            {"messages": [{"ts": "1"}, {"ts": "2"}], "response_metadata": {"next_cursor": "abc"}},
            {"messages": [{"ts": "3"}], "response_metadata": {"next_cursor": ""}},
        ]

        messages = asyncio.run(client.get_thread_replies("C1", "1"))

        assert [m["ts"] for m in messages] == ["1", "2", "3"]
        assert "cursor" not in web.conversations_replies.call_args_list[0].kwargs
        assert web.conversations_replies.call_args_list[1].kwargs["cursor"] == "abc"
        assert web.conversations_replies.call_args_list[0].kwargs["channel"] == "C1"

    def test_thread_not_found(self, client, web):
        web.conversations_replies.side_effect = api_error("thread_not_found")
        with pytest.raises(NetworkError):
            asyncio.run(client.get_thread_replies("C1", "1"))
