"""
Tests for the fetch orchestrator, with mocked Slack and GitHub clients.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from threadmine.config import Settings
from threadmine.errors import AuthenticationError, NetworkError, PersistenceError
from threadmine.integrations.slack.models import SlackAuth
from threadmine.ratelimit import RateLimiter
from threadmine.services.fetcher import FetchOrchestrator
from threadmine.services.queries import GitHubFetchOptions, SlackFetchOptions
from threadmine.storage import MessageQuery, MessageStore

CHANNEL = {"id": "C1", "name": "help"}
ROOT_TS = "1700000000.000100"
REPLY_TS = "1700000050.000200"
ROOT_ID = f"msg_slack_C1_{ROOT_TS}"
REPLY_ID = f"msg_slack_C1_{REPLY_TS}"


@pytest.fixture
def store():
    db = MessageStore(":memory:")
    yield db
    db.close()


def make_orchestrator(store, slack=None, github=None, **settings):
    return FetchOrchestrator(
        store=store,
        limiter=RateLimiter(store),
        slack_client=slack,
        github_client=github,
        settings=Settings(**settings),
    )


def run(coro):
    return asyncio.run(coro)


# ----------------------------------------------------------------------
# Slack
# ----------------------------------------------------------------------


def search_match(ts, text, thread_ts=None, user="U1", channel=CHANNEL):
    permalink = f"https://acme.slack.com/archives/{channel['id']}/p{ts.replace('.', '')}"
    if thread_ts and thread_ts != ts:
        permalink += f"?thread_ts={thread_ts}&cid={channel['id']}"
    raw = {
        "ts": ts,
        "user": user,
        "username": user.lower(),
        "text": text,
        "permalink": permalink,
        "channel": channel,
    }
    if thread_ts == ts:
        raw["thread_ts"] = ts
    return raw


def thread_reply(ts, text, thread_ts=ROOT_TS, user="U1"):
    return {"ts": ts, "thread_ts": thread_ts, "user": user, "text": text, "type": "message"}


@pytest.fixture
def slack():
    client = MagicMock()
    client.authenticate = AsyncMock(return_value=SlackAuth(team_id="T1", team="acme"))
    client.search_messages = AsyncMock(return_value=[])
    client.get_thread_replies = AsyncMock(return_value=[])
    return client


class TestFetchSlack:
    def test_expands_thread_once(self, store, slack):
        slack.search_messages.return_value = [
            search_match(ROOT_TS, "How do I deploy?", thread_ts=ROOT_TS),
            search_match(REPLY_TS, "Use the pipeline", thread_ts=ROOT_TS, user="U2"),
        ]
        slack.get_thread_replies.return_value = [
            thread_reply(ROOT_TS, "How do I deploy?"),
            thread_reply(REPLY_TS, "Use the pipeline", user="U2"),
        ]
        orchestrator = make_orchestrator(store, slack=slack)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(channel="help", limit=10)))

        assert summary.messages_stored == 2
        assert summary.threads_processed == 1
        assert summary.partial is False
        slack.search_messages.assert_awaited_once_with("in:#help", 10)
        slack.get_thread_replies.assert_awaited_once_with("C1", ROOT_TS)

        reply = store.get_message(REPLY_ID)
        assert reply.parent_id == ROOT_ID
        assert store.get_channel("chan_slack_C1").parent_space == "ws_slack_T1"
        assert store.get_user("user_slack_U2") is not None
        assert store.get_raw_payload(REPLY_ID)["text"] == "Use the pipeline"

    def test_without_thread_expansion(self, store, slack):
        slack.search_messages.return_value = [
            search_match(REPLY_TS, "Use the pipeline", thread_ts=ROOT_TS, user="U2"),
        ]
        orchestrator = make_orchestrator(store, slack=slack)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="pipeline", fetch_threads=False)))

        assert summary.messages_stored == 1
        slack.get_thread_replies.assert_not_awaited()
        assert store.get_message(REPLY_ID).thread_id == ROOT_ID
        assert store.get_user("user_slack_U2").display_name == "u2"

    def test_rate_limited_thread_keeps_stored_work(self, store, slack):
        other_ts = "1700000100.000300"
        slack.search_messages.return_value = [
            search_match(ROOT_TS, "first", thread_ts=ROOT_TS),
            search_match(other_ts, "second", thread_ts=other_ts),
        ]
        slack.get_thread_replies.return_value = [thread_reply(ROOT_TS, "first")]
        orchestrator = make_orchestrator(store, slack=slack, slack_replies_safety=1)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="x")))

        assert summary.rate_limited is True
        assert summary.partial is True
        assert summary.messages_stored == 1
        assert store.get_message(ROOT_ID) is not None
        assert slack.get_thread_replies.await_count == 1
        assert any("rate limit" in w for w in summary.warnings)

    def test_rate_limited_search(self, store, slack):
        orchestrator = make_orchestrator(store, slack=slack, slack_search_safety=0)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="x")))

        assert summary.rate_limited is True
        assert summary.messages_stored == 0
        slack.search_messages.assert_not_awaited()

    def test_bad_record_skipped(self, store, slack):
        broken = {"ts": "1700000200.000100", "text": "no channel"}
        slack.search_messages.return_value = [broken, search_match(ROOT_TS, "fine")]
        orchestrator = make_orchestrator(store, slack=slack)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="x")))

        assert summary.messages_stored == 1
        assert len(summary.skipped) == 1
        assert summary.skipped[0].item == "slack:?/1700000200.000100"

    def test_bad_thread_reply_skipped(self, store, slack):
        slack.search_messages.return_value = [search_match(ROOT_TS, "root", thread_ts=ROOT_TS)]
        slack.get_thread_replies.return_value = [
            thread_reply(ROOT_TS, "root"),
            thread_reply("garbage", "bad ts"),
        ]
        orchestrator = make_orchestrator(store, slack=slack)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="x")))

        assert summary.messages_stored == 1
        assert [s.item for s in summary.skipped] == ["slack:C1/garbage"]

    def test_thread_network_error_stores_match(self, store, slack):
        slack.search_messages.return_value = [search_match(ROOT_TS, "root", thread_ts=ROOT_TS)]
        slack.get_thread_replies.side_effect = NetworkError("connection reset")
        orchestrator = make_orchestrator(store, slack=slack)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="x")))

        assert summary.messages_stored == 1
        assert summary.threads_processed == 0
        assert len(summary.warnings) == 1

    def test_persistence_error_skips_one(self, store, slack, monkeypatch):
        slack.search_messages.return_value = [
            search_match(ROOT_TS, "first"),
            search_match("1700000100.000300", "second"),
        ]
        save_message = store.save_message

        def flaky_save(msg):
            if msg.id == ROOT_ID:
                raise PersistenceError("disk full")
            save_message(msg)

        monkeypatch.setattr(store, "save_message", flaky_save)
        orchestrator = make_orchestrator(store, slack=slack)

        summary = run(orchestrator.fetch_slack(SlackFetchOptions(search="x", fetch_threads=False)))

        assert summary.messages_stored == 1
        assert summary.skipped[0].reason == "disk full"

    def test_authentication_error_is_fatal(self, store, slack):
        slack.authenticate.side_effect = AuthenticationError("invalid_auth")
        orchestrator = make_orchestrator(store, slack=slack)

        with pytest.raises(AuthenticationError):
            run(orchestrator.fetch_slack(SlackFetchOptions(search="x")))
        slack.search_messages.assert_not_awaited()

    def test_missing_criteria(self, store, slack):
        with pytest.raises(ValueError):
            run(make_orchestrator(store, slack=slack).fetch_slack(SlackFetchOptions()))

    def test_client_not_configured(self, store):
        with pytest.raises(ValueError):
            run(make_orchestrator(store).fetch_slack(SlackFetchOptions(search="x")))


# ----------------------------------------------------------------------
# GitHub
# ----------------------------------------------------------------------

REPO_URL = "https://api.github.com/repos/acme/widgets"
CREATED = "2025-03-01T10:00:00Z"


def issue(number, title, pr=False, **extra):
    raw = {
        "number": number,
        "title": title,
        "body": "details",
        "user": {"login": "alice"},
        "created_at": CREATED,
        "updated_at": CREATED,
        "repository_url": REPO_URL,
        **extra,
    }
    if pr:
        raw["pull_request"] = {"url": f"{REPO_URL}/pulls/{number}"}
    return raw


COMMENTS = {42: [{"id": 1001, "body": "Same here", "user": {"login": "bob"}, "created_at": CREATED}], 7: []}
TIMELINE = [
    {"id": 9, "event": "labeled", "label": {"name": "bug"}, "actor": {"login": "alice"}, "created_at": CREATED},
    {"id": 10, "event": "subscribed", "actor": {"login": "alice"}, "created_at": CREATED},
]


@pytest.fixture
def github():
    client = MagicMock()
    client.authenticate = AsyncMock(return_value="octocat")
    client.search_issues = AsyncMock(return_value=[issue(42, "Crash"), issue(7, "Fix crash", pr=True)])
    client.get_issue_comments = AsyncMock(side_effect=lambda repo, number, since=None: COMMENTS[number])
    client.get_reviews = AsyncMock(
        return_value=[{"id": 55, "body": "", "state": "APPROVED", "submitted_at": CREATED}]
    )
    client.get_review_comments = AsyncMock(
        return_value=[{"id": 77, "body": "nit", "path": "a.py", "line": 3, "created_at": CREATED}]
    )
    client.get_timeline = AsyncMock(return_value=TIMELINE)
    client.search_discussions = AsyncMock(return_value=[])
    client.get_discussion_comments = AsyncMock(return_value=[])
    return client


class TestFetchGitHub:
    def test_issue_and_pull_request_with_children(self, store, github):
        orchestrator = make_orchestrator(store, github=github)

        summary = run(orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets", label="bug")))

        assert summary.query == "repo:acme/widgets label:bug"
        assert summary.threads_processed == 2
        # issue: root, comment, labeled event; pr: root, review comment, labeled event
        assert summary.messages_stored == 6
        assert summary.skipped == []

        thread = store.query_messages(MessageQuery(thread_id="msg_github_acme_widgets_pr_7"))
        assert {m.id for m in thread} == {
            "msg_github_acme_widgets_pr_7",
            "msg_github_acme_widgets_pr_7_review_comment_77",
            "msg_github_acme_widgets_pr_7_timeline_9",
        }
        assert store.get_channel("chan_github_acme_widgets").type == "repository"
        github.get_review_comments.assert_awaited_once()
        github.get_reviews.assert_awaited_once()

    def test_timeline_optional(self, store, github):
        orchestrator = make_orchestrator(store, github=github)

        summary = run(
            orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets", include_timeline=False))
        )

        assert summary.messages_stored == 4
        github.get_timeline.assert_not_awaited()

    def test_rate_limit_stops_batch(self, store, github):
        orchestrator = make_orchestrator(store, github=github, github_core_safety=1)

        summary = run(orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets")))

        assert summary.rate_limited is True
        assert summary.messages_stored == 2
        assert store.get_message("msg_github_acme_widgets_issue_42_comment_1001") is not None
        assert store.get_message("msg_github_acme_widgets_pr_7") is None

    def test_network_error_skips_sub_resource(self, store, github):
        github.get_issue_comments.side_effect = NetworkError("502 Bad Gateway")
        orchestrator = make_orchestrator(store, github=github)

        summary = run(orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets")))

        assert summary.messages_stored == 5
        assert [s.item for s in summary.skipped] == [
            "github:acme/widgets#42 comments",
            "github:acme/widgets#7 comments",
        ]

    def test_bad_root_skips_its_children(self, store, github):
        github.search_issues.return_value = [issue(42, "Crash", created_at="not a date")]
        orchestrator = make_orchestrator(store, github=github)

        summary = run(orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets")))

        assert summary.messages_stored == 0
        assert len(summary.skipped) == 1
        github.get_issue_comments.assert_not_awaited()

    def test_org_search_uses_result_repository(self, store, github):
        github.search_issues.return_value = [
            issue(42, "Crash"),
            issue(5, "Lost", repository_url=None),
        ]
        orchestrator = make_orchestrator(store, github=github)

        summary = run(orchestrator.fetch_github(GitHubFetchOptions(org="acme", include_timeline=False)))

        assert summary.messages_stored == 2
        assert summary.skipped[0].reason == "search result has no repository"

    def test_discussions(self, store, github):
        github.search_issues.return_value = []
        github.search_discussions.return_value = [
            {"number": 3, "title": "How to configure?", "body": "?", "author": {"login": "erin"}, "created_at": CREATED}
        ]
        github.get_discussion_comments.return_value = [
            {"id": "500", "body": "In ~/.config", "author": {"login": "frank"}, "created_at": CREATED},
            {"id": "501", "body": "Thanks", "author": {"login": "erin"}, "created_at": CREATED, "reply_to": "500"},
        ]
        orchestrator = make_orchestrator(store, github=github)

        summary = run(
            orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets", include_discussions=True))
        )

        assert summary.messages_stored == 3
        assert summary.threads_processed == 1
        reply = store.get_message("msg_github_acme_widgets_discussion_3_comment_501")
        assert reply.parent_id == "msg_github_acme_widgets_discussion_3_comment_500"

    def test_discussions_need_single_repo(self, store, github):
        github.search_issues.return_value = []
        orchestrator = make_orchestrator(store, github=github)

        summary = run(orchestrator.fetch_github(GitHubFetchOptions(org="acme", include_discussions=True)))

        assert summary.warnings == ["Discussions are only fetched for a single repository"]
        github.search_discussions.assert_not_awaited()

    def test_authentication_error_is_fatal(self, store, github):
        github.authenticate.side_effect = AuthenticationError("Bad credentials")
        orchestrator = make_orchestrator(store, github=github)

        with pytest.raises(AuthenticationError):
            run(orchestrator.fetch_github(GitHubFetchOptions(repo="acme/widgets")))

    def test_scope_required(self, store, github):
        with pytest.raises(ValueError):
            run(make_orchestrator(store, github=github).fetch_github(GitHubFetchOptions(author="alice")))
