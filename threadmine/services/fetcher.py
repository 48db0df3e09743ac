"""
Fetch Orchestrator

Search -> (thread / sub-resource expansion) -> normalize -> store, with a
self-imposed rate limit in front of every upstream call.

Error policy:
- AuthenticationError propagates and aborts the run
- RateLimitExceeded stops the batch; what was stored stays stored
- NetworkError, NormalizationError, PersistenceError skip the one item
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from threadmine.config import Settings, get_settings
from threadmine.errors import (
    NetworkError,
    NormalizationError,
    PersistenceError,
    RateLimitExceeded,
)
from threadmine.integrations.github.client import GitHubClient
from threadmine.integrations.github.models import GitHubRepoRef, decode_github_record
from threadmine.integrations.slack.client import SlackClient
from threadmine.integrations.slack.models import SlackChannelRef, decode_slack_record
from threadmine.integrations.slack.parser import thread_ts_from_permalink
from threadmine.models.api_responses import FetchSummary
from threadmine.models.message import CanonicalMessage, Channel, User
from threadmine.models.ratelimit import RateLimitKey
from threadmine.normalize.github import (
    github_repository_channel,
    github_user,
    normalize_github_record,
)
from threadmine.normalize.slack import normalize_slack_record, slack_channel, slack_user
from threadmine.ratelimit.limiter import RateLimiter
from threadmine.services.queries import (
    GitHubFetchOptions,
    SlackFetchOptions,
    build_github_query,
    build_slack_query,
    repo_from_issue,
    resolve_github_repo,
)
from threadmine.storage.sqlite_store import MessageStore

logger = logging.getLogger(__name__)

SLACK_SEARCH = "search.messages"
SLACK_REPLIES = "conversations.replies"
GITHUB_SEARCH = "github.search"
GITHUB_CORE = "github.core"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FetchOrchestrator:
    """
    Runs one fetch for a source and reports what happened.

    Collaborators are passed in so tests can swap the clients and store.
    """

    def __init__(
        self,
        store: MessageStore,
        limiter: RateLimiter,
        slack_client: Optional[SlackClient] = None,
        github_client: Optional[GitHubClient] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.limiter = limiter
        self.slack_client = slack_client
        self.github_client = github_client
        self.clock = clock

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _guarded(self, key: RateLimitKey, call: Callable[[], Awaitable[Any]]) -> Any:
        """Check the limit, make the call, record it once it succeeded."""
        if not self.limiter.check(key):
            raise RateLimitExceeded(key.endpoint)
        result = await call()
        self.limiter.record(key)
        return result

    def _store(
        self,
        summary: FetchSummary,
        item: str,
        msg: CanonicalMessage,
        raw: Dict[str, Any],
        user: Optional[User] = None,
        channel: Optional[Channel] = None,
    ) -> bool:
        try:
            if user is not None:
                self.store.save_user(user)
            if channel is not None:
                self.store.save_channel(channel)
            self.store.save_raw_payload(msg.id, msg.source_type.value, msg.source_id, raw)
            self.store.save_message(msg)
        except PersistenceError as e:
            logger.warning(f"Skipping {item}: {e}")
            summary.skip(item, str(e))
            return False

        summary.messages_stored += 1
        return True

    def _stop_on_rate_limit(self, summary: FetchSummary, e: RateLimitExceeded) -> None:
        logger.warning(f"Rate limit reached for {e.endpoint}, stopping batch")
        summary.rate_limited = True
        summary.warn(f"Stopped early: rate limit reached for {e.endpoint}")

    # ------------------------------------------------------------------
    # Slack
    # ------------------------------------------------------------------

    async def fetch_slack(self, options: SlackFetchOptions) -> FetchSummary:
        """
        Search Slack and store matches, expanding threads when asked.

        Raises:
            ValueError: If the options give no search criterion
            AuthenticationError: If Slack rejects the token
        """
        if self.slack_client is None:
            raise ValueError("Slack client is not configured")

        query = build_slack_query(options)
        summary = FetchSummary(source="slack", query=query)
        logger.info(f"Fetching Slack messages: {query}")

        auth = await self.slack_client.authenticate()
        workspace_id = auth.workspace_id
        search_key = RateLimitKey("slack", SLACK_SEARCH, workspace_id)
        replies_key = RateLimitKey("slack", SLACK_REPLIES, workspace_id)

        s = self.settings
        self.limiter.init(search_key, s.slack_search_window, s.slack_search_max, s.slack_search_safety)
        self.limiter.init(replies_key, s.slack_replies_window, s.slack_replies_max, s.slack_replies_safety)

        try:
            matches = await self._guarded(
                search_key, lambda: self.slack_client.search_messages(query, options.limit)
            )
        except RateLimitExceeded as e:
            self._stop_on_rate_limit(summary, e)
            return summary

        fetched_at = self.clock()
        expanded: Set[Tuple[str, str]] = set()
        logger.info(f"Found {len(matches)} matching messages")

        for raw in matches:
            channel_raw = raw.get("channel") or {}
            item = f"slack:{channel_raw.get('id', '?')}/{raw.get('ts', '?')}"

            try:
                match = decode_slack_record("search_match", raw)
            except NormalizationError as e:
                logger.warning(f"Skipping {item}: {e}")
                summary.skip(item, str(e))
                continue

            thread_ts = match.thread_ts or thread_ts_from_permalink(match.permalink)
            thread_key = (match.channel.id, thread_ts or "")

            if thread_ts and thread_key in expanded:
                continue

            if options.fetch_threads and thread_ts:
                try:
                    replies = await self._guarded(
                        replies_key,
                        lambda: self.slack_client.get_thread_replies(match.channel.id, thread_ts),
                    )
                except RateLimitExceeded as e:
                    self._stop_on_rate_limit(summary, e)
                    break
                except NetworkError as e:
                    # Keep the match itself even though its thread is unavailable
                    logger.warning(f"Failed to fetch thread {thread_ts}: {e}")
                    summary.warn(f"Thread {thread_key[0]}/{thread_ts} not expanded: {e}")
                else:
                    expanded.add(thread_key)
                    summary.threads_processed += 1
                    self._store_thread(summary, replies, match.channel, workspace_id, fetched_at)
                    continue

            try:
                msg = normalize_slack_record(match, fetched_at=fetched_at)
            except NormalizationError as e:
                logger.warning(f"Skipping {item}: {e}")
                summary.skip(item, str(e))
                continue

            self._store(
                summary,
                item,
                msg,
                raw,
                user=slack_user(match.user, match.username) if match.user else None,
                channel=slack_channel(match.channel, workspace_id),
            )

        logger.info(
            f"Slack fetch done: {summary.messages_stored} stored, "
            f"{summary.threads_processed} threads, {len(summary.skipped)} skipped"
        )
        return summary

    def _store_thread(
        self,
        summary: FetchSummary,
        replies: List[Dict[str, Any]],
        channel: SlackChannelRef,
        workspace_id: str,
        fetched_at: datetime,
    ) -> None:
        channel_record = slack_channel(channel, workspace_id)
        for raw in replies:
            item = f"slack:{channel.id}/{raw.get('ts', '?')}"
            try:
                message = decode_slack_record("thread_message", raw, channel_id=channel.id)
                msg = normalize_slack_record(message, fetched_at=fetched_at)
            except NormalizationError as e:
                logger.warning(f"Skipping {item}: {e}")
                summary.skip(item, str(e))
                continue

            self._store(
                summary,
                item,
                msg,
                raw,
                user=slack_user(message.user) if message.user else None,
                channel=channel_record,
            )

    # ------------------------------------------------------------------
    # GitHub
    # ------------------------------------------------------------------

    async def fetch_github(self, options: GitHubFetchOptions) -> FetchSummary:
        """
        Search issues / pull requests and store them with their comments,
        reviews, review comments and significant timeline events.

        Raises:
            ValueError: If neither repo nor org is given
            AuthenticationError: If GitHub rejects the token
        """
        if self.github_client is None:
            raise ValueError("GitHub client is not configured")

        query = build_github_query(options)
        repo = resolve_github_repo(options)
        owner = repo.owner if repo else options.org
        summary = FetchSummary(source="github", query=query)
        logger.info(f"Fetching GitHub items: {query}")

        await self.github_client.authenticate()
        org_id = f"org_github_{owner}"
        search_key = RateLimitKey("github", GITHUB_SEARCH, org_id)
        core_key = RateLimitKey("github", GITHUB_CORE, org_id)

        s = self.settings
        self.limiter.init(search_key, s.github_search_window, s.github_search_max, s.github_search_safety)
        self.limiter.init(core_key, s.github_core_window, s.github_core_max, s.github_core_safety)

        try:
            items = await self._guarded(
                search_key, lambda: self.github_client.search_issues(query, options.limit)
            )
            fetched_at = self.clock()

            for raw in items:
                item_repo = repo or repo_from_issue(raw)
                item = f"github:{item_repo.full_name if item_repo else '?'}#{raw.get('number', '?')}"
                if item_repo is None:
                    summary.skip(item, "search result has no repository")
                    continue
                await self._fetch_github_item(summary, raw, item_repo, core_key, options, fetched_at)

            if options.include_discussions:
                if repo is None:
                    summary.warn("Discussions are only fetched for a single repository")
                else:
                    await self._fetch_discussions(summary, repo, core_key, options, fetched_at)

        except RateLimitExceeded as e:
            self._stop_on_rate_limit(summary, e)

        logger.info(
            f"GitHub fetch done: {summary.messages_stored} stored, "
            f"{summary.threads_processed} items, {len(summary.skipped)} skipped"
        )
        return summary

    def _store_github(
        self,
        summary: FetchSummary,
        item: str,
        kind: str,
        raw: Dict[str, Any],
        repo: GitHubRepoRef,
        fetched_at: datetime,
        **context: Any,
    ) -> Optional[CanonicalMessage]:
        try:
            record = decode_github_record(kind, raw, **context)
            msg = normalize_github_record(record, repo, fetched_at=fetched_at)
        except NormalizationError as e:
            logger.warning(f"Skipping {item}: {e}")
            summary.skip(item, str(e))
            return None

        # Empty reviews and insignificant timeline events are dropped on purpose
        if msg is None:
            return None

        author = getattr(record, "user", None) or getattr(record, "author", None) or getattr(record, "actor", None)
        stored = self._store(
            summary,
            item,
            msg,
            raw,
            user=github_user(author),
            channel=github_repository_channel(repo),
        )
        return msg if stored else None

    async def _fetch_children(
        self,
        summary: FetchSummary,
        item: str,
        resource: str,
        kind: str,
        call: Callable[[], Awaitable[List[Dict[str, Any]]]],
        repo: GitHubRepoRef,
        core_key: RateLimitKey,
        fetched_at: datetime,
        **context: Any,
    ) -> None:
        try:
            children = await self._guarded(core_key, call)
        except NetworkError as e:
            logger.warning(f"Failed to fetch {resource} for {item}: {e}")
            summary.skip(f"{item} {resource}", str(e))
            return

        for raw in children:
            child_item = f"{item} {kind} {raw.get('id', '?')}"
            self._store_github(summary, child_item, kind, raw, repo, fetched_at, **context)

    async def _fetch_github_item(
        self,
        summary: FetchSummary,
        raw: Dict[str, Any],
        repo: GitHubRepoRef,
        core_key: RateLimitKey,
        options: GitHubFetchOptions,
        fetched_at: datetime,
    ) -> None:
        is_pr = "pull_request" in raw
        number = raw.get("number")
        item = f"github:{repo.full_name}#{number}"

        root = self._store_github(
            summary, item, "pull_request" if is_pr else "issue", raw, repo, fetched_at
        )
        if root is None:
            return
        summary.threads_processed += 1

        client = self.github_client
        since = options.since

        await self._fetch_children(
            summary, item, "comments", "comment",
            lambda: client.get_issue_comments(repo, number, since=since),
            repo, core_key, fetched_at,
            parent_number=number, parent_is_pr=is_pr,
        )

        if is_pr:
            await self._fetch_children(
                summary, item, "review comments", "review_comment",
                lambda: client.get_review_comments(repo, number, since=since),
                repo, core_key, fetched_at,
                parent_number=number,
            )
            await self._fetch_children(
                summary, item, "reviews", "review",
                lambda: client.get_reviews(repo, number, since=since),
                repo, core_key, fetched_at,
                parent_number=number,
            )

        if options.include_timeline:
            await self._fetch_children(
                summary, item, "timeline", "timeline_event",
                lambda: client.get_timeline(repo, number, since=since),
                repo, core_key, fetched_at,
                parent_number=number, parent_is_pr=is_pr,
            )

    async def _fetch_discussions(
        self,
        summary: FetchSummary,
        repo: GitHubRepoRef,
        core_key: RateLimitKey,
        options: GitHubFetchOptions,
        fetched_at: datetime,
    ) -> None:
        client = self.github_client
        try:
            discussions = await self._guarded(
                core_key,
                lambda: client.search_discussions(repo, since=options.since, limit=options.limit),
            )
        except NetworkError as e:
            logger.warning(f"Failed to list discussions for {repo.full_name}: {e}")
            summary.skip(f"github:{repo.full_name} discussions", str(e))
            return

        for raw in discussions:
            number = raw.get("number")
            item = f"github:{repo.full_name}/discussions/{number}"
            if self._store_github(summary, item, "discussion", raw, repo, fetched_at) is None:
                continue
            summary.threads_processed += 1

            await self._fetch_children(
                summary, item, "discussion comments", "discussion_comment",
                lambda: client.get_discussion_comments(repo, number, since=options.since),
                repo, core_key, fetched_at,
                parent_number=number,
            )
