"""
Slack API Client

Responsibilities:
- auth.test: Validate the configured user token
- search.messages: Run a Slack search query
- conversations.replies: Expand a thread
- Translate SlackApiError into the ThreadMine error taxonomy

Returns raw message dictionaries; decoding and normalization happen later.
"""

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError
from threadmine.config import Settings, get_settings
from threadmine.errors import AuthenticationError, NetworkError, RateLimitExceeded
from threadmine.integrations.slack.models import SlackAuth
from typing import List, Optional, Dict, Any
import asyncio
import logging

logger = logging.getLogger(__name__)

AUTH_ERRORS = {"invalid_auth", "not_authed", "account_inactive", "token_revoked", "token_expired"}

SEARCH_PAGE_SIZE = 100


class SlackClient:
    """Slack Web API client for search and thread expansion."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[WebClient] = None):
        self.settings = settings or get_settings()
        self.client = client or WebClient(
            token=self.settings.slack_token,
            timeout=self.settings.request_timeout_seconds,
        )

    def _translate(self, e: SlackApiError, endpoint: str) -> Exception:
        error = e.response.get("error", "unknown_error") if e.response is not None else "unknown_error"
        if error in AUTH_ERRORS:
            return AuthenticationError(f"Slack rejected the token: {error}")
        if error == "ratelimited":
            return RateLimitExceeded(endpoint, f"Slack rate limited {endpoint}")
        return NetworkError(f"Slack {endpoint} failed: {error}")

    async def authenticate(self) -> SlackAuth:
        """
        Validate the token with auth.test.

        Raises:
            AuthenticationError: If no token is configured or Slack rejects it
        """
        if not self.settings.slack_token:
            raise AuthenticationError("SLACK_TOKEN is not configured")

        try:
            result = await asyncio.to_thread(self.client.auth_test)
        except SlackApiError as e:
            raise self._translate(e, "auth.test") from e

        auth = SlackAuth(
            team_id=result.get("team_id", ""),
            team=result.get("team", ""),
            user_id=result.get("user_id", ""),
            user=result.get("user", ""),
        )
        logger.info(f"Authenticated to Slack workspace {auth.team} as {auth.user}")
        return auth

    async def search_messages(self, query: str, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Search messages, newest first.

        Args:
            query: Slack search query (from:, in:, after:, before:, free text)
            limit: Maximum number of matches to return

        Returns:
            List of raw search match dictionaries
        """
        matches: List[Dict[str, Any]] = []
        page = 1

        try:
            while len(matches) < limit:
                logger.debug(f"Searching Slack: {query!r} page {page}")
                result = await asyncio.to_thread(
                    self.client.search_messages,
                    query=query,
                    count=min(limit - len(matches), SEARCH_PAGE_SIZE),
                    page=page,
                    sort="timestamp",
                    sort_dir="desc",
                )
                messages = result.get("messages", {}) or {}
                matches.extend(messages.get("matches", []) or [])

                pages = (messages.get("paging") or {}).get("pages", 1)
                if page >= pages:
                    break
                page += 1

        except SlackApiError as e:
            logger.error(f"Slack API error: {e.response.get('error') if e.response is not None else e}")
            raise self._translate(e, "search.messages") from e

        logger.info(f"Slack search returned {len(matches[:limit])} matches")
        return matches[:limit]

    async def get_thread_replies(
        self, channel_id: str, thread_ts: str, limit: int = 1000
    ) -> List[Dict[str, Any]]:
        """
        Fetch all messages in a thread.

        Args:
            channel_id: Slack channel ID
            thread_ts: Thread timestamp

        Returns:
            List of raw message dictionaries (including the parent message)
        """
        messages: List[Dict[str, Any]] = []
        cursor = None

        try:
            while True:
                params: Dict[str, Any] = {"channel": channel_id, "ts": thread_ts, "limit": min(limit, 1000)}
                if cursor:
                    params["cursor"] = cursor

                result = await asyncio.to_thread(self.client.conversations_replies, **params)
                messages.extend(result.get("messages", []) or [])

                cursor = (result.get("response_metadata") or {}).get("next_cursor")
                if not cursor or len(messages) >= limit:
                    break

        except SlackApiError as e:
            logger.error(f"Slack API error fetching thread {thread_ts}: {e.response.get('error') if e.response is not None else e}")
            raise self._translate(e, "conversations.replies") from e

        logger.debug(f"Fetched {len(messages)} messages from thread {thread_ts}")
        return messages[:limit]
