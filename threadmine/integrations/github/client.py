"""
GitHub API Client

Responsibilities:
- Token validation
- Issue / pull request search
- Per-item sub-resources: comments, reviews, review comments, timeline
- Discussions through the GraphQL API (not exposed by PyGithub)
- Cache-aside over the raw snapshot cache for sub-resources

Returns raw payload dictionaries; decoding and normalization happen later.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from github import Auth, Github
from github.GithubException import (
    BadCredentialsException,
    GithubException,
    RateLimitExceededException,
)
from github.Repository import Repository

from threadmine.config import Settings, get_settings
from threadmine.errors import AuthenticationError, NetworkError, RateLimitExceeded
from threadmine.integrations.github.models import GitHubRepoRef
from threadmine.storage.cache import SnapshotCache

logger = logging.getLogger(__name__)

CORE_ENDPOINT = "github.core"
SEARCH_ENDPOINT = "github.search"

DISCUSSIONS_QUERY = """
query($owner: String!, $name: String!, $first: Int!) {
  repository(owner: $owner, name: $name) {
    discussions(first: $first, orderBy: {field: UPDATED_AT, direction: DESC}) {
      nodes {
        number
        title
        body
        url
        createdAt
        updatedAt
        author { login avatarUrl }
        category { name }
      }
    }
  }
}
"""

DISCUSSION_COMMENTS_QUERY = """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    discussion(number: $number) {
      comments(first: 100) {
        nodes {
          id
          databaseId
          body
          url
          createdAt
          author { login avatarUrl }
          replies(first: 100) {
            nodes {
              id
              databaseId
              body
              url
              createdAt
              author { login avatarUrl }
            }
          }
        }
      }
    }
  }
}
"""


def _graphql_author(node: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not node or not node.get("login"):
        return None
    return {"login": node["login"], "avatar_url": node.get("avatarUrl")}


def _discussion_comment(node: Dict[str, Any], reply_to: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": str(node.get("databaseId") or node.get("id")),
        "node_id": node.get("id"),
        "body": node.get("body"),
        "url": node.get("url", ""),
        "created_at": node.get("createdAt"),
        "author": _graphql_author(node.get("author")),
        "reply_to": reply_to,
    }


class GitHubClient:
    """GitHub API client wrapper."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[Github] = None,
        cache: Optional[SnapshotCache] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings or get_settings()
        if client is not None:
            self.client = client
        elif self.settings.github_token:
            self.client = Github(
                auth=Auth.Token(self.settings.github_token),
                base_url=self.settings.github_api_url,
                timeout=self.settings.request_timeout_seconds,
            )
        else:
            self.client = Github(
                base_url=self.settings.github_api_url,
                timeout=self.settings.request_timeout_seconds,
            )
        self.cache = cache
        self.session = session or requests.Session()
        self._repos: Dict[str, Repository] = {}

    def _translate(self, e: GithubException, endpoint: str) -> Exception:
        if isinstance(e, BadCredentialsException) or e.status == 401:
            return AuthenticationError(f"GitHub rejected the token: {e.data}")
        if isinstance(e, RateLimitExceededException) or (
            e.status == 403 and "rate limit" in str(e.data).lower()
        ):
            return RateLimitExceeded(endpoint, f"GitHub rate limited {endpoint}")
        return NetworkError(f"GitHub {endpoint} request failed ({e.status}): {e.data}")

    async def _call(self, endpoint: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except GithubException as e:
            logger.error(f"GitHub API error on {endpoint}: {e}")
            raise self._translate(e, endpoint) from e
        except requests.RequestException as e:
            raise NetworkError(f"GitHub {endpoint} request failed: {e}") from e

    def _repo(self, repo: GitHubRepoRef) -> Repository:
        if repo.full_name not in self._repos:
            self._repos[repo.full_name] = self.client.get_repo(repo.full_name)
        return self._repos[repo.full_name]

    async def authenticate(self) -> str:
        """
        Validate the token.

        Returns:
            Login of the authenticated user
        """
        if not self.settings.github_token:
            raise AuthenticationError("GITHUB_TOKEN is not configured")

        login = await self._call(CORE_ENDPOINT, lambda: self.client.get_user().login)
        logger.info(f"Authenticated to GitHub as {login}")
        return login

    async def search_issues(self, query: str, limit: int = 50) -> List[Dict[str, Any]]:
        """
        Search issues and pull requests, most recently updated first.

        Returns:
            Raw issue payloads (pull requests carry a `pull_request` key)
        """

        def _search() -> List[Dict[str, Any]]:
            results = self.client.search_issues(query=query, sort="updated", order="desc")
            return [issue.raw_data for issue in results[:limit]]

        logger.info(f"Searching GitHub: {query!r}")
        items = await self._call(SEARCH_ENDPOINT, _search)
        logger.info(f"GitHub search returned {len(items)} items")
        return items

    async def _cached(
        self,
        key: str,
        fetch: Callable[[], List[Dict[str, Any]]],
        since: Optional[datetime] = None,
        endpoint: str = CORE_ENDPOINT,
    ) -> List[Dict[str, Any]]:
        if self.cache is not None:
            cached = self.cache.get("github", key, since=since)
            if cached is not None:
                return cached

        data = await self._call(endpoint, fetch)
        if self.cache is not None:
            self.cache.put("github", key, data, since=since)
        return data

    async def get_issue_comments(
        self, repo: GitHubRepoRef, number: int, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Conversation comments on an issue or pull request."""
        return await self._cached(
            f"{repo.owner}_{repo.name}_{number}_comments",
            lambda: [c.raw_data for c in self._repo(repo).get_issue(number).get_comments()],
            since=since,
        )

    async def get_reviews(
        self, repo: GitHubRepoRef, number: int, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        return await self._cached(
            f"{repo.owner}_{repo.name}_{number}_reviews",
            lambda: [r.raw_data for r in self._repo(repo).get_pull(number).get_reviews()],
            since=since,
        )

    async def get_review_comments(
        self, repo: GitHubRepoRef, number: int, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Inline diff comments on a pull request."""
        return await self._cached(
            f"{repo.owner}_{repo.name}_{number}_review_comments",
            lambda: [c.raw_data for c in self._repo(repo).get_pull(number).get_review_comments()],
            since=since,
        )

    async def get_timeline(
        self, repo: GitHubRepoRef, number: int, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        return await self._cached(
            f"{repo.owner}_{repo.name}_{number}_timeline",
            lambda: [e.raw_data for e in self._repo(repo).get_issue(number).get_timeline()],
            since=since,
        )

    def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.post(
            self.settings.github_graphql_url,
            json={"query": query, "variables": variables},
            headers={"Authorization": f"Bearer {self.settings.github_token}"},
            timeout=self.settings.request_timeout_seconds,
        )
        if response.status_code == 401:
            raise AuthenticationError("GitHub rejected the token")
        if response.status_code == 403 and "rate limit" in response.text.lower():
            raise RateLimitExceeded(CORE_ENDPOINT, "GitHub rate limited the GraphQL API")
        if response.status_code >= 400:
            raise NetworkError(f"GitHub GraphQL request failed ({response.status_code})")

        payload = response.json()
        if payload.get("errors"):
            message = payload["errors"][0].get("message", "unknown error")
            raise NetworkError(f"GitHub GraphQL error: {message}")
        return payload.get("data") or {}

    async def search_discussions(
        self, repo: GitHubRepoRef, since: Optional[datetime] = None, limit: int = 50
    ) -> List[Dict[str, Any]]:
        """
        List discussions updated since the cutoff.

        Returns:
            Discussion payloads with snake_case keys
        """

        def _fetch() -> List[Dict[str, Any]]:
            data = self._graphql(
                DISCUSSIONS_QUERY,
                {"owner": repo.owner, "name": repo.name, "first": min(limit, 100)},
            )
            nodes = ((data.get("repository") or {}).get("discussions") or {}).get("nodes") or []
            return [
                {
                    "number": node["number"],
                    "title": node.get("title", ""),
                    "body": node.get("body"),
                    "url": node.get("url", ""),
                    "created_at": node.get("createdAt"),
                    "updated_at": node.get("updatedAt"),
                    "author": _graphql_author(node.get("author")),
                    "category": (node.get("category") or {}).get("name"),
                }
                for node in nodes
                if node
            ]

        discussions = await self._call(CORE_ENDPOINT, _fetch)
        if since is not None:
            discussions = [
                d for d in discussions
                if not d.get("updated_at")
                or datetime.fromisoformat(d["updated_at"].replace("Z", "+00:00")) >= since
            ]
        logger.info(f"Found {len(discussions)} discussions in {repo.full_name}")
        return discussions

    async def get_discussion_comments(
        self, repo: GitHubRepoRef, number: int, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Comments on a discussion, flattened.

        Replies follow the comment they answer and carry its id in `reply_to`.
        """

        def _fetch() -> List[Dict[str, Any]]:
            data = self._graphql(
                DISCUSSION_COMMENTS_QUERY,
                {"owner": repo.owner, "name": repo.name, "number": number},
            )
            discussion = (data.get("repository") or {}).get("discussion") or {}
            flattened = []
            for node in (discussion.get("comments") or {}).get("nodes") or []:
                comment = _discussion_comment(node)
                flattened.append(comment)
                for reply in (node.get("replies") or {}).get("nodes") or []:
                    flattened.append(_discussion_comment(reply, reply_to=comment["id"]))
            return flattened

        return await self._cached(
            f"{repo.owner}_{repo.name}_discussion_{number}_comments", _fetch, since=since
        )

