"""
Fetch Options and Search Query Builders

Options are immutable values built once (from the HTTP request or the YAML
defaults) and passed to the orchestrator.
"""

from datetime import datetime, timedelta
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from threadmine.integrations.github.models import GitHubRepoRef
from threadmine.utils.dates import format_day

# Slack channel ids: public (C), private/group (G), direct message (D)
SLACK_CHANNEL_ID_PREFIXES = ("C", "D", "G")


class SlackFetchOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: Optional[str] = None
    channel: Optional[str] = None
    search: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: int = Field(100, ge=1, le=1000)
    fetch_threads: bool = True


class GitHubFetchOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: Optional[str] = None
    org: Optional[str] = None
    author: Optional[str] = None
    commenter: Optional[str] = None
    reviewed_by: Optional[str] = None
    label: Optional[str] = None
    search: Optional[str] = None
    since: Optional[datetime] = None
    kind: Optional[Literal["issue", "pr"]] = None
    limit: int = Field(50, ge=1, le=1000)
    include_timeline: bool = True
    include_discussions: bool = False


def _looks_like_channel_id(channel: str) -> bool:
    return channel[0] in SLACK_CHANNEL_ID_PREFIXES and channel[1:].isalnum() and channel.isupper()


def build_slack_query(options: SlackFetchOptions) -> str:
    """
    Build a search.messages query.

    Slack's after:/before: are exclusive, so the dates are widened by one
    day on each side.

    Raises:
        ValueError: If no user, channel, text or date criterion is given
    """
    parts = []

    if options.user:
        user = options.user
        parts.append(f"from:{user}" if user.startswith("@") else f"from:@{user}")

    if options.channel:
        channel = options.channel
        if channel.startswith(("#", "@")) or _looks_like_channel_id(channel):
            parts.append(f"in:{channel}")
        else:
            parts.append(f"in:#{channel}")

    if options.search:
        parts.append(options.search)

    if options.since is not None:
        parts.append(f"after:{format_day(options.since - timedelta(days=1))}")

    if options.until is not None:
        parts.append(f"before:{format_day(options.until + timedelta(days=1))}")

    if not parts:
        raise ValueError("Slack search needs at least one of user, channel, search, since or until")

    return " ".join(parts)


def resolve_github_repo(options: GitHubFetchOptions) -> Optional[GitHubRepoRef]:
    """
    Repository named by the options, if any.

    Accepts repo="owner/repo", or repo="repo" together with org="owner".
    """
    if not options.repo:
        return None
    if "/" in options.repo:
        return GitHubRepoRef.parse(options.repo)
    if options.org:
        return GitHubRepoRef(owner=options.org, name=options.repo)
    raise ValueError(f"Repository must be owner/repo or combined with org: {options.repo}")


def build_github_query(options: GitHubFetchOptions) -> str:
    """
    Build an issue/PR search query.

    Raises:
        ValueError: If neither a repository nor an organization is given
    """
    repo = resolve_github_repo(options)
    if repo is not None:
        parts = [f"repo:{repo.full_name}"]
    elif options.org:
        parts = [f"org:{options.org}"]
    else:
        raise ValueError("GitHub search needs a repo (owner/repo) or an org")

    if options.kind == "issue":
        parts.append("is:issue")
    elif options.kind == "pr":
        parts.append("is:pr")
    if options.author:
        parts.append(f"author:{options.author}")
    if options.commenter:
        parts.append(f"commenter:{options.commenter}")
    if options.reviewed_by:
        parts.append(f"reviewed-by:{options.reviewed_by}")
    if options.label:
        label = options.label
        parts.append(f'label:"{label}"' if " " in label else f"label:{label}")
    if options.search:
        parts.append(options.search)
    if options.since is not None:
        parts.append(f"updated:>={format_day(options.since)}")

    return " ".join(parts)


def repo_from_issue(raw: dict) -> Optional[GitHubRepoRef]:
    """Repository of a search result, from its repository_url."""
    url = raw.get("repository_url") or ""
    marker = "/repos/"
    if marker not in url:
        return None
    return GitHubRepoRef.parse(url.split(marker, 1)[1])
