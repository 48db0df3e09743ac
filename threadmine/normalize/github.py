"""
GitHub Normalizer

Maps decoded GitHub records to the canonical message schema.

Threading is single level: the issue, pull request or discussion body is the
thread root and every comment, review, review comment and significant
timeline event is its direct child. Discussion replies are the exception and
keep the comment they answer as parent.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from threadmine.errors import NormalizationError
from threadmine.integrations.github.models import (
    GitHubComment,
    GitHubDiscussion,
    GitHubDiscussionComment,
    GitHubIssue,
    GitHubPullRequest,
    GitHubRepoRef,
    GitHubReview,
    GitHubReviewComment,
    GitHubTimelineEvent,
    GitHubUserRef,
)
from threadmine.models.message import CanonicalMessage, Channel, SourceType, User
from threadmine.normalize.extract import (
    extract_code_blocks,
    extract_mentions,
    extract_urls,
    normalize_github_markdown,
)

logger = logging.getLogger(__name__)

GHOST_LOGIN = "ghost"


def parse_github_time(value: Optional[str], record_kind: str) -> datetime:
    """
    Parse a GitHub ISO 8601 timestamp ("2024-05-01T12:00:00Z").

    Raises:
        NormalizationError: If the value is missing or malformed
    """
    if not value:
        raise NormalizationError(record_kind, "missing timestamp")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise NormalizationError(record_kind, f"invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def repo_prefix(repo: GitHubRepoRef) -> str:
    return f"msg_github_{repo.owner}_{repo.name}"


def root_message_id(repo: GitHubRepoRef, number: int, kind: str) -> str:
    """Id of the thread root: kind is issue, pr or discussion."""
    return f"{repo_prefix(repo)}_{kind}_{number}"


def github_user_id(login: str) -> str:
    return f"user_github_{login}"


def github_channel_id(repo: GitHubRepoRef) -> str:
    return f"chan_github_{repo.owner}_{repo.name}"


def _login(user: Optional[GitHubUserRef]) -> str:
    return user.login if user else GHOST_LOGIN


def _message(
    *,
    repo: GitHubRepoRef,
    msg_id: str,
    source_id: str,
    timestamp: datetime,
    author: str,
    content: str,
    thread_id: str,
    parent_id: Optional[str],
    metadata: Dict[str, Any],
    fetched_at: Optional[datetime],
) -> CanonicalMessage:
    return CanonicalMessage(
        id=msg_id,
        source_type=SourceType.GITHUB,
        source_id=source_id,
        timestamp=timestamp,
        author_id=github_user_id(author),
        content=content,
        channel_id=github_channel_id(repo),
        thread_id=thread_id,
        parent_id=parent_id,
        is_thread_root=parent_id is None,
        mentions=extract_mentions(content),
        urls=extract_urls(content),
        code_blocks=extract_code_blocks(content),
        source_metadata={k: v for k, v in metadata.items() if v not in (None, "", [])},
        fetched_at=fetched_at,
        normalized_at=datetime.now(timezone.utc),
    )


def _title_and_body(title: str, body: Optional[str]) -> str:
    body = normalize_github_markdown(body or "")
    return f"{title}\n\n{body}" if body else title


def normalize_issue(
    issue: GitHubIssue, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    """Normalize an issue or pull request body as a thread root."""
    is_pr = isinstance(issue, GitHubPullRequest)
    kind = "pr" if is_pr else "issue"
    msg_id = root_message_id(repo, issue.number, kind)
    path = "pull" if is_pr else "issues"

    metadata = {
        "number": issue.number,
        "title": issue.title,
        "state": issue.state,
        "html_url": issue.html_url,
        "labels": [label.name for label in issue.labels],
        "comments": issue.comments,
        "updated_at": issue.updated_at,
        "closed_at": issue.closed_at,
        "is_pull_request": is_pr,
    }
    if is_pr:
        metadata["merged_at"] = issue.merged_at
        metadata["draft"] = issue.draft

    return _message(
        repo=repo,
        msg_id=msg_id,
        source_id=f"{repo.full_name}/{path}/{issue.number}",
        timestamp=parse_github_time(issue.created_at, issue.kind),
        author=_login(issue.user),
        content=_title_and_body(issue.title, issue.body),
        thread_id=msg_id,
        parent_id=None,
        metadata=metadata,
        fetched_at=fetched_at,
    )


def normalize_comment(
    comment: GitHubComment, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    kind = "pr" if comment.parent_is_pr else "issue"
    root_id = root_message_id(repo, comment.parent_number, kind)
    path = "pull" if comment.parent_is_pr else "issues"

    return _message(
        repo=repo,
        msg_id=f"{root_id}_comment_{comment.id}",
        source_id=f"{repo.full_name}/{path}/{comment.parent_number}#issuecomment-{comment.id}",
        timestamp=parse_github_time(comment.created_at, comment.kind),
        author=_login(comment.user),
        content=normalize_github_markdown(comment.body or ""),
        thread_id=root_id,
        parent_id=root_id,
        metadata={
            "html_url": comment.html_url,
            "author_association": comment.author_association,
            "updated_at": comment.updated_at,
        },
        fetched_at=fetched_at,
    )


def normalize_review(
    review: GitHubReview, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> Optional[CanonicalMessage]:
    """
    Normalize a pull request review as "[STATE] body".

    Returns:
        None for reviews without a body (bare approvals carry no text)
    """
    body = normalize_github_markdown(review.body or "")
    if not body:
        return None

    root_id = root_message_id(repo, review.parent_number, "pr")
    return _message(
        repo=repo,
        msg_id=f"{root_id}_review_{review.id}",
        source_id=f"{repo.full_name}/pull/{review.parent_number}#pullrequestreview-{review.id}",
        timestamp=parse_github_time(review.submitted_at, review.kind),
        author=_login(review.user),
        content=f"[{review.state}] {body}",
        thread_id=root_id,
        parent_id=root_id,
        metadata={
            "state": review.state,
            "html_url": review.html_url,
            "commit_id": review.commit_id,
        },
        fetched_at=fetched_at,
    )


def normalize_review_comment(
    comment: GitHubReviewComment, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    """Normalize an inline diff comment as "[path:line] body"."""
    root_id = root_message_id(repo, comment.parent_number, "pr")
    line = comment.line or comment.original_line
    location = f"{comment.path}:{line}" if line else comment.path
    body = normalize_github_markdown(comment.body or "")

    return _message(
        repo=repo,
        msg_id=f"{root_id}_review_comment_{comment.id}",
        source_id=f"{repo.full_name}/pull/{comment.parent_number}#discussion_r{comment.id}",
        timestamp=parse_github_time(comment.created_at, comment.kind),
        author=_login(comment.user),
        content=f"[{location}] {body}",
        thread_id=root_id,
        parent_id=root_id,
        metadata={
            "path": comment.path,
            "line": line,
            "html_url": comment.html_url,
            "in_reply_to_id": comment.in_reply_to_id,
        },
        fetched_at=fetched_at,
    )


def _timeline_content(event: GitHubTimelineEvent) -> str:
    name = event.event
    if event.body:
        return f"[{name}] {normalize_github_markdown(event.body)}"
    if event.label is not None:
        return f"[{name}] Label: {event.label.name}"
    if event.assignee is not None:
        return f"[{name}] Assignee: {event.assignee.login}"
    if event.rename:
        return f"[{name}] Title: {event.rename.get('from', '')} -> {event.rename.get('to', '')}"
    if event.commit_id:
        return f"[{name}] Commit: {event.commit_id[:7]}"
    if event.source and (event.source.get("issue") or {}).get("number"):
        return f"[{name}] Referenced from #{event.source['issue']['number']}"
    subject = "Pull request" if event.parent_is_pr else "Issue"
    return f"[{name}] {subject} {name}"


def _fallback_event_id(event: GitHubTimelineEvent, timestamp: datetime) -> str:
    # cross-referenced events carry no id of their own; the referencing
    # issue tells same-second events apart
    issue = (event.source or {}).get("issue") or {}
    if issue.get("number"):
        ref = str(issue["number"])
        full_name = (issue.get("repository") or {}).get("full_name")
        if full_name:
            ref = f"{full_name.replace('/', '_')}_{ref}"
    else:
        ref = hashlib.sha1(event.model_dump_json().encode()).hexdigest()[:10]
    return f"{event.event}_{int(timestamp.timestamp())}_{ref}"


def normalize_timeline_event(
    event: GitHubTimelineEvent, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> Optional[CanonicalMessage]:
    """
    Normalize a significant timeline event.

    Returns:
        None for events outside the significant set
    """
    if not event.is_significant:
        return None

    timestamp = parse_github_time(event.created_at, event.kind)
    event_id = event.id or event.node_id or _fallback_event_id(event, timestamp)

    kind = "pr" if event.parent_is_pr else "issue"
    root_id = root_message_id(repo, event.parent_number, kind)
    path = "pull" if event.parent_is_pr else "issues"

    return _message(
        repo=repo,
        msg_id=f"{root_id}_timeline_{event_id}",
        source_id=f"{repo.full_name}/{path}/{event.parent_number}#event-{event_id}",
        timestamp=timestamp,
        author=_login(event.actor),
        content=_timeline_content(event),
        thread_id=root_id,
        parent_id=root_id,
        metadata={
            "event": event.event,
            "label": event.label.name if event.label else None,
            "assignee": event.assignee.login if event.assignee else None,
            "commit_id": event.commit_id,
        },
        fetched_at=fetched_at,
    )


def normalize_discussion(
    discussion: GitHubDiscussion, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    msg_id = root_message_id(repo, discussion.number, "discussion")
    content = _title_and_body(discussion.title, discussion.body)
    if discussion.category:
        content = f"[{discussion.category}] {content}"

    return _message(
        repo=repo,
        msg_id=msg_id,
        source_id=f"{repo.full_name}/discussions/{discussion.number}",
        timestamp=parse_github_time(discussion.created_at, discussion.kind),
        author=_login(discussion.author),
        content=content,
        thread_id=msg_id,
        parent_id=None,
        metadata={
            "number": discussion.number,
            "title": discussion.title,
            "category": discussion.category,
            "url": discussion.url,
            "updated_at": discussion.updated_at,
        },
        fetched_at=fetched_at,
    )


def normalize_discussion_comment(
    comment: GitHubDiscussionComment, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> CanonicalMessage:
    """Normalize a discussion comment; replies point at the comment they answer."""
    if not comment.id:
        raise NormalizationError(comment.kind, "missing comment id")

    root_id = root_message_id(repo, comment.parent_number, "discussion")
    parent_id = f"{root_id}_comment_{comment.reply_to}" if comment.reply_to else root_id

    return _message(
        repo=repo,
        msg_id=f"{root_id}_comment_{comment.id}",
        source_id=f"{repo.full_name}/discussions/{comment.parent_number}#discussioncomment-{comment.id}",
        timestamp=parse_github_time(comment.created_at, comment.kind),
        author=_login(comment.author),
        content=normalize_github_markdown(comment.body or ""),
        thread_id=root_id,
        parent_id=parent_id,
        metadata={"url": comment.url, "reply_to": comment.reply_to},
        fetched_at=fetched_at,
    )


NORMALIZERS = {
    "issue": normalize_issue,
    "pull_request": normalize_issue,
    "comment": normalize_comment,
    "review": normalize_review,
    "review_comment": normalize_review_comment,
    "timeline_event": normalize_timeline_event,
    "discussion": normalize_discussion,
    "discussion_comment": normalize_discussion_comment,
}


def normalize_github_record(
    record, repo: GitHubRepoRef, fetched_at: Optional[datetime] = None
) -> Optional[CanonicalMessage]:
    """
    Normalize any decoded GitHub record by its kind.

    Returns:
        The canonical message, or None when the record is intentionally
        dropped (empty reviews, insignificant timeline events)
    """
    return NORMALIZERS[record.kind](record, repo, fetched_at=fetched_at)


def github_user(user: Optional[GitHubUserRef]) -> User:
    login = _login(user)
    return User(
        id=github_user_id(login),
        source_type=SourceType.GITHUB,
        source_id=login,
        display_name=(user.name if user and user.name else login),
        email=user.email if user else None,
        avatar_url=user.avatar_url if user else None,
    )


def github_repository_channel(repo: GitHubRepoRef, is_private: bool = False) -> Channel:
    return Channel(
        id=github_channel_id(repo),
        source_type=SourceType.GITHUB,
        source_id=repo.full_name,
        name=repo.full_name,
        display_name=repo.full_name,
        type="repository",
        is_private=is_private,
        parent_space=f"org_github_{repo.owner}",
    )
