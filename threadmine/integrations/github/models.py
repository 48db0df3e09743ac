"""
GitHub Native Data Models

REST (and GraphQL, for discussions) payloads decoded into one variant per
record kind. Child records carry the number and kind of the issue, pull
request or discussion they belong to, since GitHub's payloads do not.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from threadmine.errors import NormalizationError

# Timeline events worth keeping; the rest (subscribed, mentioned, ...) are noise
SIGNIFICANT_TIMELINE_EVENTS = frozenset(
    {
        "closed",
        "reopened",
        "merged",
        "labeled",
        "unlabeled",
        "assigned",
        "unassigned",
        "cross-referenced",
        "referenced",
        "renamed",
        "review_requested",
        "ready_for_review",
        "convert_to_draft",
        "locked",
        "unlocked",
    }
)


class GitHubRepoRef(BaseModel):
    """Repository a record was fetched from."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, full_name: str) -> "GitHubRepoRef":
        """Parse an "owner/repo" string."""
        owner, sep, name = (full_name or "").partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Invalid repository, expected owner/repo: {full_name}")
        return cls(owner=owner, name=name)


class GitHubUserRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str
    id: Optional[int] = None
    avatar_url: Optional[str] = None
    type: str = "User"
    name: Optional[str] = None
    email: Optional[str] = None


class GitHubLabel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    color: Optional[str] = None


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow")


class GitHubIssue(_Record):
    kind: Literal["issue"] = "issue"
    number: int
    title: str = ""
    body: Optional[str] = None
    user: Optional[GitHubUserRef] = None
    state: str = "open"
    html_url: str = ""
    labels: List[GitHubLabel] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    closed_at: Optional[str] = None
    comments: int = 0


class GitHubPullRequest(GitHubIssue):
    kind: Literal["pull_request"] = "pull_request"
    merged_at: Optional[str] = None
    draft: bool = False


class GitHubComment(_Record):
    """Issue or pull request conversation comment."""

    kind: Literal["comment"] = "comment"
    parent_number: int
    parent_is_pr: bool = False
    id: int
    body: Optional[str] = None
    user: Optional[GitHubUserRef] = None
    html_url: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    author_association: Optional[str] = None


class GitHubReview(_Record):
    kind: Literal["review"] = "review"
    parent_number: int
    id: int
    body: Optional[str] = None
    user: Optional[GitHubUserRef] = None
    state: str = ""
    html_url: str = ""
    submitted_at: Optional[str] = None
    commit_id: Optional[str] = None


class GitHubReviewComment(_Record):
    """Inline comment on a pull request diff."""

    kind: Literal["review_comment"] = "review_comment"
    parent_number: int
    id: int
    body: Optional[str] = None
    user: Optional[GitHubUserRef] = None
    path: str = ""
    line: Optional[int] = None
    original_line: Optional[int] = None
    html_url: str = ""
    created_at: Optional[str] = None
    in_reply_to_id: Optional[int] = None


class GitHubTimelineEvent(_Record):
    kind: Literal["timeline_event"] = "timeline_event"
    parent_number: int
    parent_is_pr: bool = False
    id: Optional[int] = None
    node_id: Optional[str] = None
    event: str
    actor: Optional[GitHubUserRef] = None
    created_at: Optional[str] = None
    body: Optional[str] = None
    label: Optional[GitHubLabel] = None
    assignee: Optional[GitHubUserRef] = None
    commit_id: Optional[str] = None
    rename: Optional[Dict[str, Any]] = None
    source: Optional[Dict[str, Any]] = None

    @property
    def is_significant(self) -> bool:
        return self.event in SIGNIFICANT_TIMELINE_EVENTS


class GitHubDiscussion(_Record):
    kind: Literal["discussion"] = "discussion"
    number: int
    title: str = ""
    body: Optional[str] = None
    author: Optional[GitHubUserRef] = None
    url: str = ""
    category: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class GitHubDiscussionComment(_Record):
    """Discussion comment or a reply to one (reply_to set)."""

    kind: Literal["discussion_comment"] = "discussion_comment"
    parent_number: int
    id: str
    body: Optional[str] = None
    author: Optional[GitHubUserRef] = None
    url: str = ""
    created_at: Optional[str] = None
    reply_to: Optional[str] = None


GitHubRecord = Annotated[
    Union[
        GitHubIssue,
        GitHubPullRequest,
        GitHubComment,
        GitHubReview,
        GitHubReviewComment,
        GitHubTimelineEvent,
        GitHubDiscussion,
        GitHubDiscussionComment,
    ],
    Field(discriminator="kind"),
]

RECORD_TYPES = {
    "issue": GitHubIssue,
    "pull_request": GitHubPullRequest,
    "comment": GitHubComment,
    "review": GitHubReview,
    "review_comment": GitHubReviewComment,
    "timeline_event": GitHubTimelineEvent,
    "discussion": GitHubDiscussion,
    "discussion_comment": GitHubDiscussionComment,
}


def decode_github_record(kind: str, raw: Dict[str, Any], **context: Any):
    """
    Decode a raw payload into its GitHub variant.

    Args:
        kind: Record kind (issue, comment, review, ...)
        raw: Raw payload dictionary
        context: Extra fields the payload lacks (parent_number, parent_is_pr)

    Raises:
        NormalizationError: If the payload does not fit the variant
    """
    model = RECORD_TYPES.get(kind)
    if model is None:
        raise NormalizationError(kind, "unknown GitHub record kind")

    data = {**raw, **context, "kind": kind}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise NormalizationError(kind, f"invalid payload: {e.errors()[0]['msg']}") from e
