# GitHub integration
from threadmine.integrations.github.client import GitHubClient
from threadmine.integrations.github.models import (
    GitHubComment,
    GitHubDiscussion,
    GitHubDiscussionComment,
    GitHubIssue,
    GitHubPullRequest,
    GitHubRecord,
    GitHubRepoRef,
    GitHubReview,
    GitHubReviewComment,
    GitHubTimelineEvent,
    GitHubUserRef,
    SIGNIFICANT_TIMELINE_EVENTS,
    decode_github_record,
)

__all__ = [
    "GitHubClient",
    "GitHubComment",
    "GitHubDiscussion",
    "GitHubDiscussionComment",
    "GitHubIssue",
    "GitHubPullRequest",
    "GitHubRecord",
    "GitHubRepoRef",
    "GitHubReview",
    "GitHubReviewComment",
    "GitHubTimelineEvent",
    "GitHubUserRef",
    "SIGNIFICANT_TIMELINE_EVENTS",
    "decode_github_record",
]
