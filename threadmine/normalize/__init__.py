"""
Normalization: native Slack / GitHub records -> CanonicalMessage.
"""

from threadmine.normalize.extract import (
    extract_code_blocks,
    extract_mentions,
    extract_urls,
    normalize_github_markdown,
    normalize_slack_markup,
)
from threadmine.normalize.github import (
    github_repository_channel,
    github_user,
    normalize_github_record,
)
from threadmine.normalize.slack import (
    normalize_slack_record,
    slack_channel,
    slack_user,
)

__all__ = [
    "extract_code_blocks",
    "extract_mentions",
    "extract_urls",
    "normalize_github_markdown",
    "normalize_slack_markup",
    "github_repository_channel",
    "github_user",
    "normalize_github_record",
    "normalize_slack_record",
    "slack_channel",
    "slack_user",
]
