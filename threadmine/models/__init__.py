# Shared data models
from threadmine.models.message import (
    CanonicalMessage,
    User,
    Channel,
    CodeBlock,
    CodeBlockKind,
    Attachment,
    SourceType,
    SCHEMA_VERSION,
)
from threadmine.models.classification import Classification, ClassificationType
from threadmine.models.ratelimit import RateLimitKey, RateLimitState
from threadmine.models.api_responses import (
    FetchSummary,
    SkippedItem,
    ClassificationSummary,
)

__all__ = [
    "CanonicalMessage",
    "User",
    "Channel",
    "CodeBlock",
    "CodeBlockKind",
    "Attachment",
    "SourceType",
    "SCHEMA_VERSION",
    "Classification",
    "ClassificationType",
    "RateLimitKey",
    "RateLimitState",
    "FetchSummary",
    "SkippedItem",
    "ClassificationSummary",
]
