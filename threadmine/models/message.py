"""
Canonical Message Model

Unified message data structure regardless of input source (Slack, GitHub, etc.)
"""

from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any, Set

SCHEMA_VERSION = "2.0"


class SourceType(str, Enum):
    """Source platform type."""

    SLACK = "slack"
    GITHUB = "github"


class CodeBlockKind(str, Enum):
    """How a code block was written in the source text."""

    FENCED = "fenced"
    INLINE = "inline"
    HTML = "html"


class CodeBlock(BaseModel):
    """Code snippet found in message content."""

    language: Optional[str] = None
    code: str
    kind: CodeBlockKind = CodeBlockKind.FENCED


class Attachment(BaseModel):
    """File or rich media attached to a message."""

    type: str = ""
    url: str = ""
    title: str = ""
    mime_type: str = ""


class CanonicalMessage(BaseModel):
    """Platform-agnostic message format."""

    id: str
    source_type: SourceType
    source_id: str
    timestamp: datetime
    author_id: str
    content: str

    # Conversation context
    channel_id: str
    thread_id: str
    parent_id: Optional[str] = None
    is_thread_root: bool = False

    # Extracted entities
    mentions: Set[str] = Field(default_factory=set)
    urls: List[str] = Field(default_factory=list)
    code_blocks: List[CodeBlock] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    # Source-specific fields (opaque pass-through)
    source_metadata: Dict[str, Any] = Field(default_factory=dict)

    # Provenance
    fetched_at: Optional[datetime] = None
    normalized_at: Optional[datetime] = None
    schema_version: str = SCHEMA_VERSION


class User(BaseModel):
    """Per-source identity record."""

    id: str
    source_type: SourceType
    source_id: str
    display_name: Optional[str] = None
    real_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class Channel(BaseModel):
    """
    Conversation container across sources.

    Slack channels and DMs live in a workspace; GitHub repositories live in an
    organization. The type field tells them apart.
    """

    id: str
    source_type: SourceType
    source_id: str
    name: str
    display_name: Optional[str] = None
    type: str = "channel"  # channel, dm, repository
    is_private: bool = False
    parent_space: Optional[str] = None
