"""
Slack Native Data Models

Raw Slack payloads are decoded once, on ingestion, into one of these
variants. The `kind` field tells the normalizer which mapping to use.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from threadmine.errors import NormalizationError


class SlackChannelRef(BaseModel):
    """Channel as embedded in search results."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    is_channel: bool = True
    is_private: bool = False
    is_im: bool = False


class SlackSearchMatch(BaseModel):
    """One match returned by search.messages."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["search_match"] = "search_match"
    ts: str
    user: str = ""
    username: str = ""
    text: str = ""
    thread_ts: Optional[str] = None
    permalink: str = ""
    channel: SlackChannelRef
    type: str = "message"
    files: List[Dict[str, Any]] = []


class SlackThreadMessage(BaseModel):
    """One message returned by conversations.replies."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["thread_message"] = "thread_message"
    channel_id: str
    ts: str
    user: str = ""
    text: str = ""
    thread_ts: Optional[str] = None
    parent_user_id: Optional[str] = None
    type: str = "message"
    subtype: Optional[str] = None
    bot_id: Optional[str] = None
    reply_count: int = 0
    files: List[Dict[str, Any]] = []


SlackRecord = Annotated[
    Union[SlackSearchMatch, SlackThreadMessage], Field(discriminator="kind")
]


class SlackAuth(BaseModel):
    """Identity returned by auth.test."""

    team_id: str
    team: str = ""
    user_id: str = ""
    user: str = ""

    @property
    def workspace_id(self) -> str:
        return f"ws_slack_{self.team_id}"


RECORD_TYPES = {
    "search_match": SlackSearchMatch,
    "thread_message": SlackThreadMessage,
}


def decode_slack_record(kind: str, raw: Dict[str, Any], **context: Any):
    """
    Decode a raw Slack payload into its variant.

    Thread messages do not carry their channel, so it is passed as context.

    Raises:
        NormalizationError: If the payload does not fit the variant
    """
    model = RECORD_TYPES.get(kind)
    if model is None:
        raise NormalizationError(kind, "unknown Slack record kind")

    try:
        return model.model_validate({**raw, **context, "kind": kind})
    except ValidationError as e:
        raise NormalizationError(kind, f"invalid payload: {e.errors()[0]['msg']}") from e
