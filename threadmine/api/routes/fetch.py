"""
Fetch API Routes

Run a Slack or GitHub fetch and return its summary.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional
import logging

from threadmine.config import load_fetch_defaults
from threadmine.errors import AuthenticationError, NetworkError, ThreadMineError
from threadmine.api.deps import get_orchestrator
from threadmine.models.api_responses import FetchSummary
from threadmine.services.fetcher import FetchOrchestrator
from threadmine.services.queries import GitHubFetchOptions, SlackFetchOptions
from threadmine.utils.dates import parse_since_date

logger = logging.getLogger(__name__)
router = APIRouter()


class SlackFetchRequest(BaseModel):
    """Slack fetch filters. Unset fields fall back to the config file."""

    user: Optional[str] = None
    channel: Optional[str] = None
    search: Optional[str] = None
    since: Optional[str] = Field(None, description="Relative (7d) or YYYY-MM-DD")
    until: Optional[str] = Field(None, description="YYYY-MM-DD")
    limit: Optional[int] = None
    fetch_threads: Optional[bool] = None


class GitHubFetchRequest(BaseModel):
    """GitHub fetch filters. Unset fields fall back to the config file."""

    repo: Optional[str] = Field(None, description="owner/repo")
    org: Optional[str] = None
    author: Optional[str] = None
    commenter: Optional[str] = None
    reviewed_by: Optional[str] = None
    label: Optional[str] = None
    search: Optional[str] = None
    since: Optional[str] = Field(None, description="Relative (7d) or YYYY-MM-DD")
    kind: Optional[Literal["issue", "pr"]] = None
    limit: Optional[int] = None
    include_timeline: Optional[bool] = None
    include_discussions: Optional[bool] = None


class FetchResponse(BaseModel):
    success: bool
    partial: bool
    message: str
    summary: FetchSummary


def _merge_defaults(source: str, request: BaseModel) -> Dict[str, Any]:
    values = dict(load_fetch_defaults().get(source, {}))
    values.update(request.model_dump(exclude_none=True))

    for field in ("since", "until"):
        if values.get(field) is not None:
            values[field] = parse_since_date(str(values[field]))
    return values


def _response(summary: FetchSummary) -> FetchResponse:
    message = f"Stored {summary.messages_stored} messages from {summary.threads_processed} threads"
    if summary.rate_limited:
        message += " (stopped early on rate limit)"
    return FetchResponse(success=True, partial=summary.partial, message=message, summary=summary)


def _raise_http(e: Exception, source: str):
    if isinstance(e, AuthenticationError):
        raise HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NetworkError):
        raise HTTPException(status_code=502, detail=str(e))
    logger.error(f"{source} fetch failed: {e}")
    raise HTTPException(status_code=500, detail=str(e))


@router.post("/slack", response_model=FetchResponse)
async def fetch_slack(
    request: SlackFetchRequest,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    """
    Search Slack and store the matches (and their threads).

    Examples:
    - POST /api/fetch/slack {"channel": "support", "since": "7d"}
    - POST /api/fetch/slack {"user": "alice", "search": "deploy", "fetch_threads": false}
    """
    try:
        options = SlackFetchOptions(**_merge_defaults("slack", request))
        summary = await orchestrator.fetch_slack(options)
    except (ThreadMineError, ValueError) as e:
        _raise_http(e, "Slack")

    return _response(summary)


@router.post("/github", response_model=FetchResponse)
async def fetch_github(
    request: GitHubFetchRequest,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    """
    Search GitHub issues / pull requests and store them with their
    comments, reviews and timeline.

    Examples:
    - POST /api/fetch/github {"repo": "octo/widgets", "since": "30d"}
    - POST /api/fetch/github {"org": "octo", "kind": "pr", "label": "bug"}
    """
    try:
        options = GitHubFetchOptions(**_merge_defaults("github", request))
        summary = await orchestrator.fetch_github(options)
    except (ThreadMineError, ValueError) as e:
        _raise_http(e, "GitHub")

    return _response(summary)
