"""
Message API Routes

Read access to stored canonical messages, their classifications and
enrichments.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from datetime import datetime
import logging

from threadmine.api.deps import get_store
from threadmine.models.classification import Classification, ClassificationType, Enrichment
from threadmine.models.message import CanonicalMessage, SourceType
from threadmine.storage.sqlite_store import MessageQuery, MessageStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[CanonicalMessage])
async def list_messages(
    source_type: Optional[SourceType] = Query(None, description="slack or github"),
    channel_id: Optional[str] = Query(None, description="Canonical channel id (chan_...)"),
    thread_id: Optional[str] = Query(None, description="Root message id of the thread"),
    author_id: Optional[str] = Query(None, description="Canonical user id (user_...)"),
    since: Optional[datetime] = Query(None, description="Oldest timestamp (ISO format)"),
    until: Optional[datetime] = Query(None, description="Newest timestamp (ISO format)"),
    classification: Optional[ClassificationType] = Query(None, description="Only messages with this label"),
    is_question: Optional[bool] = Query(None, description="Filter on the enrichment question flag"),
    has_code: Optional[bool] = Query(None, description="Filter on code blocks being present"),
    has_links: Optional[bool] = Query(None, description="Filter on links being present"),
    has_quotes: Optional[bool] = Query(None, description="Filter on block quotes being present"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    store: MessageStore = Depends(get_store),
):
    """
    Query stored messages, oldest first.

    Examples:
    - GET /api/messages?source_type=slack&limit=20
    - GET /api/messages?classification=question&since=2025-01-01T00:00:00Z
    - GET /api/messages?has_code=true&is_question=false
    """
    return store.query_messages(
        MessageQuery(
            source_type=source_type,
            channel_id=channel_id,
            thread_id=thread_id,
            author_id=author_id,
            since=since,
            until=until,
            classification=classification,
            is_question=is_question,
            has_code=has_code,
            has_links=has_links,
            has_quotes=has_quotes,
            limit=limit,
            offset=offset,
        )
    )


@router.get("/{message_id}", response_model=CanonicalMessage)
async def get_message(message_id: str, store: MessageStore = Depends(get_store)):
    message = store.get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail=f"Message not found: {message_id}")
    return message


@router.get("/{message_id}/classifications", response_model=List[Classification])
async def get_message_classifications(message_id: str, store: MessageStore = Depends(get_store)):
    if store.get_message(message_id) is None:
        raise HTTPException(status_code=404, detail=f"Message not found: {message_id}")
    return store.get_classifications(message_id)


@router.get("/{message_id}/enrichment", response_model=Enrichment)
async def get_message_enrichment(message_id: str, store: MessageStore = Depends(get_store)):
    enrichment = store.get_enrichment(message_id)
    if enrichment is None:
        raise HTTPException(status_code=404, detail=f"No enrichment for message: {message_id}")
    return enrichment
