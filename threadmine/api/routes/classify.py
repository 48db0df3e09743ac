"""
Classification API Routes
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging

from threadmine.api.deps import get_store
from threadmine.config import get_settings
from threadmine.errors import ThreadMineError
from threadmine.models.api_responses import ClassificationSummary
from threadmine.models.message import SourceType
from threadmine.services.pipeline import ClassificationPipeline
from threadmine.storage.sqlite_store import MessageQuery, MessageStore

logger = logging.getLogger(__name__)
router = APIRouter()


class ClassifyRequest(BaseModel):
    """Which messages to classify; defaults to everything stored."""

    source_type: Optional[SourceType] = None
    channel_id: Optional[str] = None
    thread_id: Optional[str] = None
    save_graph: bool = True


@router.post("", response_model=ClassificationSummary)
async def classify_messages(
    request: Optional[ClassifyRequest] = None,
    store: MessageStore = Depends(get_store),
):
    """
    Rebuild the reply graph and classify stored messages.

    Examples:
    - POST /api/classify
    - POST /api/classify {"source_type": "github", "save_graph": false}
    """
    request = request or ClassifyRequest()
    graph_dir = get_settings().graph_dir if request.save_graph else None

    try:
        messages = store.query_messages(
            MessageQuery(
                source_type=request.source_type,
                channel_id=request.channel_id,
                thread_id=request.thread_id,
                limit=0,
            )
        )
        return ClassificationPipeline(store, graph_dir=graph_dir).run(messages)
    except (ThreadMineError, OSError) as e:
        logger.error(f"Classification failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
