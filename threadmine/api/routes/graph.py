"""
Reply Graph API Routes
"""

from fastapi import APIRouter, Depends, HTTPException
import logging

from threadmine.api.deps import get_store
from threadmine.graph.reply_graph import ReplyGraph
from threadmine.storage.sqlite_store import MessageQuery, MessageStore

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/stats")
async def graph_stats(store: MessageStore = Depends(get_store)):
    """Thread and reply counts over every stored message."""
    graph = ReplyGraph.build(store.all_messages())
    return graph.stats()


@router.get("/threads/{root_id}")
async def get_thread(root_id: str, store: MessageStore = Depends(get_store)):
    """
    One thread in reply order (pre-order walk from the root).

    Example:
    - GET /api/graph/threads/msg_slack_C123_1712345678.000100
    """
    root = store.get_message(root_id)
    if root is None:
        raise HTTPException(status_code=404, detail=f"Message not found: {root_id}")

    graph = ReplyGraph.build(store.query_messages(MessageQuery(thread_id=root.thread_id, limit=0)))
    nodes = graph.thread(root_id)

    return {
        "root_id": root_id,
        "thread_id": root.thread_id,
        "depth": graph.depth(root_id),
        "message_count": len(nodes),
        "messages": [node.model_dump(mode="json") for node in nodes],
    }
