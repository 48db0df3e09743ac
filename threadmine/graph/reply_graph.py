"""
Reply Graph

Adjacency-list view over canonical messages: parent id -> child ids, plus
the set of thread roots. Traversals guard against malformed parent cycles.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pydantic import BaseModel

from threadmine.models.message import CanonicalMessage, SourceType
from threadmine.storage.atomic import atomic_write_json

logger = logging.getLogger(__name__)

GRAPH_FILES = ("nodes.json", "adjacency.json", "thread_roots.json", "metadata.json")


class ReplyGraphNode(BaseModel):
    """Structural facts about one message."""

    message_id: str
    thread_id: str
    parent_id: Optional[str] = None
    is_thread_root: bool = False
    author: str
    timestamp: datetime
    channel: str
    source_type: SourceType


class ReplyGraph:
    """Parent -> children graph over a set of messages."""

    def __init__(self):
        self.nodes: Dict[str, ReplyGraphNode] = {}
        self.adjacency: Dict[str, List[str]] = {}
        self.roots: List[str] = []
        self.updated_at: datetime = datetime.now(timezone.utc)

    @classmethod
    def build(cls, messages: Iterable[CanonicalMessage]) -> "ReplyGraph":
        graph = cls()
        root_set: Set[str] = set()

        for msg in messages:
            graph.nodes[msg.id] = ReplyGraphNode(
                message_id=msg.id,
                thread_id=msg.thread_id,
                parent_id=msg.parent_id,
                is_thread_root=msg.is_thread_root,
                author=msg.author_id,
                timestamp=msg.timestamp,
                channel=msg.channel_id,
                source_type=msg.source_type,
            )
            if msg.is_thread_root and msg.id not in root_set:
                root_set.add(msg.id)
                graph.roots.append(msg.id)
            if msg.parent_id:
                graph.adjacency.setdefault(msg.parent_id, []).append(msg.id)

        logger.debug(f"Built reply graph: {len(graph.nodes)} nodes, {len(graph.roots)} roots")
        return graph

    def node(self, message_id: str) -> Optional[ReplyGraphNode]:
        return self.nodes.get(message_id)

    def children(self, message_id: str) -> List[str]:
        return list(self.adjacency.get(message_id, []))

    def thread(self, root_id: str) -> List[ReplyGraphNode]:
        """
        Pre-order walk from root_id, root first.

        Ids without a node (replies whose parent was never fetched) are
        traversed but not returned.
        """
        ordered: List[ReplyGraphNode] = []
        visited: Set[str] = set()
        stack = [root_id]

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)

            node = self.nodes.get(current)
            if node is not None:
                ordered.append(node)
            # reversed so the first child is visited first
            stack.extend(reversed(self.adjacency.get(current, [])))

        return ordered

    def depth(self, root_id: str) -> int:
        """Longest parent -> child path below root_id; 0 without children."""
        return self._depth(root_id, set())

    def _depth(self, message_id: str, path: Set[str]) -> int:
        path.add(message_id)
        best = 0
        for child in self.adjacency.get(message_id, []):
            if child in path:
                continue
            best = max(best, 1 + self._depth(child, path))
        path.discard(message_id)
        return best

    def stats(self) -> Dict[str, Any]:
        total = len(self.nodes)
        thread_count = len(self.roots)
        depths = [self.depth(root) for root in self.roots]

        return {
            "total_messages": total,
            "thread_count": thread_count,
            "reply_messages": total - thread_count,
            "messages_with_replies": sum(1 for kids in self.adjacency.values() if kids),
            "average_thread_depth": (sum(depths) / len(depths)) if depths else 0.0,
            "updated_at": self.updated_at.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": {mid: node.model_dump(mode="json") for mid, node in self.nodes.items()},
            "adjacency": self.adjacency,
            "thread_roots": self.roots,
            "metadata": self.stats(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReplyGraph":
        graph = cls()
        graph.nodes = {
            mid: ReplyGraphNode.model_validate(node)
            for mid, node in (data.get("nodes") or {}).items()
        }
        graph.adjacency = {k: list(v) for k, v in (data.get("adjacency") or {}).items()}
        graph.roots = list(data.get("thread_roots") or [])

        updated_at = (data.get("metadata") or {}).get("updated_at")
        if updated_at:
            graph.updated_at = datetime.fromisoformat(updated_at)
        return graph


def save_graph(graph: ReplyGraph, directory: Union[str, Path]) -> Path:
    """
    Write the graph snapshot as four JSON files.

    Each file is written to a temp file and renamed into place.
    """
    target = Path(directory).expanduser()
    data = graph.to_dict()

    atomic_write_json(target / "nodes.json", data["nodes"])
    atomic_write_json(target / "adjacency.json", data["adjacency"])
    atomic_write_json(target / "thread_roots.json", data["thread_roots"])
    atomic_write_json(target / "metadata.json", data["metadata"])

    logger.info(f"Saved reply graph snapshot to {target}")
    return target


def load_graph(directory: Union[str, Path]) -> ReplyGraph:
    """
    Load a snapshot written by save_graph.

    Raises:
        FileNotFoundError: If any of the snapshot files is missing
    """
    source = Path(directory).expanduser()
    data = {}
    for filename in GRAPH_FILES:
        path = source / filename
        if not path.exists():
            raise FileNotFoundError(f"Graph snapshot file missing: {path}")
        data[filename.removesuffix(".json")] = json.loads(path.read_text(encoding="utf-8"))

    return ReplyGraph.from_dict(data)
