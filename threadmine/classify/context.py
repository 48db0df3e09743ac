"""
Thread Context Assembly

Gives every message the facts about its thread that the answer detector
needs. Messages are bucketed by thread_id once and each bucket is scanned
once, so the cost is linear in the number of messages.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from threadmine.models.message import CanonicalMessage

if TYPE_CHECKING:
    from threadmine.graph.reply_graph import ReplyGraph


@dataclass(frozen=True)
class ThreadContext:
    """What a message's thread looks like from that message's point of view."""

    has_question: bool = False
    question_author: Optional[str] = None
    is_thread_root: bool = False
    position: int = 0


def _thread_order(
    bucket: List[CanonicalMessage], thread_id: str, graph: Optional["ReplyGraph"]
) -> Dict[str, int]:
    by_time = sorted(bucket, key=lambda m: (m.timestamp, m.id))
    if graph is None:
        return {m.id: i for i, m in enumerate(by_time)}

    order: Dict[str, int] = {}
    for node in graph.thread(thread_id):
        order.setdefault(node.message_id, len(order))
    # messages the walk cannot reach (orphaned replies) go last, by time
    for msg in by_time:
        order.setdefault(msg.id, len(order))
    return order


def build_thread_contexts(
    messages: Iterable[CanonicalMessage], graph: Optional["ReplyGraph"] = None
) -> Dict[str, ThreadContext]:
    """
    Build a ThreadContext for every message.

    A message's own question-ness does not count toward its has_question:
    only questions from other messages in the same thread do.

    Args:
        messages: Messages to classify
        graph: Reply graph over the same messages, used for thread position

    Returns:
        Mapping of message id to its context
    """
    # Imported here: the classifier module imports ThreadContext from this one
    from threadmine.classify.classifier import classify_question

    buckets: Dict[str, List[CanonicalMessage]] = {}
    for msg in messages:
        buckets.setdefault(msg.thread_id, []).append(msg)

    contexts: Dict[str, ThreadContext] = {}
    for thread_id, bucket in buckets.items():
        # Only the first two questions matter: each message needs one
        # question that is not itself
        questions: List[CanonicalMessage] = []
        for msg in bucket:
            if classify_question(msg) is not None:
                questions.append(msg)
                if len(questions) == 2:
                    break

        order = _thread_order(bucket, thread_id, graph)

        for msg in bucket:
            other = next((q for q in questions if q.id != msg.id), None)
            contexts[msg.id] = ThreadContext(
                has_question=other is not None,
                question_author=other.author_id if other else None,
                is_thread_root=msg.is_thread_root,
                position=order[msg.id],
            )

    return contexts
