# Heuristic classification
from threadmine.classify.context import ThreadContext, build_thread_contexts
from threadmine.classify.classifier import (
    classify_acknowledgment,
    classify_answer,
    classify_message,
    classify_question,
    classify_solution,
)
from threadmine.classify.enrich import enrich_message

__all__ = [
    "ThreadContext",
    "build_thread_contexts",
    "classify_acknowledgment",
    "classify_answer",
    "classify_message",
    "classify_question",
    "classify_solution",
    "enrich_message",
]
