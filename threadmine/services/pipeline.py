"""
Classification Pipeline

Stored messages -> Reply graph -> Thread contexts -> Classifier + Enrichment -> Store
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from threadmine.classify.classifier import classify_message
from threadmine.classify.context import build_thread_contexts
from threadmine.classify.enrich import enrich_message
from threadmine.errors import PersistenceError
from threadmine.graph.reply_graph import ReplyGraph, save_graph
from threadmine.models.api_responses import ClassificationSummary, SkippedItem
from threadmine.models.message import CanonicalMessage
from threadmine.storage.sqlite_store import MessageStore

logger = logging.getLogger(__name__)


class ClassificationPipeline:
    """
    Classifies messages and persists the labels.

    Pipeline steps:
    1. Load messages (all stored messages unless given)
    2. Build the reply graph
    3. Build one ThreadContext per message
    4. Run every detector on every message
    5. Replace each message's classifications and store its enrichment
    6. Optionally snapshot the graph
    """

    def __init__(self, store: MessageStore, graph_dir: Optional[Union[str, Path]] = None):
        self.store = store
        self.graph_dir = graph_dir

    def run(self, messages: Optional[List[CanonicalMessage]] = None) -> ClassificationSummary:
        if messages is None:
            messages = self.store.all_messages()

        logger.info(f"Classifying {len(messages)} messages")

        graph = ReplyGraph.build(messages)
        contexts = build_thread_contexts(messages, graph)
        summary = ClassificationSummary(graph_stats=graph.stats())

        for msg in messages:
            summary.messages_classified += 1
            labels = classify_message(msg, contexts.get(msg.id))
            try:
                self.store.replace_classifications(msg.id, labels)
            except PersistenceError as e:
                logger.warning(f"Failed to save classifications for {msg.id}: {e}")
                summary.failures.append(SkippedItem(item=f"{msg.id}:classifications", reason=str(e)))
            else:
                summary.classifications_saved += len(labels)
                for classification in labels:
                    label = classification.type.value
                    summary.by_type[label] = summary.by_type.get(label, 0) + 1

            try:
                self.store.save_enrichment(enrich_message(msg))
            except PersistenceError as e:
                logger.warning(f"Failed to save enrichment for {msg.id}: {e}")
                summary.failures.append(SkippedItem(item=f"{msg.id}:enrichment", reason=str(e)))
            else:
                summary.messages_enriched += 1

        if self.graph_dir is not None:
            summary.graph_snapshot = str(save_graph(graph, self.graph_dir))

        logger.info(
            f"Classification done: {summary.classifications_saved} labels on "
            f"{summary.messages_classified} messages ({summary.by_type})"
        )
        return summary
