"""
Message Enrichment

Cheap per-message content features stored next to the classifications and
used as query filters.
"""

import re

from threadmine.classify.classifier import classify_question
from threadmine.models.classification import Enrichment
from threadmine.models.message import CanonicalMessage

# Markdown / Slack block quote: a line starting with ">"
QUOTE_PATTERN = re.compile(r"^\s*>", re.MULTILINE)


def enrich_message(msg: CanonicalMessage) -> Enrichment:
    return Enrichment(
        message_id=msg.id,
        is_question=classify_question(msg) is not None,
        char_count=len(msg.content),
        word_count=len(msg.content.split()),
        has_code=bool(msg.code_blocks),
        has_links=bool(msg.urls),
        has_quotes=bool(QUOTE_PATTERN.search(msg.content)),
    )
