"""
Classification Models
"""

from pydantic import BaseModel, Field
from enum import Enum
from typing import List


class ClassificationType(str, Enum):
    """Heuristic message labels."""

    QUESTION = "question"
    ANSWER = "answer"
    SOLUTION = "solution"
    ACKNOWLEDGMENT = "acknowledgment"


class Classification(BaseModel):
    """One labeled, confidence-scored classification of a message."""

    message_id: str
    type: ClassificationType
    confidence: float = Field(..., ge=0.0, le=1.0)
    signals: List[str] = Field(default_factory=list)


class Enrichment(BaseModel):
    """Content features of a message, recomputed on every classification run."""

    message_id: str
    is_question: bool = False
    char_count: int = Field(0, ge=0)
    word_count: int = Field(0, ge=0)
    has_code: bool = False
    has_links: bool = False
    has_quotes: bool = False
