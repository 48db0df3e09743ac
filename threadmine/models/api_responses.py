"""
API Response Models

Pydantic models for run summaries returned by the services and the HTTP routes.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class SkippedItem(BaseModel):
    """A native record that was not stored, with the reason."""

    item: str = Field(..., description="Native locator of the skipped record")
    reason: str = Field(..., description="Why the record was skipped")


class FetchSummary(BaseModel):
    """
    Result of one fetch run.

    A run never reports a single pass/fail: it returns what was stored plus
    what was skipped, and flags when it stopped early on a rate limit.
    """

    source: str = Field(..., description="Source type: slack or github")
    query: str = Field(..., description="Search query sent upstream")
    messages_stored: int = Field(0, description="Canonical messages upserted")
    threads_processed: int = Field(0, description="Threads expanded or items walked")
    skipped: List[SkippedItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    rate_limited: bool = Field(
        False, description="True when the run stopped early on a rate limit"
    )

    @property
    def partial(self) -> bool:
        return self.rate_limited or bool(self.skipped)

    def skip(self, item: str, reason: str) -> None:
        self.skipped.append(SkippedItem(item=item, reason=reason))

    def warn(self, message: str) -> None:
        self.warnings.append(message)


class ClassificationSummary(BaseModel):
    """Result of one classification run."""

    messages_classified: int = 0
    classifications_saved: int = 0
    messages_enriched: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    graph_stats: Dict[str, Any] = Field(default_factory=dict)
    failures: List[SkippedItem] = Field(default_factory=list)
    graph_snapshot: Optional[str] = Field(
        None, description="Directory the reply graph snapshot was written to"
    )
