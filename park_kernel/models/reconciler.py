"""Reconciliation outcomes: per-event results and the batch report."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class PlacementResult(str, Enum):
    STALE = "stale"               # Older than an already-applied placement; nothing changed
    PLACED = "placed"             # Location recorded, not a hunger risk
    HUNGER_RISK = "hunger_risk"   # Location recorded and indexed as a hungry carnivore


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    STALE = "stale"
    FAILED = "failed"


class EventOutcome(BaseModel):
    """Result of applying a single event."""

    kind: Optional[str] = None
    subject: str = ""
    status: OutcomeStatus
    placement: Optional[PlacementResult] = None
    error: Optional[str] = None


class BatchReport(BaseModel):
    """Aggregated outcome of one ingestion pass."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: List[EventOutcome] = []

    def record(self, outcome: EventOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status != OutcomeStatus.FAILED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.FAILED)

    @property
    def stale(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.STALE)

    def counts_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for o in self.outcomes:
            key = o.kind or "unknown"
            counts[key] = counts.get(key, 0) + 1
        return counts

    def failures(self) -> List[EventOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    def summary(self) -> dict:
        """Serializable summary returned by the entry points."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "stale": self.stale,
            "by_kind": self.counts_by_kind(),
            "failures": [o.model_dump(mode="json") for o in self.failures()],
        }
