"""
Ingestion Driver: feeds event batches to the Event Reconciler.

Two paths:
  Scheduled: fetch from the feed and apply in feed order (no re-sorting).
  Replay:    apply a supplied batch, optionally sorted by event time first.

Either way each event is applied on its own; a failing event is logged,
recorded in the batch report, and the batch moves on.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from park_kernel.ingestion.feed import FeedClient
from park_kernel.models.events import BaseParkEvent, parse_event, raw_kind, sort_by_time
from park_kernel.models.reconciler import BatchReport, EventOutcome, OutcomeStatus
from park_kernel.reconciler.event_reconciler import EventReconciler

logger = logging.getLogger(__name__)


class IngestionDriver:
    """Runs fetch-and-reconcile passes against one reconciler."""

    def __init__(
        self,
        reconciler: EventReconciler,
        feed_client: Optional[FeedClient] = None,
        audit_dir: Optional[str] = None,
        interval_seconds: int = 60,
    ):
        self.reconciler = reconciler
        self.feed_client = feed_client
        self.audit_dir = Path(audit_dir) if audit_dir else None
        self.interval_seconds = interval_seconds
        self._running = False

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    def run_once(self) -> BatchReport:
        """
        Fetch one batch and reconcile it in feed order.
        Raises FeedError if the fetch fails; per-event failures do not raise.
        """
        if self.feed_client is None:
            raise RuntimeError("No feed client configured")

        fetched_at = datetime.now(timezone.utc)
        raw_events = self.feed_client.fetch()
        if self.audit_dir is not None:
            self._write_audit(raw_events, fetched_at)
        return self.process_events(raw_events)

    def _write_audit(self, raw_events: List[dict], fetched_at: datetime) -> Path:
        """Persist the raw batch as fetched, named after the fetch time."""
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        stamp = fetched_at.isoformat().replace(":", "-").replace(".", "-")
        path = self.audit_dir / f"{stamp}.json"
        path.write_text(json.dumps(raw_events, indent=2), encoding="utf-8")
        logger.debug("Wrote raw batch to %s", path)
        return path

    def process_events(
        self, raw_events: List[dict], sort_by_time_first: bool = False
    ) -> BatchReport:
        """Parse and apply a batch one event at a time."""
        report = BatchReport(started_at=datetime.now(timezone.utc))
        logger.debug("Processing %d events...", len(raw_events))

        events: List[BaseParkEvent] = []
        for raw in raw_events:
            try:
                events.append(parse_event(raw))
            except ValidationError as e:
                logger.error("Rejected malformed %s event: %s", raw_kind(raw) or "unknown", e)
                report.record(EventOutcome(
                    kind=raw_kind(raw),
                    status=OutcomeStatus.FAILED,
                    error=f"invalid event: {e.error_count()} validation error(s)",
                ))

        if sort_by_time_first:
            events = sort_by_time(events)

        for event in events:
            report.record(self._apply(event))

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Batch done: %d succeeded, %d failed, %d stale",
            report.succeeded, report.failed, report.stale,
        )
        return report

    def _apply(self, event: BaseParkEvent) -> EventOutcome:
        try:
            return self.reconciler.apply(event)
        except Exception as e:
            logger.exception("Error processing event %s for %s", event.kind, event.subject)
            return EventOutcome(
                kind=event.kind,
                subject=event.subject,
                status=OutcomeStatus.FAILED,
                error=str(e),
            )

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run scheduled passes until ``stop_event`` is set.
        Each pass blocks on the feed and the stores, so it runs in a worker thread.
        """
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                try:
                    await asyncio.to_thread(self.run_once)
                except Exception:
                    logger.exception("Scheduled ingestion pass failed")
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
