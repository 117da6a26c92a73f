"""
Park Kernel API: FastAPI endpoints.

Exposes:
- Scheduled fetch-and-reconcile passes while the app is serving
- Manual trigger of a fetch-and-reconcile pass
- Bulk wipe of both stores
- Direct submission of an event batch (replay path)
- Lookups over the hunger index, derived records, animals and the event log
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from park_kernel.config import ParkSettings, configure_logging
from park_kernel.derived_index.client import create_kv_client
from park_kernel.derived_index.store import DerivedIndexStore, normalize_location
from park_kernel.ingestion.driver import IngestionDriver
from park_kernel.ingestion.feed import FeedClient, FeedError
from park_kernel.park_store.store import ParkStore
from park_kernel.reconciler.event_reconciler import EventReconciler

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class EventBatchRequest(BaseModel):
    events: List[dict]
    sort_by_time: bool = False


class OperationResponse(BaseModel):
    ok: bool
    message: str
    report: Optional[dict] = None


# --- Application Factory ---

def create_app(
    park_store: Optional[ParkStore] = None,
    derived_index: Optional[DerivedIndexStore] = None,
    feed_client: Optional[FeedClient] = None,
    settings: Optional[ParkSettings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or ParkSettings()
    configure_logging(settings.log_level)

    # Initialize components
    ps = park_store or ParkStore(db_path=settings.database_path)
    di = derived_index or DerivedIndexStore(create_kv_client(settings))
    fc = feed_client or FeedClient(settings.feed_url, timeout=settings.feed_timeout_seconds)

    reconciler = EventReconciler(park_store=ps, derived_index=di)
    driver = IngestionDriver(
        reconciler,
        feed_client=fc,
        audit_dir=settings.audit_dir,
        interval_seconds=settings.trigger_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Run the scheduled trigger for as long as the app is serving."""
        if not settings.scheduled_ingestion:
            yield
            return

        stop_event = asyncio.Event()
        task = asyncio.create_task(driver.run_async(stop_event))
        app.state.ingestion_task = task
        logger.info(
            "Scheduled ingestion started (every %ss)", settings.trigger_interval_seconds
        )

        yield

        stop_event.set()
        await task
        logger.info("Scheduled ingestion stopped")

    app = FastAPI(
        title="Park Kernel API",
        description="Park telemetry reconciliation and hunger index",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store components on app state for access in endpoints
    app.state.park_store = ps
    app.state.derived_index = di
    app.state.reconciler = reconciler
    app.state.driver = driver

    # === TRIGGER / WIPE ===

    @app.post("/park/trigger", response_model=OperationResponse)
    def trigger_ingestion():
        """Fetch from the feed and reconcile the batch (same as the scheduled run)."""
        try:
            report = driver.run_once()
        except FeedError as e:
            raise HTTPException(502, str(e))
        return OperationResponse(
            ok=True, message="Ingestion run completed", report=report.summary()
        )

    @app.delete("/park/data", response_model=OperationResponse)
    def delete_all_data():
        """Delete all derived index keys and all authoritative records."""
        counts = reconciler.delete_all_data()
        return OperationResponse(
            ok=True, message="All data deleted from the derived index and park store",
            report=counts,
        )

    @app.post("/park/events", response_model=OperationResponse)
    def submit_events(req: EventBatchRequest):
        """Reconcile a supplied batch, optionally sorted by event time."""
        report = driver.process_events(req.events, sort_by_time_first=req.sort_by_time)
        return OperationResponse(
            ok=True, message="Batch processed", report=report.summary()
        )

    # === LOOKUPS ===

    @app.get("/park/locations/{location}/hungry-carnivores")
    def get_hungry_carnivores(location: str):
        """Animals currently indexed as hungry carnivores at a location."""
        entries = di.hungry_carnivores(location)
        return {
            "location": normalize_location(location),
            "animals": {str(k): v.isoformat() for k, v in sorted(entries.items())},
        }

    @app.get("/park/animals/{animal_id}")
    def get_animal(animal_id: int):
        """Authoritative animal state."""
        animal = ps.get_animal(animal_id)
        if not animal:
            raise HTTPException(404, "Animal not found")
        return animal.model_dump(mode="json")

    @app.get("/park/animals/{animal_id}/derived")
    def get_derived_animal(animal_id: int):
        """The animal's derived record; only known fields are returned."""
        record = di.get_animal(animal_id)
        if record is None:
            raise HTTPException(404, "Animal not tracked in the derived index")
        return record.model_dump(mode="json", exclude_unset=True)

    @app.get("/park/events")
    def get_events(limit: int = 50, animal_id: Optional[int] = None):
        """Recent event log entries."""
        entries = ps.query_events(animal_id=animal_id, limit=limit)
        return [e.model_dump(mode="json") for e in entries]

    return app


# Default application instance
app = create_app()
