"""
Offline replay: seed the stores from a JSON file of park events.

Usage:
    python -m park_kernel.ingestion.replay input.json

Events are sorted by time before being applied. Store locations come from
the usual PARK_* settings.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from park_kernel.config import ParkSettings, configure_logging
from park_kernel.derived_index.client import create_kv_client
from park_kernel.derived_index.store import DerivedIndexStore
from park_kernel.ingestion.driver import IngestionDriver
from park_kernel.models.reconciler import BatchReport
from park_kernel.park_store.store import ParkStore
from park_kernel.reconciler.event_reconciler import EventReconciler

logger = logging.getLogger(__name__)


def load_events(path: Path) -> List[dict]:
    """Read a JSON array of raw events."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array of events")
    return data


def replay_file(path: Path, driver: IngestionDriver) -> BatchReport:
    """Apply every event in the file in time order."""
    events = load_events(path)
    logger.info("Replaying %d events from %s", len(events), path)
    return driver.process_events(events, sort_by_time_first=True)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay park events into the stores")
    parser.add_argument("path", type=Path, help="JSON file holding an array of events")
    args = parser.parse_args(argv)

    settings = ParkSettings()
    configure_logging(settings.log_level)

    park_store = ParkStore(db_path=settings.database_path)
    derived_index = DerivedIndexStore(create_kv_client(settings))
    driver = IngestionDriver(EventReconciler(park_store, derived_index))

    try:
        report = replay_file(args.path, driver)
    except (OSError, ValueError) as e:
        logger.error("Replay failed: %s", e)
        return 1
    finally:
        park_store.close()

    print(f"Replayed {report.succeeded}/{report.total} events ({report.failed} failed)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
