"""
Event Reconciler: applies park events to the authoritative store and the derived index.

For every event:
  1. Upsert authoritative state (ParkStore)
  2. Merge what the event tells us into the animal's derived record
  3. Maintain the location hunger index (DerivedIndexStore)

Behavioral Contract:
- Re-delivering an identical event yields the same end state.
- Handlers are NOT commutative in time; the derived index's placement guard
  is what keeps late location events from regressing state.
- Events may arrive for animals that were never added. A partial Animal row is
  created holding only what the event carries; everything else stays unknown.
- A removed animal is never reactivated by a later "added" event.
- Store errors propagate to the caller, except for maintenance tracking,
  which is best-effort and reports failure as an outcome.
"""

import logging
import sqlite3
from typing import Callable, Dict, Type

from park_kernel.derived_index.store import DerivedIndexStore
from park_kernel.models.derived import AnimalPatch
from park_kernel.models.events import (
    EVENT_TYPES,
    AnimalAddedEvent,
    AnimalFedEvent,
    AnimalLocationUpdatedEvent,
    AnimalRemovedEvent,
    BaseParkEvent,
    MaintenancePerformedEvent,
)
from park_kernel.models.park import ParkEventLogEntry
from park_kernel.models.reconciler import EventOutcome, OutcomeStatus, PlacementResult
from park_kernel.park_store.store import ParkStore

logger = logging.getLogger(__name__)


class UnhandledEventError(TypeError):
    """Raised for an event type outside the closed set of park events."""
    pass


class EventReconciler:
    """Applies one event at a time. Not safe for concurrent writers to one animal."""

    def __init__(self, park_store: ParkStore, derived_index: DerivedIndexStore):
        self.park_store = park_store
        self.derived_index = derived_index

        self._handlers: Dict[Type[BaseParkEvent], Callable[..., EventOutcome]] = {
            AnimalAddedEvent: self.handle_animal_added,
            AnimalFedEvent: self.handle_animal_fed,
            AnimalLocationUpdatedEvent: self.handle_animal_location_updated,
            AnimalRemovedEvent: self.handle_animal_removed,
            MaintenancePerformedEvent: self.handle_maintenance_performed,
        }
        missing = [t.__name__ for t in EVENT_TYPES if t not in self._handlers]
        if missing:
            raise UnhandledEventError(f"No reconciler handler for: {', '.join(missing)}")

    def apply(self, event: BaseParkEvent) -> EventOutcome:
        """Dispatch an event to its handler."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise UnhandledEventError(f"Unhandled park event type: {type(event).__name__}")
        return handler(event)

    def _applied(self, event: BaseParkEvent) -> EventOutcome:
        return EventOutcome(
            kind=event.kind, subject=event.subject, status=OutcomeStatus.APPLIED
        )

    # === ANIMAL EVENTS ===

    def handle_animal_added(self, event: AnimalAddedEvent) -> EventOutcome:
        logger.info(
            "Animal added: %s (%s) - ID: %s, Sex: %s, Herbivore: %s",
            event.name, event.species, event.animal_id, event.sex, event.herbivore,
        )

        existing = self.park_store.get_animal(event.animal_id)
        is_active = existing.is_active if existing else True

        self.park_store.upsert_animal(
            event.animal_id,
            name=event.name,
            species=event.species,
            sex=event.sex,
            digestion_period_in_hours=event.digestion_period_in_hours,
            herbivore=event.herbivore,
            added_at=event.time,
            park_id=event.park_id,
            is_active=is_active,
        )

        self.park_store.append_event(ParkEventLogEntry(
            kind=event.kind,
            animal_id=event.animal_id,
            park_id=event.park_id,
            time=event.time,
            metadata={
                "name": event.name,
                "species": event.species,
                "sex": event.sex,
                "digestion_period_in_hours": event.digestion_period_in_hours,
                "herbivore": event.herbivore,
            },
        ))

        self.derived_index.update_animal(event.animal_id, AnimalPatch(
            herbivore=event.herbivore,
            digestion_period_in_hours=event.digestion_period_in_hours,
            is_active=is_active,
        ))
        return self._applied(event)

    def handle_animal_fed(self, event: AnimalFedEvent) -> EventOutcome:
        logger.info("Animal fed: ID %s at %s", event.animal_id, event.time.isoformat())

        self.park_store.update_animal(
            event.animal_id, event.park_id, last_fed_at=event.time
        )

        self.park_store.append_event(ParkEventLogEntry(
            kind=event.kind,
            animal_id=event.animal_id,
            park_id=event.park_id,
            time=event.time,
        ))

        self.derived_index.update_animal(
            event.animal_id, AnimalPatch(last_fed_at=event.time)
        )
        return self._applied(event)

    def handle_animal_location_updated(
        self, event: AnimalLocationUpdatedEvent
    ) -> EventOutcome:
        logger.info(
            "Animal location updated: ID %s moved to %s", event.animal_id, event.location
        )

        self.park_store.update_animal(
            event.animal_id, event.park_id, current_location=event.location
        )

        placement = self.derived_index.place_animal(
            event.animal_id, event.location, event.time
        )

        self.park_store.append_event(ParkEventLogEntry(
            kind=event.kind,
            animal_id=event.animal_id,
            park_id=event.park_id,
            time=event.time,
            metadata={"location": event.location},
        ))

        status = (
            OutcomeStatus.STALE if placement == PlacementResult.STALE
            else OutcomeStatus.APPLIED
        )
        return EventOutcome(
            kind=event.kind, subject=event.subject, status=status, placement=placement
        )

    def handle_animal_removed(self, event: AnimalRemovedEvent) -> EventOutcome:
        logger.info("Animal removed: ID %s", event.animal_id)

        self.park_store.update_animal(
            event.animal_id, event.park_id, is_active=False, removed_at=event.time
        )

        self.derived_index.remove_animal(event.animal_id)

        self.park_store.append_event(ParkEventLogEntry(
            kind=event.kind,
            animal_id=event.animal_id,
            park_id=event.park_id,
            time=event.time,
        ))
        return self._applied(event)

    # === LOCATION EVENTS ===

    def handle_maintenance_performed(
        self, event: MaintenancePerformedEvent
    ) -> EventOutcome:
        logger.info("Maintenance performed at location %s", event.location)

        try:
            self.park_store.upsert_location(event.location, event.park_id, event.time)
        except sqlite3.Error as e:
            logger.error(
                "Failed to save maintenance timestamp for location %s: %s", event.location, e
            )
            return EventOutcome(
                kind=event.kind,
                subject=event.subject,
                status=OutcomeStatus.FAILED,
                error=str(e),
            )

        logger.info(
            "Maintenance timestamp saved for location %s at %s",
            event.location, event.time.isoformat(),
        )
        return self._applied(event)

    # === BULK WIPE ===

    def delete_all_data(self) -> dict:
        """
        Wipe the derived index, then the event log, animals, and locations.
        The index goes first so no reader sees authoritative rows without it.
        """
        keys = self.derived_index.clear_all()
        events = self.park_store.delete_all_events()
        animals = self.park_store.delete_all_animals()
        locations = self.park_store.delete_all_locations()
        logger.info("All data deleted from the derived index and the park store")
        return {
            "index_keys": keys,
            "events": events,
            "animals": animals,
            "locations": locations,
        }
