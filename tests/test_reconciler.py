"""Tests for the Event Reconciler."""

from datetime import datetime, timedelta, timezone

import pytest

from park_kernel.derived_index.client import InMemoryKeyValueClient
from park_kernel.derived_index.store import DerivedIndexStore
from park_kernel.models.events import (
    AnimalAddedEvent,
    AnimalFedEvent,
    AnimalLocationUpdatedEvent,
    AnimalRemovedEvent,
    BaseParkEvent,
    MaintenancePerformedEvent,
)
from park_kernel.models.reconciler import OutcomeStatus, PlacementResult
from park_kernel.park_store.store import ParkStore
from park_kernel.reconciler.event_reconciler import EventReconciler, UnhandledEventError

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def _at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def _added(
    animal_id: int = 1,
    herbivore: bool = False,
    digestion: float = 24,
    time: datetime = T0,
) -> AnimalAddedEvent:
    return AnimalAddedEvent(
        park_id=1,
        time=time,
        animal_id=animal_id,
        name="Rex" if not herbivore else "Dot",
        species="lion" if not herbivore else "zebra",
        sex="male",
        digestion_period_in_hours=digestion,
        herbivore=herbivore,
    )


def _fed(animal_id: int = 1, time: datetime = T0) -> AnimalFedEvent:
    return AnimalFedEvent(park_id=1, time=time, animal_id=animal_id)


def _moved(location: str, animal_id: int = 1, time: datetime = T0) -> AnimalLocationUpdatedEvent:
    return AnimalLocationUpdatedEvent(park_id=1, time=time, animal_id=animal_id, location=location)


def _removed(animal_id: int = 1, time: datetime = T0) -> AnimalRemovedEvent:
    return AnimalRemovedEvent(park_id=1, time=time, animal_id=animal_id)


class TestEventReconciler:
    def setup_method(self):
        self.park_store = ParkStore(db_path=":memory:")
        self.client = InMemoryKeyValueClient()
        self.derived_index = DerivedIndexStore(self.client)
        self.reconciler = EventReconciler(
            park_store=self.park_store,
            derived_index=self.derived_index,
        )

    def _index_state(self, *locations: str) -> dict:
        return {loc: self.derived_index.hungry_carnivores(loc) for loc in locations}

    # === ADDED ===

    def test_added_creates_animal(self):
        outcome = self.reconciler.apply(_added())

        assert outcome.status == OutcomeStatus.APPLIED
        animal = self.park_store.get_animal(1)
        assert animal.name == "Rex"
        assert animal.species == "lion"
        assert animal.is_active is True
        assert animal.added_at == T0

        entry = self.park_store.query_events()[0]
        assert entry.kind == "animal_added"
        assert entry.metadata == {
            "name": "Rex",
            "species": "lion",
            "sex": "male",
            "digestion_period_in_hours": 24,
            "herbivore": False,
        }

        record = self.derived_index.get_animal(1)
        assert record.herbivore is False
        assert record.digestion_period_in_hours == 24
        assert record.is_active is True
        assert not record.is_known("location")
        assert not record.is_known("last_fed_at")

    def test_readd_after_removal_stays_inactive(self):
        self.reconciler.apply(_removed(time=T0))
        self.reconciler.apply(_added(time=_at(1)))

        assert self.park_store.get_animal(1).is_active is False
        assert self.derived_index.get_animal(1).is_active is False

    def test_readd_without_removal_is_active(self):
        self.reconciler.apply(_added())
        self.reconciler.apply(_added(time=_at(1)))

        animal = self.park_store.get_animal(1)
        assert animal.is_active is True
        assert animal.added_at == _at(1)

    def test_added_keeps_earlier_location_and_feeding(self):
        self.reconciler.apply(_fed(time=T0))
        self.reconciler.apply(_moved("b2", time=_at(1)))
        self.reconciler.apply(_added(time=_at(2)))

        animal = self.park_store.get_animal(1)
        assert animal.last_fed_at == T0
        assert animal.current_location == "b2"
        assert self.derived_index.get_animal(1).location == "B2"

    def test_added_redelivery_keeps_hungry_carnivore_indexed(self):
        added = _added(digestion=2, time=T0)
        self.reconciler.apply(added)
        self.reconciler.apply(_fed(time=T0))
        self.reconciler.apply(_moved("A5", time=_at(30)))
        assert self.derived_index.hungry_carnivores("A5") == {1: _at(30)}

        self.reconciler.apply(added)

        assert self.derived_index.hungry_carnivores("A5") == {1: _at(30)}

    # === FED ===

    def test_fed_before_added_creates_partial_animal(self):
        self.reconciler.apply(_fed(animal_id=8, time=T0))

        animal = self.park_store.get_animal(8)
        assert animal.park_id == 1
        assert animal.last_fed_at == T0
        assert animal.name is None
        assert animal.herbivore is None
        assert self.derived_index.get_animal(8).last_fed_at == T0

    def test_fed_removes_hunger_entry(self):
        self.reconciler.apply(_added())
        self.reconciler.apply(_moved("A5", time=_at(1)))
        assert self.derived_index.hungry_carnivores("A5") == {1: _at(1)}

        self.reconciler.apply(_fed(time=_at(2)))

        assert self.derived_index.hungry_carnivores("A5") == {}
        assert self.park_store.get_animal(1).last_fed_at == _at(2)

    # === LOCATION ===

    def test_unfed_carnivore_is_indexed(self):
        self.reconciler.apply(_added())
        outcome = self.reconciler.apply(_moved("z15", time=_at(1)))

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.placement == PlacementResult.HUNGER_RISK
        assert self.park_store.get_animal(1).current_location == "z15"
        assert self.derived_index.hungry_carnivores("Z15") == {1: _at(1)}

        entry = self.park_store.query_events()[-1]
        assert entry.metadata == {"location": "z15"}

    def test_recently_fed_carnivore_not_indexed(self):
        self.reconciler.apply(_added(digestion=24))
        self.reconciler.apply(_fed(time=T0))
        outcome = self.reconciler.apply(_moved("A5", time=_at(3)))

        assert outcome.placement == PlacementResult.PLACED
        assert self.derived_index.hungry_carnivores("A5") == {}

    def test_herbivore_not_indexed(self):
        self.reconciler.apply(_added(herbivore=True))
        self.reconciler.apply(_moved("A5", time=_at(100)))

        assert self.derived_index.hungry_carnivores("A5") == {}

    def test_late_location_event_does_not_regress(self):
        self.reconciler.apply(_added(digestion=2))
        self.reconciler.apply(_moved("X1", time=_at(10)))

        outcome = self.reconciler.apply(_moved("Y1", time=_at(5)))

        assert outcome.status == OutcomeStatus.STALE
        assert outcome.placement == PlacementResult.STALE
        assert self.derived_index.get_animal(1).location == "X1"
        assert self.derived_index.hungry_carnivores("X1") == {1: _at(10)}
        assert self.derived_index.hungry_carnivores("Y1") == {}
        # Authoritative row and log still record what arrived
        assert self.park_store.get_animal(1).current_location == "Y1"
        assert self.park_store.count_events() == 3

    def test_location_before_added_is_indexed(self):
        self.reconciler.apply(_moved("A5", animal_id=3, time=T0))

        animal = self.park_store.get_animal(3)
        assert animal.current_location == "A5"
        assert animal.is_active is True
        assert self.derived_index.hungry_carnivores("A5") == {3: T0}

    # === REMOVED ===

    def test_removed(self):
        self.reconciler.apply(_added())
        self.reconciler.apply(_moved("A5", time=_at(1)))
        self.reconciler.apply(_removed(time=_at(2)))

        animal = self.park_store.get_animal(1)
        assert animal.is_active is False
        assert animal.removed_at == _at(2)
        assert self.derived_index.get_animal(1) is None
        assert self.derived_index.hungry_carnivores("A5") == {}

    def test_removed_before_added(self):
        self.reconciler.apply(_removed(animal_id=4, time=T0))

        animal = self.park_store.get_animal(4)
        assert animal.is_active is False
        assert animal.removed_at == T0
        assert self.client.dbsize() == 0

    # === IDEMPOTENCE ===

    @pytest.mark.parametrize("make_event", [
        lambda: _added(),
        lambda: _fed(time=_at(1)),
        lambda: _removed(time=_at(1)),
    ])
    def test_redelivery_is_idempotent(self, make_event):
        self.reconciler.apply(_added())
        self.reconciler.apply(_moved("A5", time=T0))

        self.reconciler.apply(make_event())
        record_once = self.derived_index.get_animal(1)
        index_once = self._index_state("A5")

        self.reconciler.apply(make_event())

        assert self.derived_index.get_animal(1) == record_once
        assert self._index_state("A5") == index_once

    # === MAINTENANCE ===

    def test_maintenance_upserts_location(self):
        event = MaintenancePerformedEvent(park_id=1, time=T0, location="A5")
        outcome = self.reconciler.apply(event)

        assert outcome.status == OutcomeStatus.APPLIED
        assert self.park_store.get_location("A5", 1).maintenance_performed == T0
        assert self.park_store.count_events() == 0

    def test_maintenance_failure_does_not_raise(self):
        self.park_store.close()
        event = MaintenancePerformedEvent(park_id=1, time=T0, location="A5")

        outcome = self.reconciler.apply(event)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error

    def test_other_handlers_propagate_store_errors(self):
        self.park_store.close()

        with pytest.raises(Exception):
            self.reconciler.apply(_fed())

    # === DISPATCH ===

    def test_unhandled_event_type(self):
        with pytest.raises(UnhandledEventError):
            self.reconciler.apply(BaseParkEvent(park_id=1, time=T0))

    # === BULK WIPE ===

    def test_delete_all_data(self):
        self.reconciler.apply(_added(animal_id=1))
        self.reconciler.apply(_added(animal_id=2, herbivore=True))
        self.reconciler.apply(_moved("A5", animal_id=1, time=_at(1)))
        self.reconciler.apply(_moved("B7", animal_id=2, time=_at(1)))
        self.reconciler.apply(MaintenancePerformedEvent(park_id=1, time=T0, location="A5"))

        counts = self.reconciler.delete_all_data()

        assert counts == {"index_keys": 3, "events": 4, "animals": 2, "locations": 1}
        assert self.client.dbsize() == 0
        assert self.derived_index.hungry_carnivores("A5") == {}
        assert self.park_store.count_events() == 0
        assert self.park_store.count_animals() == 0
        assert self.park_store.count_locations() == 0

        # Wiping again is a no-op
        assert self.reconciler.delete_all_data() == {
            "index_keys": 0, "events": 0, "animals": 0, "locations": 0,
        }
