"""Park Kernel data models."""

from park_kernel.models.derived import AnimalPatch, DerivedAnimalRecord
from park_kernel.models.events import (
    AnimalAddedEvent,
    AnimalFedEvent,
    AnimalLocationUpdatedEvent,
    AnimalRemovedEvent,
    BaseParkEvent,
    MaintenancePerformedEvent,
    ParkEvent,
)
from park_kernel.models.park import Animal, Location, ParkEventLogEntry
from park_kernel.models.reconciler import (
    BatchReport,
    EventOutcome,
    OutcomeStatus,
    PlacementResult,
)

__all__ = [
    "Animal",
    "AnimalAddedEvent",
    "AnimalFedEvent",
    "AnimalLocationUpdatedEvent",
    "AnimalPatch",
    "AnimalRemovedEvent",
    "BaseParkEvent",
    "BatchReport",
    "DerivedAnimalRecord",
    "EventOutcome",
    "Location",
    "MaintenancePerformedEvent",
    "OutcomeStatus",
    "ParkEvent",
    "ParkEventLogEntry",
    "PlacementResult",
]
