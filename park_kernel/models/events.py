"""Park Events: the telemetry feed's closed set of event kinds."""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator


# Older feed producers name animals "dino" and use dinosaur_id / gender
LEGACY_KINDS = {
    "dino_added": "animal_added",
    "dino_fed": "animal_fed",
    "dino_location_updated": "animal_location_updated",
    "dino_removed": "animal_removed",
}

ANIMAL_ID_ALIASES = AliasChoices("animal_id", "dinosaur_id")


class BaseParkEvent(BaseModel):
    """Fields every feed event carries."""

    park_id: int
    time: datetime

    @field_validator("time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Feed timestamps without an offset are UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def subject(self) -> str:
        """Human-readable identifier of what this event is about."""
        animal_id = getattr(self, "animal_id", None)
        if animal_id is not None:
            return f"animal {animal_id}"
        return f"location {getattr(self, 'location', '')}"


class AnimalAddedEvent(BaseParkEvent):
    kind: Literal["animal_added"] = "animal_added"
    animal_id: int = Field(validation_alias=AliasChoices("id", "animal_id", "dinosaur_id"))
    name: str
    species: str
    sex: Literal["male", "female"] = Field(validation_alias=AliasChoices("sex", "gender"))
    digestion_period_in_hours: float
    herbivore: bool


class AnimalFedEvent(BaseParkEvent):
    kind: Literal["animal_fed"] = "animal_fed"
    animal_id: int = Field(validation_alias=ANIMAL_ID_ALIASES)


class AnimalLocationUpdatedEvent(BaseParkEvent):
    kind: Literal["animal_location_updated"] = "animal_location_updated"
    animal_id: int = Field(validation_alias=ANIMAL_ID_ALIASES)
    location: str = Field(min_length=1)


class AnimalRemovedEvent(BaseParkEvent):
    kind: Literal["animal_removed"] = "animal_removed"
    animal_id: int = Field(validation_alias=ANIMAL_ID_ALIASES)


class MaintenancePerformedEvent(BaseParkEvent):
    kind: Literal["maintenance_performed"] = "maintenance_performed"
    location: str = Field(min_length=1)


ParkEvent = Annotated[
    Union[
        AnimalAddedEvent,
        AnimalFedEvent,
        AnimalLocationUpdatedEvent,
        AnimalRemovedEvent,
        MaintenancePerformedEvent,
    ],
    Field(discriminator="kind"),
]

EVENT_TYPES = (
    AnimalAddedEvent,
    AnimalFedEvent,
    AnimalLocationUpdatedEvent,
    AnimalRemovedEvent,
    MaintenancePerformedEvent,
)

_event_adapter: TypeAdapter = TypeAdapter(ParkEvent)


def parse_event(raw: dict) -> BaseParkEvent:
    """Validate one raw feed item into its concrete event type.

    Raises pydantic.ValidationError for unknown kinds or missing fields.
    """
    if isinstance(raw, dict) and isinstance(raw.get("kind"), str):
        kind = LEGACY_KINDS.get(raw["kind"])
        if kind is not None:
            raw = {**raw, "kind": kind}
    return _event_adapter.validate_python(raw)


def raw_kind(raw: object) -> Optional[str]:
    """Best-effort kind of a raw item that may have failed validation."""
    if isinstance(raw, dict):
        kind = raw.get("kind")
        return str(kind) if kind is not None else None
    return None


def sort_by_time(events: List[BaseParkEvent]) -> List[BaseParkEvent]:
    """Stable sort by event time, used by the offline replay path."""
    return sorted(events, key=lambda e: e.time)
