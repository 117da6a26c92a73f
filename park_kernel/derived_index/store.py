"""
Derived Index Store: the fast "hungry carnivores at location L" lookup.

Key layout:
  animal:{id}            JSON DerivedAnimalRecord (only known fields written)
  carnivore:{LOCATION}   hash of str(animal id) -> ISO-8601 placement time

Behavioral Contract:
- Computed solely from events; rebuildable by replaying the event log.
- Placements are last-writer-wins by *event* time: a placement older than the
  one already indexed for the animal is dropped without touching either key.
- Unknown feeding data never suppresses an entry. Only an animal known to be
  a herbivore, inactive, or fed within its digestion period stays out.
- Not transactional. A failure between two writes leaves the keys diverged
  until the next event for that animal.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from park_kernel.derived_index.client import KeyValueClient
from park_kernel.models.derived import AnimalPatch, DerivedAnimalRecord
from park_kernel.models.reconciler import PlacementResult

logger = logging.getLogger(__name__)

ANIMAL_KEY_PATTERN = "animal:*"
CARNIVORE_KEY_PATTERN = "carnivore:*"


def animal_key(animal_id: int) -> str:
    return f"animal:{animal_id}"


def carnivore_key(location: str) -> str:
    return f"carnivore:{location}"


def normalize_location(location: str) -> str:
    """Upper-case the first character only ("a5" -> "A5")."""
    return location[:1].upper() + location[1:]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DerivedIndexStore:
    """Per-animal records plus per-location hunger indices over a key-value client."""

    def __init__(self, client: KeyValueClient):
        self._client = client

    @property
    def client(self) -> KeyValueClient:
        return self._client

    # === READS ===

    def get_animal(self, animal_id: int) -> Optional[DerivedAnimalRecord]:
        """The stored record, or None if absent or unreadable."""
        return DerivedAnimalRecord.from_json(self._client.get(animal_key(animal_id)))

    def hungry_carnivores(self, location: str) -> Dict[int, datetime]:
        """Animals indexed as hunger risks at a location, with their placement times."""
        entries = self._client.hgetall(carnivore_key(normalize_location(location)))
        result: Dict[int, datetime] = {}
        for raw_id, raw_time in entries.items():
            try:
                result[int(raw_id)] = _as_utc(datetime.fromisoformat(raw_time))
            except ValueError:
                logger.warning(
                    "Skipping unreadable hunger entry %s=%r at %s", raw_id, raw_time, location
                )
        return result

    def _placed_at(self, location: str, animal_id: int) -> Optional[datetime]:
        raw = self._client.hget(carnivore_key(location), str(animal_id))
        if not raw:
            return None
        try:
            return _as_utc(datetime.fromisoformat(raw))
        except ValueError:
            return None

    # === WRITES ===

    def _save(self, animal_id: int, record: DerivedAnimalRecord) -> None:
        self._client.set(animal_key(animal_id), record.to_json())

    def _unindex(self, location: str, animal_id: int) -> None:
        self._client.hdel(carnivore_key(location), str(animal_id))

    def place_animal(
        self, animal_id: int, location: str, event_time: datetime
    ) -> PlacementResult:
        """
        Record that an animal moved to ``location`` at ``event_time`` and decide
        whether it is a hunger risk there.
        """
        event_time = _as_utc(event_time)
        previous = self.get_animal(animal_id)
        previous_location = previous.location if previous else None

        if previous_location:
            placed_at = self._placed_at(previous_location, animal_id)
            if placed_at is not None and placed_at > event_time:
                logger.debug(
                    "Ignoring stale placement of animal %s at %s (%s < %s)",
                    animal_id, location, event_time.isoformat(), placed_at.isoformat(),
                )
                return PlacementResult.STALE

        normalized = normalize_location(location)
        record = (previous or DerivedAnimalRecord()).merged(location=normalized)
        self._save(animal_id, record)

        if previous_location:
            self._unindex(previous_location, animal_id)

        if record.herbivore is True or record.is_active is False:
            return PlacementResult.PLACED

        if record.last_fed_at is not None and record.digestion_period_in_hours is not None:
            since_fed = event_time - _as_utc(record.last_fed_at)
            if since_fed < timedelta(hours=record.digestion_period_in_hours):
                return PlacementResult.PLACED

        self._client.hset(carnivore_key(normalized), str(animal_id), event_time.isoformat())
        return PlacementResult.HUNGER_RISK

    def update_animal(self, animal_id: int, patch: AnimalPatch) -> DerivedAnimalRecord:
        """
        Merge the supplied attributes into the animal's record. If this patch
        marks the animal herbivore, fed, or inactive, it leaves the hunger
        index of its known location. Fields the patch does not carry never
        remove an entry.
        """
        record = patch.apply_to(self.get_animal(animal_id) or DerivedAnimalRecord())
        self._save(animal_id, record)

        if record.location and (
            patch.herbivore is True
            or ("last_fed_at" in patch.model_fields_set and patch.last_fed_at is not None)
            or patch.is_active is False
        ):
            self._unindex(record.location, animal_id)
        return record

    def remove_animal(self, animal_id: int) -> bool:
        """Drop an animal from tracking. Returns False if it was not tracked."""
        record = self.get_animal(animal_id)
        if record is None:
            return False

        if record.location:
            self._unindex(record.location, animal_id)
        self._client.delete(animal_key(animal_id))
        logger.info(
            "Animal %s removed from location %s", animal_id, record.location or "(no location)"
        )
        return True

    def clear_all(self) -> int:
        """Delete every animal record and hunger index. Returns the key count removed."""
        keys = list(self._client.scan_iter(match=ANIMAL_KEY_PATTERN))
        keys += list(self._client.scan_iter(match=CARNIVORE_KEY_PATTERN))
        if keys:
            self._client.delete(*keys)
        logger.info("Cleared %d keys from the derived index", len(keys))
        return len(keys)
