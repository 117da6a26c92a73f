"""
Derived Animal Record: the compact per-animal cache entry behind the hunger index.

A field that is absent from the record is *unknown*, never false or zero.
Presence is tracked through pydantic's ``model_fields_set``, so a record
loaded from ``{"last_fed_at": null}`` knows the animal has never been fed,
while one loaded from ``{}`` knows nothing about feeding at all.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ValidationError


class DerivedAnimalRecord(BaseModel):
    """Partial view of an animal, built up from different event kinds."""

    location: Optional[str] = None
    herbivore: Optional[bool] = None
    digestion_period_in_hours: Optional[float] = None
    last_fed_at: Optional[datetime] = None
    is_active: Optional[bool] = None

    def is_known(self, field: str) -> bool:
        """Whether the field was ever supplied (an explicit null counts)."""
        return field in self.model_fields_set

    def merged(self, **updates) -> "DerivedAnimalRecord":
        """Return a copy with ``updates`` applied and all other known fields kept."""
        values = self.model_dump(exclude_unset=True)
        values.update(updates)
        return DerivedAnimalRecord(**values)

    def to_json(self) -> str:
        """Wire format: only known fields are written."""
        return self.model_dump_json(exclude_unset=True)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["DerivedAnimalRecord"]:
        """Parse a stored record. Missing or malformed input yields None."""
        if not raw:
            return None
        try:
            return cls.model_validate_json(raw)
        except ValidationError:
            return None


class AnimalPatch(BaseModel):
    """
    Partial update for a DerivedAnimalRecord.

    Only fields passed to the constructor are applied. ``last_fed_at=None``
    passed explicitly clears the feeding time to an explicit null; for the
    other fields a None value is ignored.
    """

    herbivore: Optional[bool] = None
    digestion_period_in_hours: Optional[float] = None
    last_fed_at: Optional[datetime] = None
    is_active: Optional[bool] = None

    def apply_to(self, record: DerivedAnimalRecord) -> DerivedAnimalRecord:
        updates = {}
        for field in self.model_fields_set:
            value = getattr(self, field)
            if value is None and field != "last_fed_at":
                continue
            updates[field] = value
        return record.merged(**updates)
