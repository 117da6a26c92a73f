"""Authoritative park records: animals, the event log, and locations."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class Animal(BaseModel):
    """Current state of one animal. Fields left None are unknown."""

    id: int
    name: Optional[str] = None
    species: Optional[str] = None
    sex: Optional[Literal["male", "female"]] = None
    digestion_period_in_hours: Optional[float] = None
    herbivore: Optional[bool] = None
    current_location: Optional[str] = None
    last_fed_at: Optional[datetime] = None
    added_at: Optional[datetime] = None
    is_active: bool = True
    removed_at: Optional[datetime] = None
    park_id: Optional[int] = None


class ParkEventLogEntry(BaseModel):
    """One applied event. Append-only."""

    id: Optional[int] = None                # Assigned by the store
    kind: str
    animal_id: int
    park_id: int
    time: datetime
    metadata: Optional[dict] = None         # Kind-specific payload
    created_at: Optional[datetime] = None   # Ingestion time, set by the store


class Location(BaseModel):
    """Maintenance state of a location within a park."""

    location: str                           # e.g., "A5", "Z15"
    park_id: int
    maintenance_performed: Optional[datetime] = None
    updated_at: Optional[datetime] = None
