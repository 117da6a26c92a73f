"""
Park Kernel settings.

Loaded from ``PARK_*`` environment variables (and an optional ``.env`` file)
with pydantic-settings.
"""

import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ParkSettings(BaseSettings):
    """Runtime configuration for the stores, the feed, and the trigger."""

    model_config = SettingsConfigDict(
        env_prefix="PARK_",
        env_file=".env",
        extra="ignore",
    )

    database_path: str = Field(default=":memory:", description="sqlite path of the authoritative store")
    redis_url: Optional[str] = Field(
        default=None, description="Derived index redis URL; unset selects the in-process client"
    )
    feed_url: str = Field(default="https://api.example.com/data")
    feed_timeout_seconds: float = Field(default=10.0, gt=0)
    audit_dir: Optional[str] = Field(default=None, description="Directory for raw batch audit files")
    trigger_interval_seconds: int = Field(default=60, ge=1)
    scheduled_ingestion: bool = Field(
        default=True, description="Run the scheduled trigger while the API is up"
    )
    log_level: str = Field(default="INFO")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for a process entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
