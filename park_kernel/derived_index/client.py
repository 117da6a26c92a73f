"""
Key-value client handles for the derived index.

The derived index talks to its backend through the small subset of the redis
command set declared in ``KeyValueClient``. Production uses a redis-py client;
the in-process client serves tests and single-process deployments.
"""

import fnmatch
import logging
from typing import Dict, Iterator, Optional, Protocol

import redis

from park_kernel.config import ParkSettings

logger = logging.getLogger(__name__)


class KeyValueClient(Protocol):
    """Redis commands the derived index relies on (string responses)."""

    def get(self, name: str) -> Optional[str]: ...

    def set(self, name: str, value: str) -> Optional[bool]: ...

    def delete(self, *names: str) -> int: ...

    def hget(self, name: str, key: str) -> Optional[str]: ...

    def hset(self, name: str, key: str, value: str) -> int: ...

    def hdel(self, name: str, *keys: str) -> int: ...

    def hgetall(self, name: str) -> Dict[str, str]: ...

    def scan_iter(self, match: Optional[str] = None) -> Iterator[str]: ...


class InMemoryKeyValueClient:
    """
    In-process key-value client.
    Mirrors redis semantics for the commands above: a hash whose last field
    is deleted disappears, and ``delete`` reports how many keys existed.
    """

    def __init__(self):
        self._strings: Dict[str, str] = {}
        self._hashes: Dict[str, Dict[str, str]] = {}

    def get(self, name: str) -> Optional[str]:
        return self._strings.get(name)

    def set(self, name: str, value: str) -> bool:
        self._hashes.pop(name, None)
        self._strings[name] = value
        return True

    def delete(self, *names: str) -> int:
        removed = 0
        for name in names:
            if self._strings.pop(name, None) is not None:
                removed += 1
            elif self._hashes.pop(name, None) is not None:
                removed += 1
        return removed

    def hget(self, name: str, key: str) -> Optional[str]:
        return self._hashes.get(name, {}).get(key)

    def hset(self, name: str, key: str, value: str) -> int:
        self._strings.pop(name, None)
        fields = self._hashes.setdefault(name, {})
        added = 0 if key in fields else 1
        fields[key] = value
        return added

    def hdel(self, name: str, *keys: str) -> int:
        fields = self._hashes.get(name)
        if fields is None:
            return 0
        removed = 0
        for key in keys:
            if fields.pop(key, None) is not None:
                removed += 1
        if not fields:
            del self._hashes[name]
        return removed

    def hgetall(self, name: str) -> Dict[str, str]:
        return dict(self._hashes.get(name, {}))

    def scan_iter(self, match: Optional[str] = None) -> Iterator[str]:
        keys = list(self._strings) + list(self._hashes)
        for key in keys:
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def dbsize(self) -> int:
        return len(self._strings) + len(self._hashes)


def create_kv_client(settings: ParkSettings) -> KeyValueClient:
    """Build the client handle the derived index is constructed with."""
    if settings.redis_url:
        return redis.Redis.from_url(settings.redis_url, decode_responses=True)
    logger.warning(
        "PARK_REDIS_URL is not set; the derived index is held in process memory "
        "and is lost on restart"
    )
    return InMemoryKeyValueClient()
