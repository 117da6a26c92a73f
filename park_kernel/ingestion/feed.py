"""Park feed client: fetches raw event batches over HTTP with httpx."""

import logging
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Raised when the upstream feed cannot be fetched or is not an event list."""
    pass


class FeedClient:
    """
    Synchronous client for the upstream telemetry feed.

    Args:
        url: Feed endpoint returning a JSON array of events
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests pass an httpx.MockTransport)
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def fetch(self) -> List[dict]:
        """Fetch one batch of raw events, in feed order."""
        try:
            response = self._client.get(self.url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise FeedError(f"Failed to fetch data from {self.url}: {e}") from e

        if not isinstance(data, list):
            raise FeedError(
                f"Feed at {self.url} returned {type(data).__name__}, expected a list"
            )
        logger.debug("Fetched %d events from %s", len(data), self.url)
        return data

    def close(self) -> None:
        self._client.close()
