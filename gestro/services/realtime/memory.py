"""
In-Memory Change Feed

Delivers events to subscribers of the same process as soon as they are
published. Used in development mode and by the test suite. Events are
not persisted and nothing is replayed to late subscribers.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging

from gestro.services.realtime.base import BaseChangeFeed, ChangeEvent

logger = logging.getLogger(__name__)


class InMemoryChangeFeed(BaseChangeFeed):
    """Process-local change feed."""

    def __init__(self):
        super().__init__()
        self.published_count = 0
        logger.info("InMemoryChangeFeed initialized")

    @property
    def provider_name(self) -> str:
        return "memory"

    async def publish(self, event: ChangeEvent) -> None:
        self.published_count += 1
        logger.debug(
            f"Memory feed: {event.table}:{event.event_type.value} "
            f"-> {self.subscriber_count} subscriber(s)"
        )
        await self._dispatch(event)

    async def health_check(self) -> bool:
        return True
