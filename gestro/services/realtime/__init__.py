"""
Change Feed Factory

Returns the in-memory feed in development and the Redis pub/sub feed in
staging/production.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from gestro.core.config import get_settings
from gestro.services.realtime.base import (
    BaseChangeFeed,
    ChangeEvent,
    ChangeType,
    Subscription,
)
from gestro.services.realtime.memory import InMemoryChangeFeed
from gestro.services.realtime.redis_feed import RedisChangeFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_feed() -> BaseChangeFeed:
    """Get the configured change feed (cached per process)."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Change Feed: Using InMemoryChangeFeed (development mode)")
        return InMemoryChangeFeed()

    logger.info(f"Change Feed: Using RedisChangeFeed ({settings.env_mode.value} mode)")
    return RedisChangeFeed()


def reset_change_feed() -> None:
    """Clear the cached feed instance."""
    get_change_feed.cache_clear()


__all__ = [
    "get_change_feed",
    "reset_change_feed",
    "BaseChangeFeed",
    "ChangeEvent",
    "ChangeType",
    "Subscription",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
]
