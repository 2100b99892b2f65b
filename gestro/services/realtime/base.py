"""
Change Feed Abstract Base Class

Defines the publish/subscribe contract used to fan out row changes
(order inserts, order status updates, driver location inserts) to
interested listeners such as the staff notification centre.

Design Pattern: Strategy Pattern
    - InMemoryChangeFeed for development and tests (single process)
    - RedisChangeFeed for staging/production (cross-process pub/sub)

Author: Khalil Bannouri
Version: 1.0.0
"""

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from gestro.models import utcnow

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """
    A committed row change.

    Attributes:
        table: Table the row belongs to (e.g. "orders")
        event_type: INSERT, UPDATE or DELETE
        new: Row after the change (empty for DELETE)
        old: Row before the change (UPDATE/DELETE only)
        committed_at: When the change was committed
    """
    table: str
    event_type: ChangeType
    new: dict = field(default_factory=dict)
    old: Optional[dict] = None
    committed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "table": self.table,
            "event_type": self.event_type.value,
            "new": self.new,
            "old": self.old,
            "committed_at": self.committed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeEvent":
        return cls(
            table=data["table"],
            event_type=ChangeType(data["event_type"]),
            new=data.get("new") or {},
            old=data.get("old"),
            committed_at=datetime.fromisoformat(data["committed_at"]),
        )


ChangeCallback = Callable[[ChangeEvent], Union[Awaitable[None], None]]


class Subscription:
    """Handle returned by BaseChangeFeed.subscribe()."""

    def __init__(
        self,
        feed: "BaseChangeFeed",
        table: str,
        event_type: Optional[ChangeType],
        callback: ChangeCallback,
        filters: Optional[dict[str, Any]] = None,
    ):
        self._feed = feed
        self.table = table
        self.event_type = event_type
        self.callback = callback
        self.filters = filters or {}
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if not self.active or event.table != self.table:
            return False
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        row = event.new or event.old or {}
        return all(row.get(key) == value for key, value in self.filters.items())

    async def deliver(self, event: ChangeEvent) -> None:
        result = self.callback(event)
        if inspect.isawaitable(result):
            await result

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._feed._remove(self)


class BaseChangeFeed(ABC):
    """
    Abstract base class for change feeds.

    Subscribers register a callback for a table and optionally an event
    type and equality filters on the changed row. Callbacks may be plain
    functions or coroutines.

    Example:
        >>> feed = get_change_feed()
        >>> sub = feed.subscribe("orders", ChangeType.INSERT, on_new_order)
        >>> ...
        >>> sub.unsubscribe()
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the feed backend."""
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Publish a committed change to all matching subscribers."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the feed backend is reachable."""
        pass

    async def start(self) -> None:
        """Begin receiving events (no-op for in-process feeds)."""

    async def stop(self) -> None:
        """Stop receiving events and release resources."""

    def subscribe(
        self,
        table: str,
        event_type: Optional[ChangeType],
        callback: ChangeCallback,
        filters: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        subscription = Subscription(self, table, event_type, callback, filters)
        self._subscriptions.append(subscription)
        logger.debug(
            f"Subscribed to {table}:{event_type.value if event_type else '*'} "
            f"({len(self._subscriptions)} active)"
        )
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def _dispatch(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.matches(event):
                continue
            try:
                await subscription.deliver(event)
            except Exception:
                # One broken listener must not stop delivery to the rest
                logger.exception(
                    f"Change feed subscriber failed on {event.table}:{event.event_type.value}"
                )
