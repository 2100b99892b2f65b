"""
Staff Notification Centre

Listens to the orders change feed and keeps an in-memory list of
notifications for the back-office, newest first. Connected staff
clients register a sink (the websocket route does) and receive a toast
alert for every new notification unless they turned notifications off.

Nothing here is durable: a restart empties the list and there is no
replay of events missed while detached.

Author: Khalil Bannouri
Version: 1.0.0
"""

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Awaitable, Callable, Optional, Union

from gestro.core.config import get_settings
from gestro.models import OrderStatus, utcnow
from gestro.services.order_status import STATUS_LABELS, STATUS_SEVERITY
from gestro.services.realtime import BaseChangeFeed, ChangeEvent, ChangeType, Subscription

logger = logging.getLogger(__name__)

AlertSink = Callable[[dict], Union[Awaitable[None], None]]


@dataclass
class StaffNotification:
    title: str
    message: str
    type: str = "info"
    order_id: Optional[str] = None
    status: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)
    read: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "order_id": self.order_id,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }


@dataclass
class NotificationPreferences:
    show_notifications: bool = True
    play_sounds: bool = True


class StaffNotificationCenter:
    """
    In-memory notification list fed by order change events.

    Example:
        >>> center = StaffNotificationCenter(limit=50)
        >>> center.attach(feed)
        >>> center.add_sink(websocket_send)
    """

    def __init__(self, limit: int = 50):
        self.limit = limit
        self.preferences = NotificationPreferences()
        self._notifications: list[StaffNotification] = []
        self._sinks: list[AlertSink] = []
        self._subscriptions: list[Subscription] = []

    # =========================================================================
    # FEED WIRING
    # =========================================================================

    def attach(self, feed: BaseChangeFeed) -> None:
        """Subscribe to order inserts and updates on the feed."""
        if self._subscriptions:
            return
        self._subscriptions = [
            feed.subscribe("orders", ChangeType.INSERT, self.handle_order_insert),
            feed.subscribe("orders", ChangeType.UPDATE, self.handle_order_update),
        ]
        logger.info("Staff notification centre attached to change feed")

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    async def handle_order_insert(self, event: ChangeEvent) -> None:
        order = event.new
        order_id = order.get("id", "")
        total = order.get("total_amount") or 0
        await self.add_notification(StaffNotification(
            title="New order",
            message=f"Order #{order_id[:8]} received (${total:.2f})",
            type="info",
            order_id=order_id,
            status=order.get("status"),
        ))

    async def handle_order_update(self, event: ChangeEvent) -> None:
        new_status = event.new.get("status")
        old_status = (event.old or {}).get("status")
        if not new_status or new_status == old_status:
            return

        status = OrderStatus(new_status)
        order_id = event.new.get("id", "")
        await self.add_notification(StaffNotification(
            title="Order status updated",
            message=f"Order #{order_id[:8]} is now {STATUS_LABELS[status]}",
            type=STATUS_SEVERITY[status],
            order_id=order_id,
            status=status.value,
        ))

    # =========================================================================
    # NOTIFICATION LIST
    # =========================================================================

    async def add_notification(self, notification: StaffNotification) -> StaffNotification:
        self._notifications.insert(0, notification)
        del self._notifications[self.limit:]

        if self.preferences.show_notifications:
            await self._alert(notification)
        return notification

    @property
    def notifications(self) -> list[StaffNotification]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def get(self, notification_id: str) -> Optional[StaffNotification]:
        return next((n for n in self._notifications if n.id == notification_id), None)

    def mark_as_read(self, notification_id: str) -> bool:
        notification = self.get(notification_id)
        if notification is None:
            return False
        notification.read = True
        return True

    def mark_all_as_read(self) -> int:
        changed = 0
        for notification in self._notifications:
            if not notification.read:
                notification.read = True
                changed += 1
        return changed

    def remove(self, notification_id: str) -> bool:
        notification = self.get(notification_id)
        if notification is None:
            return False
        self._notifications.remove(notification)
        return True

    def clear(self) -> None:
        self._notifications.clear()

    # =========================================================================
    # PREFERENCES & ALERTS
    # =========================================================================

    def update_preferences(
        self,
        show_notifications: Optional[bool] = None,
        play_sounds: Optional[bool] = None,
    ) -> NotificationPreferences:
        if show_notifications is not None:
            self.preferences.show_notifications = show_notifications
        if play_sounds is not None:
            self.preferences.play_sounds = play_sounds
        return self.preferences

    def add_sink(self, sink: AlertSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: AlertSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    async def _alert(self, notification: StaffNotification) -> None:
        alert = {
            "notification": notification.to_dict(),
            "sound": self.preferences.play_sounds,
            "unread_count": self.unread_count,
        }
        for sink in list(self._sinks):
            try:
                result = sink(alert)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # Sinks whose client went away are dropped
                logger.warning("Staff alert sink failed, removing it", exc_info=True)
                self.remove_sink(sink)


@lru_cache()
def get_staff_notification_center() -> StaffNotificationCenter:
    """Process-wide notification centre."""
    return StaffNotificationCenter(limit=get_settings().notification_limit)


def reset_staff_notification_center() -> None:
    get_staff_notification_center.cache_clear()
