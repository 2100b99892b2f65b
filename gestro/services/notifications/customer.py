"""
Customer status notifier.

Messages the ordering customer when their order moves to preparing,
ready, delivered or cancelled. Runs off the change feed with its own
database session, so it works the same whether the update came from an
API request, a Celery task or the CLI.
"""

import logging
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gestro.models import OrderStatus, Profile
from gestro.services.notifications.base import BaseNotificationService, NotificationResult
from gestro.services.realtime import BaseChangeFeed, ChangeEvent, ChangeType, Subscription

logger = logging.getLogger(__name__)

NOTIFY_ON = frozenset({
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})


class CustomerStatusNotifier:

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        service: BaseNotificationService,
    ):
        self.session_factory = session_factory
        self.service = service
        self._subscription: Optional[Subscription] = None

    def attach(self, feed: BaseChangeFeed) -> None:
        if self._subscription is None:
            self._subscription = feed.subscribe("orders", ChangeType.UPDATE, self.handle_order_update)

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _load_customer(self, customer_id: str) -> Optional[Profile]:
        async with self.session_factory() as session:
            result = await session.execute(select(Profile).where(Profile.id == customer_id))
            return result.scalar_one_or_none()

    async def handle_order_update(self, event: ChangeEvent) -> Optional[NotificationResult]:
        new_status = event.new.get("status")
        if not new_status or new_status == (event.old or {}).get("status"):
            return None

        status = OrderStatus(new_status)
        customer_id = event.new.get("customer_id")
        if status not in NOTIFY_ON or not customer_id:
            return None

        order_id = event.new["id"]
        try:
            customer = await self._load_customer(customer_id)
        except SQLAlchemyError:
            logger.exception(f"Could not load customer {customer_id} for order {order_id}")
            return None

        if customer is None or not (customer.email or customer.phone):
            logger.debug(f"Order {order_id}: customer has no contact channel")
            return None

        result = await self.service.send_order_status_update(
            order_id=order_id,
            status=status,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
        )
        if result.success:
            logger.info(f"Order {order_id}: customer notified of '{status.value}' via {result.provider}")
        else:
            logger.warning(f"Order {order_id}: customer notification failed: {result.error_message}")
        return result
