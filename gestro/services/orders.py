"""
Order Repository

Create/read/update operations over orders and their line items.

Writes that touch more than one row (order header, line items, derived
total) run inside a single database transaction; a failure anywhere
rolls the whole unit back so no orphan order is left behind.

Every committed change is published on the change feed so the staff
notification centre and the customer notifier can react to it.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from gestro.exceptions import GestroError, NotFoundError
from gestro.models import Order, OrderItem, OrderStatus, Product, row_to_dict, utcnow
from gestro.schemas import OrderDraft, OrderItemCreate
from gestro.services.context import ServiceContext
from gestro.services.order_status import ensure_transition
from gestro.services.realtime import ChangeType

logger = logging.getLogger(__name__)


class OrderRepository:
    """
    Persistence for orders.

    Example:
        >>> repo = OrderRepository(ctx)
        >>> order = await repo.create_order(
        ...     OrderDraft(customer_id=user.id),
        ...     [OrderItemCreate(product_id=pizza.id, quantity=2)],
        ... )
        >>> order.total_amount
        29.98
    """

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session

    @staticmethod
    def _with_items():
        return select(Order).options(
            selectinload(Order.items).selectinload(OrderItem.product),
        )

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _resolve_prices(self, items: Sequence[OrderItemCreate]) -> dict[str, float]:
        """Snapshot current catalog prices for lines that do not carry one."""
        wanted = {item.product_id for item in items if getattr(item, "unit_price", None) is None}
        if not wanted:
            return {}

        result = await self.db.execute(select(Product).where(Product.id.in_(wanted)))
        products = {p.id: p for p in result.scalars().all()}

        prices = {}
        for product_id in wanted:
            product = products.get(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if not product.is_available:
                raise GestroError(f"Product '{product.name}' is not available")
            prices[product_id] = product.price
        return prices

    async def _recalculate_total(self, order_id: str) -> None:
        """Derive total_amount from the line items in SQL."""
        subtotal = (
            select(func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_price), 0.0))
            .where(OrderItem.order_id == order_id)
            .scalar_subquery()
        )
        await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(total_amount=subtotal)
            .execution_options(synchronize_session=False)
        )

    async def create_order(
        self,
        order: OrderDraft,
        items: Sequence[OrderItemCreate],
    ) -> Optional[Order]:
        """
        Insert an order with its items and derived total.

        Args:
            order: Order header (customer, notes, table number)
            items: Line items; a missing unit_price is copied from the product

        Returns:
            The created order with items loaded, or None if any write failed

        Raises:
            NotFoundError: A line without a price references an unknown product
            GestroError: A line without a price references an unavailable product
        """
        if not items:
            logger.warning("Refusing to create an order without items")
            return None

        prices = await self._resolve_prices(items)

        try:
            new_order = Order(
                customer_id=order.customer_id,
                notes=order.notes,
                table_number=order.table_number,
                status=order.status,
                total_amount=0.0,
            )
            self.db.add(new_order)
            await self.db.flush()

            self.db.add_all([
                OrderItem(
                    order_id=new_order.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=(
                        item.unit_price
                        if getattr(item, "unit_price", None) is not None
                        else prices[item.product_id]
                    ),
                    notes=item.notes,
                )
                for item in items
            ])
            await self.db.flush()

            await self._recalculate_total(new_order.id)
            await self.db.commit()
            order_id = new_order.id

        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Order creation rolled back: {e}")
            return None

        created = await self.get_order_with_items(order_id)
        if created is not None:
            logger.info(f"Order {created.id} created ({len(created.items)} items, total={created.total_amount:.2f})")
            await self.ctx.publish("orders", ChangeType.INSERT, row_to_dict(created))
        return created

    async def update_order_status(
        self,
        order_id: str,
        status: OrderStatus,
        force: bool = False,
    ) -> Optional[Order]:
        """
        Move an order to a new status.

        Args:
            order_id: Order to update
            status: Target status
            force: Administrator override, accepts any transition

        Returns:
            The updated order, or None if it does not exist

        Raises:
            InvalidStatusTransitionError: Transition not allowed and force is False
        """
        order = await self.get_order_with_items(order_id)
        if order is None:
            return None

        if order.status == status:
            return order

        if force:
            logger.warning(f"Order {order_id}: forced status change {order.status.value} -> {status.value}")
        else:
            ensure_transition(order.status, status)

        previous = row_to_dict(order)
        try:
            order.status = status
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to update status of order {order_id}")
            return None

        logger.info(f"Order {order_id}: {previous['status']} -> {status.value}")
        await self.ctx.publish("orders", ChangeType.UPDATE, row_to_dict(order), old=previous)
        return order

    async def cancel_order(self, order_id: str) -> Optional[Order]:
        """
        Cancel an order that is still pending.

        Returns None both when the order does not exist and when it has
        already left the pending state.
        """
        try:
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
                .values(status=OrderStatus.CANCELLED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                logger.info(f"Order {order_id} not cancellable (missing or not pending)")
                return None
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to cancel order {order_id}")
            return None

        order = await self.get_order_with_items(order_id)
        if order is not None:
            new = row_to_dict(order)
            await self.ctx.publish(
                "orders",
                ChangeType.UPDATE,
                new,
                old={**new, "status": OrderStatus.PENDING.value},
            )
        return order

    async def assign_driver(self, order_id: str, driver_id: str) -> Optional[Order]:
        order = await self.get_order_with_items(order_id)
        if order is None:
            return None

        previous = row_to_dict(order)
        try:
            order.driver_id = driver_id
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to assign driver {driver_id} to order {order_id}")
            return None

        await self.ctx.publish("orders", ChangeType.UPDATE, row_to_dict(order), old=previous)
        return order

    # =========================================================================
    # READS
    # =========================================================================

    async def get_order_with_items(self, order_id: str) -> Optional[Order]:
        """Fetch an order and its items (each joined to its product)."""
        try:
            result = await self.db.execute(
                self._with_items()
                .where(Order.id == order_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load order {order_id}")
            return None

    async def get_user_orders(self, user_id: str) -> list[Order]:
        try:
            result = await self.db.execute(
                self._with_items()
                .where(Order.customer_id == user_id)
                .order_by(Order.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Failed to load orders for user {user_id}")
            return []

    async def get_all_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[Order]:
        query = self._with_items().order_by(Order.created_at.desc())
        if status is not None:
            query = query.where(Order.status == status)
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        try:
            result = await self.db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to load orders")
            return []

    async def get_orders_by_status(self, status: OrderStatus) -> list[Order]:
        return await self.get_all_orders(status=status)

    async def get_orders_with_customer_info(self, limit: Optional[int] = None) -> list[dict]:
        """Orders flattened together with the ordering customer's contact data."""
        orders = await self.get_all_orders(limit=limit)
        rows = []
        for order in orders:
            customer = order.customer
            rows.append({
                **row_to_dict(order),
                "customer_name": customer.name if customer else None,
                "customer_email": customer.email if customer else None,
                "customer_phone": customer.phone if customer else None,
                "item_count": sum(item.quantity for item in order.items),
            })
        return rows

    async def count_orders(self, status: Optional[OrderStatus] = None) -> int:
        query = select(func.count(Order.id))
        if status is not None:
            query = query.where(Order.status == status)
        try:
            result = await self.db.execute(query)
            return result.scalar() or 0
        except SQLAlchemyError:
            logger.exception("Failed to count orders")
            return 0
