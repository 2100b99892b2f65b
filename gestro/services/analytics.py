"""
Back-office Analytics

Dashboard aggregates for the admin area and the kitchen queue helpers
(grouping by status, waiting-time priority, elapsed time labels).

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from gestro.models import Order, OrderItem, OrderStatus, Product, as_utc, utcnow
from gestro.services.context import ServiceContext
from gestro.services.tables import TableRepository

logger = logging.getLogger(__name__)

KITCHEN_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY)


# =============================================================================
# KITCHEN QUEUE
# =============================================================================

def group_kitchen_orders(orders: Sequence[Order]) -> dict[str, list[Order]]:
    """Split the active orders into pending / preparing / ready columns."""
    return {
        status.value: [order for order in orders if order.status == status]
        for status in KITCHEN_STATUSES
    }


def _minutes_since(created_at: datetime, now: Optional[datetime]) -> float:
    now = as_utc(now) if now else utcnow()
    return (now - as_utc(created_at)).total_seconds() / 60


def get_order_priority(created_at: datetime, now: Optional[datetime] = None) -> str:
    """high after 30 minutes of waiting, normal after 15, low before."""
    minutes = _minutes_since(created_at, now)
    if minutes > 30:
        return "high"
    if minutes > 15:
        return "normal"
    return "low"


def format_time_elapsed(created_at: datetime, now: Optional[datetime] = None) -> str:
    minutes = max(0, int(_minutes_since(created_at, now)))
    if minutes < 60:
        return f"{minutes} min"
    return f"{minutes // 60}h {minutes % 60}m"


# =============================================================================
# DASHBOARD
# =============================================================================

class AnalyticsService:

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session

    @staticmethod
    def _today_start() -> datetime:
        local_midnight = datetime.now().astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
        return local_midnight.astimezone(timezone.utc)

    async def get_dashboard(self, recent_limit: int = 10, top_limit: int = 5) -> dict[str, Any]:
        """
        Aggregated statistics for the admin dashboard.

        Cancelled orders are excluded from revenue and the average ticket.
        """
        try:
            counts_result = await self.db.execute(
                select(Order.status, func.count(Order.id)).group_by(Order.status)
            )
            counts = {status.value: 0 for status in OrderStatus}
            for status, count in counts_result.all():
                counts[status.value] = count
            total_orders = sum(counts.values())

            revenue_result = await self.db.execute(
                select(func.sum(Order.total_amount)).where(
                    Order.created_at >= self._today_start(),
                    Order.status != OrderStatus.CANCELLED,
                )
            )
            today_revenue = revenue_result.scalar() or 0.0

            avg_result = await self.db.execute(
                select(func.avg(Order.total_amount)).where(Order.status != OrderStatus.CANCELLED)
            )
            avg_order_value = avg_result.scalar() or 0.0

            top_result = await self.db.execute(
                select(
                    Product.id,
                    Product.name,
                    func.sum(OrderItem.quantity).label("quantity"),
                    func.sum(OrderItem.quantity * OrderItem.unit_price).label("revenue"),
                )
                .join(OrderItem, OrderItem.product_id == Product.id)
                .join(Order, Order.id == OrderItem.order_id)
                .where(Order.status != OrderStatus.CANCELLED)
                .group_by(Product.id, Product.name)
                .order_by(func.sum(OrderItem.quantity).desc())
                .limit(top_limit)
            )
            top_products = [
                {
                    "product_id": row.id,
                    "name": row.name,
                    "quantity": int(row.quantity or 0),
                    "revenue": round(row.revenue or 0.0, 2),
                }
                for row in top_result.all()
            ]

            recent_result = await self.db.execute(
                select(Order).order_by(Order.created_at.desc()).limit(recent_limit)
            )
            recent_orders = recent_result.scalars().all()

        except SQLAlchemyError:
            logger.exception("Dashboard aggregation failed")
            raise

        cancellation_rate = (
            round(counts[OrderStatus.CANCELLED.value] / total_orders * 100, 1)
            if total_orders > 0 else 0.0
        )

        return {
            "total_orders": total_orders,
            "orders_by_status": counts,
            "today_revenue": round(today_revenue, 2),
            "avg_order_value": round(avg_order_value, 2),
            "cancellation_rate": cancellation_rate,
            "top_products": top_products,
            "tables": await TableRepository(self.ctx).get_table_stats(),
            "environment": self.ctx.settings.env_mode.value,
            "recent_orders": [
                {
                    "id": o.id,
                    "customer_id": o.customer_id,
                    "table_number": o.table_number,
                    "total_amount": o.total_amount,
                    "status": o.status.value,
                    "payment_status": o.payment_status.value if o.payment_status else None,
                    "created_at": as_utc(o.created_at).isoformat() if o.created_at else None,
                }
                for o in recent_orders
            ],
        }

    async def get_sales_by_day(self, days: int = 7, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        """Revenue and order count per UTC day for the last `days` days, oldest first."""
        now = as_utc(now) if now else utcnow()
        first_day = (now - timedelta(days=days - 1)).date()
        since = datetime.combine(first_day, datetime.min.time(), tzinfo=timezone.utc)

        try:
            result = await self.db.execute(
                select(Order.created_at, Order.total_amount).where(
                    Order.created_at >= since,
                    Order.status != OrderStatus.CANCELLED,
                )
            )
            rows = result.all()
        except SQLAlchemyError:
            logger.exception("Sales series query failed")
            return []

        series: OrderedDict[str, dict[str, Any]] = OrderedDict(
            ((first_day + timedelta(days=i)).isoformat(), {"sales": 0.0, "orders": 0})
            for i in range(days)
        )
        for created_at, total in rows:
            bucket = series.get(as_utc(created_at).date().isoformat())
            if bucket is not None:
                bucket["sales"] += total or 0.0
                bucket["orders"] += 1

        return [
            {"date": day, "sales": round(values["sales"], 2), "orders": values["orders"]}
            for day, values in series.items()
        ]

    async def get_kitchen_queue(self, now: Optional[datetime] = None) -> dict[str, list[dict[str, Any]]]:
        """Active orders grouped by status, each tagged with priority and elapsed time."""
        try:
            result = await self.db.execute(
                select(Order)
                .where(Order.status.in_(KITCHEN_STATUSES))
                .order_by(Order.created_at.asc())
            )
            orders = list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Kitchen queue query failed")
            return {status.value: [] for status in KITCHEN_STATUSES}

        return {
            status: [
                {
                    "id": order.id,
                    "table_number": order.table_number,
                    "notes": order.notes,
                    "status": order.status.value,
                    "created_at": as_utc(order.created_at).isoformat(),
                    "priority": get_order_priority(order.created_at, now),
                    "elapsed": format_time_elapsed(order.created_at, now),
                    "items": [
                        {
                            "name": item.product.name if item.product else item.product_id,
                            "quantity": item.quantity,
                            "notes": item.notes,
                        }
                        for item in order.items
                    ],
                }
                for order in grouped
            ]
            for status, grouped in group_kitchen_orders(orders).items()
        }
