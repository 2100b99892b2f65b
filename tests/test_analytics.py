from datetime import datetime, timedelta, timezone

import pytest

from gestro.models import OrderStatus, TableStatus, utcnow
from gestro.schemas import OrderDraft, OrderItemCreate
from gestro.services.analytics import AnalyticsService, format_time_elapsed, get_order_priority
from gestro.services.orders import OrderRepository
from gestro.services.tables import TableRepository

CREATED = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def orders(ctx, customer, menu):
    """Pizza x2 (preparing), pasta x1 (pending), pasta x2 (cancelled)."""
    repo = OrderRepository(ctx)

    async def place(product, quantity):
        return await repo.create_order(
            OrderDraft(customer_id=customer.id, table_number=5),
            [OrderItemCreate(product_id=product.id, quantity=quantity, notes="well done")],
        )

    preparing = await place(menu["pizza"], 2)
    pending = await place(menu["pasta"], 1)
    cancelled = await place(menu["pasta"], 2)
    await repo.update_order_status(preparing.id, OrderStatus.PREPARING)
    await repo.cancel_order(cancelled.id)
    return {"preparing": preparing, "pending": pending, "cancelled": cancelled}


@pytest.mark.parametrize("minutes,priority", [(5, "low"), (15, "low"), (16, "normal"), (30, "normal"), (31, "high")])
def test_order_priority(minutes, priority):
    assert get_order_priority(CREATED, now=CREATED + timedelta(minutes=minutes)) == priority


@pytest.mark.parametrize("minutes,label", [(0, "0 min"), (59, "59 min"), (60, "1h 0m"), (135, "2h 15m")])
def test_time_elapsed(minutes, label):
    assert format_time_elapsed(CREATED, now=CREATED + timedelta(minutes=minutes)) == label


def test_naive_timestamps_are_read_as_utc():
    naive = CREATED.replace(tzinfo=None)
    assert format_time_elapsed(naive, now=CREATED + timedelta(minutes=20)) == "20 min"


async def test_dashboard(ctx, orders, tables):
    await TableRepository(ctx).update_table_status(tables[0].id, TableStatus.OCCUPIED)

    dashboard = await AnalyticsService(ctx).get_dashboard()

    assert dashboard["total_orders"] == 3
    assert dashboard["orders_by_status"] == {
        "pending": 1,
        "preparing": 1,
        "ready": 0,
        "delivered": 0,
        "cancelled": 1,
    }
    assert dashboard["today_revenue"] == pytest.approx(33.5)
    assert dashboard["avg_order_value"] == pytest.approx(16.75)
    assert dashboard["cancellation_rate"] == pytest.approx(33.3)
    assert dashboard["top_products"] == [
        {"product_id": orders["preparing"].items[0].product_id, "name": "Pizza Margherita", "quantity": 2, "revenue": 24.0},
        {"product_id": orders["pending"].items[0].product_id, "name": "Pasta Carbonara", "quantity": 1, "revenue": 9.5},
    ]
    assert dashboard["tables"]["occupied"] == 1
    assert dashboard["environment"] == "development"
    assert {o["id"] for o in dashboard["recent_orders"]} == {o.id for o in orders.values()}


async def test_dashboard_on_empty_database(ctx):
    dashboard = await AnalyticsService(ctx).get_dashboard()
    assert dashboard["total_orders"] == 0
    assert dashboard["cancellation_rate"] == 0.0
    assert dashboard["top_products"] == []
    assert dashboard["recent_orders"] == []


async def test_sales_by_day(ctx, orders):
    series = await AnalyticsService(ctx).get_sales_by_day(days=3, now=utcnow())

    assert len(series) == 3
    assert [day["orders"] for day in series[:-1]] == [0, 0]
    assert series[-1] == {"date": utcnow().date().isoformat(), "sales": 33.5, "orders": 2}


async def test_kitchen_queue(ctx, orders):
    queue = await AnalyticsService(ctx).get_kitchen_queue(now=utcnow() + timedelta(minutes=45))

    assert set(queue) == {"pending", "preparing", "ready"}
    assert [o["id"] for o in queue["pending"]] == [orders["pending"].id]
    assert [o["id"] for o in queue["preparing"]] == [orders["preparing"].id]
    assert queue["ready"] == []

    ticket = queue["preparing"][0]
    assert ticket["priority"] == "high"
    assert ticket["table_number"] == 5
    assert ticket["items"] == [{"name": "Pizza Margherita", "quantity": 2, "notes": "well done"}]
