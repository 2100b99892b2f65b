from datetime import datetime, timedelta, timezone

import pytest

from gestro.core.config import get_settings
from gestro.schemas import DriverCreate, OrderDraft, OrderItemCreate
from gestro.services.delivery import (
    DeliveryTracker,
    calculate_estimated_delivery_time,
    is_peak_hour,
)
from gestro.services.orders import OrderRepository
from gestro.services.realtime import ChangeType

NOW = datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
async def order(ctx, customer, menu):
    return await OrderRepository(ctx).create_order(
        OrderDraft(customer_id=customer.id),
        [OrderItemCreate(product_id=menu["pizza"].id, quantity=1)],
    )


@pytest.fixture
async def driver(ctx):
    return await DeliveryTracker(ctx).create_driver(DriverCreate(name="Dana", phone="+15550000002", vehicle_type="bike"))


# =============================================================================
# ESTIMATES
# =============================================================================

def test_peak_hours_from_settings():
    assert is_peak_hour(12)
    assert is_peak_hour(13)
    assert is_peak_hour(21)
    assert not is_peak_hour(16)
    assert not is_peak_hour(23)


def test_stored_estimate_wins():
    class Estimate:
        estimated_delivery_time = NOW + timedelta(minutes=20)

    eta = calculate_estimated_delivery_time(Estimate(), NOW - timedelta(hours=1), now=NOW)
    assert eta.minutes == 20
    assert eta.estimated_time == NOW + timedelta(minutes=20)


def test_overdue_estimate_is_zero_minutes():
    class Estimate:
        estimated_delivery_time = NOW - timedelta(minutes=5)

    assert calculate_estimated_delivery_time(Estimate(), NOW, now=NOW).minutes == 0


def test_fallback_uses_base_delay_off_peak():
    settings = get_settings().model_copy(update={"delivery_peak_hours": ""})
    eta = calculate_estimated_delivery_time(None, NOW - timedelta(minutes=10), now=NOW, settings=settings)
    assert eta.minutes == settings.delivery_base_minutes - 10


def test_fallback_uses_peak_delay_during_peak():
    settings = get_settings().model_copy(update={"delivery_peak_hours": "0-23"})
    eta = calculate_estimated_delivery_time(None, NOW, now=NOW, settings=settings)
    assert eta.minutes == settings.delivery_peak_minutes
    assert eta.estimated_time == NOW + timedelta(minutes=settings.delivery_peak_minutes)


async def test_upsert_estimate_and_eta(ctx, order):
    tracker = DeliveryTracker(ctx)

    await tracker.upsert_delivery_estimate(order.id, NOW + timedelta(minutes=40), distance_km=3.2)
    await tracker.upsert_delivery_estimate(order.id, NOW + timedelta(minutes=25), distance_km=2.0)

    estimate = await tracker.get_delivery_estimate(order.id)
    assert estimate.distance_km == 2.0

    eta = await tracker.get_eta(order, now=NOW)
    assert eta.minutes == 25


# =============================================================================
# DRIVERS & LOCATIONS
# =============================================================================

async def test_active_drivers(ctx, driver):
    tracker = DeliveryTracker(ctx)
    await tracker.create_driver(DriverCreate(name="Alex"))

    assert [d.name for d in await tracker.get_active_drivers()] == ["Alex", "Dana"]


async def test_location_requires_assigned_driver(ctx, order, driver):
    tracker = DeliveryTracker(ctx)
    assert await tracker.get_order_driver_location(order.id) is None

    await OrderRepository(ctx).assign_driver(order.id, driver.id)
    await tracker.record_location(order.id, driver.id, 40.41, -3.70, timestamp=NOW)
    await tracker.record_location(order.id, driver.id, 40.42, -3.71, timestamp=NOW + timedelta(minutes=1))

    latest = await tracker.get_order_driver_location(order.id)
    assert (latest.latitude, latest.longitude) == (40.42, -3.71)


async def test_location_history_is_oldest_first(ctx, order, driver):
    tracker = DeliveryTracker(ctx)
    for minute in range(5):
        await tracker.record_location(order.id, driver.id, 40.0 + minute, -3.0, timestamp=NOW + timedelta(minutes=minute))

    history = await tracker.get_driver_location_history(order.id, limit=3)
    assert [loc.latitude for loc in history] == [42.0, 43.0, 44.0]


async def test_simulation_records_every_step(ctx, feed, order, driver):
    events = []
    feed.subscribe("driver_locations", ChangeType.INSERT, events.append)
    await OrderRepository(ctx).assign_driver(order.id, driver.id)

    tracker = DeliveryTracker(ctx)
    assert await tracker.simulate_driver_movement(
        order.id, 40.0, -3.0, 40.1, -3.1, duration_minutes=2, step_delay=0
    ) is True

    history = await tracker.get_driver_location_history(order.id, limit=50)
    assert len(history) == 5
    assert (history[0].latitude, history[0].longitude) == (40.0, -3.0)
    assert history[-1].latitude == pytest.approx(40.1)
    assert history[-1].longitude == pytest.approx(-3.1)
    assert len(events) == 5
    assert all(e.new["order_id"] == order.id for e in events)


async def test_simulation_without_driver(ctx, order):
    assert await DeliveryTracker(ctx).simulate_driver_movement(order.id, 0, 0, 1, 1, step_delay=0) is False
