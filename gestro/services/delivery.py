"""
Delivery Tracking

Driver location reads, delivery time estimates and a route simulation
used for demos (there is no real driver app).

The simulation interpolates a straight line between two points, writing
one location row per step with asyncio.sleep between steps, so it can
run as a background task without blocking the event loop.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from gestro.core.config import Settings, get_settings
from gestro.models import (
    DeliveryDriver,
    DeliveryEstimate,
    DriverLocation,
    Order,
    as_utc,
    row_to_dict,
    utcnow,
)
from gestro.schemas import DriverCreate
from gestro.services.context import ServiceContext
from gestro.services.realtime import ChangeType

logger = logging.getLogger(__name__)

SIMULATION_ACCURACY_METERS = 10.0


@dataclass
class DeliveryETA:
    minutes: int
    estimated_time: datetime


def is_peak_hour(hour: int, settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return any(start <= hour <= end for start, end in settings.peak_hour_ranges)


def calculate_estimated_delivery_time(
    estimate: Optional[DeliveryEstimate],
    order_created_at: datetime,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> DeliveryETA:
    """
    Minutes remaining until delivery, never negative.

    A stored estimate wins; otherwise the order creation time plus the
    base delay, or the peak delay when the current hour is a peak hour.
    """
    settings = settings or get_settings()
    now = as_utc(now) if now else utcnow()

    if estimate is not None and estimate.estimated_delivery_time is not None:
        estimated_time = as_utc(estimate.estimated_delivery_time)
    else:
        extra = (
            settings.delivery_peak_minutes
            if is_peak_hour(now.astimezone().hour, settings)
            else settings.delivery_base_minutes
        )
        estimated_time = as_utc(order_created_at) + timedelta(minutes=extra)

    minutes = max(0, round((estimated_time - now).total_seconds() / 60))
    return DeliveryETA(minutes=minutes, estimated_time=estimated_time)


class DeliveryTracker:

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session

    # =========================================================================
    # DRIVERS
    # =========================================================================

    async def create_driver(self, data: DriverCreate) -> Optional[DeliveryDriver]:
        driver = DeliveryDriver(**data.model_dump())
        try:
            self.db.add(driver)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create driver {data.name}")
            return None
        return driver

    async def get_active_drivers(self) -> list[DeliveryDriver]:
        try:
            result = await self.db.execute(
                select(DeliveryDriver)
                .where(DeliveryDriver.is_active.is_(True))
                .order_by(DeliveryDriver.name.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to load drivers")
            return []

    async def _driver_id_for(self, order_id: str) -> Optional[str]:
        result = await self.db.execute(select(Order.driver_id).where(Order.id == order_id))
        return result.scalar_one_or_none()

    # =========================================================================
    # LOCATIONS
    # =========================================================================

    async def get_order_driver_location(self, order_id: str) -> Optional[DriverLocation]:
        """Latest known position of the driver assigned to the order."""
        try:
            driver_id = await self._driver_id_for(order_id)
            if not driver_id:
                return None

            result = await self.db.execute(
                select(DriverLocation)
                .where(DriverLocation.driver_id == driver_id, DriverLocation.order_id == order_id)
                .order_by(DriverLocation.timestamp.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load driver location for order {order_id}")
            return None

    async def get_driver_location_history(self, order_id: str, limit: int = 20) -> list[DriverLocation]:
        """Most recent positions for the order, returned oldest first."""
        try:
            result = await self.db.execute(
                select(DriverLocation)
                .where(DriverLocation.order_id == order_id)
                .order_by(DriverLocation.timestamp.desc())
                .limit(limit)
            )
            return list(reversed(result.scalars().all()))
        except SQLAlchemyError:
            logger.exception(f"Failed to load location history for order {order_id}")
            return []

    async def record_location(
        self,
        order_id: str,
        driver_id: str,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
        heading: Optional[float] = None,
        speed: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[DriverLocation]:
        location = DriverLocation(
            order_id=order_id,
            driver_id=driver_id,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            heading=heading,
            speed=speed,
            timestamp=timestamp or utcnow(),
        )
        try:
            self.db.add(location)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to record location for order {order_id}")
            return None

        await self.ctx.publish("driver_locations", ChangeType.INSERT, row_to_dict(location))
        return location

    # =========================================================================
    # ESTIMATES
    # =========================================================================

    async def get_delivery_estimate(self, order_id: str) -> Optional[DeliveryEstimate]:
        try:
            result = await self.db.execute(
                select(DeliveryEstimate).where(DeliveryEstimate.order_id == order_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load delivery estimate for order {order_id}")
            return None

    async def upsert_delivery_estimate(
        self,
        order_id: str,
        estimated_delivery_time: datetime,
        distance_km: Optional[float] = None,
    ) -> Optional[DeliveryEstimate]:
        estimate = await self.get_delivery_estimate(order_id)
        try:
            if estimate is None:
                estimate = DeliveryEstimate(order_id=order_id)
                self.db.add(estimate)
            estimate.estimated_delivery_time = estimated_delivery_time
            estimate.distance_km = distance_km
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to store delivery estimate for order {order_id}")
            return None
        return estimate

    async def get_eta(self, order: Order, now: Optional[datetime] = None) -> DeliveryETA:
        estimate = await self.get_delivery_estimate(order.id)
        return calculate_estimated_delivery_time(estimate, order.created_at, now=now, settings=self.ctx.settings)

    # =========================================================================
    # SIMULATION
    # =========================================================================

    async def simulate_driver_movement(
        self,
        order_id: str,
        start_lat: float,
        start_lng: float,
        end_lat: float,
        end_lng: float,
        duration_minutes: int = 15,
        step_delay: Optional[float] = None,
    ) -> bool:
        """
        Drive the order's assigned driver from start to end.

        Two steps per simulated minute, plus the starting point.

        Returns:
            False if the order has no driver or a write fails
        """
        step_delay = self.ctx.settings.simulation_step_delay if step_delay is None else step_delay

        try:
            driver_id = await self._driver_id_for(order_id)
        except SQLAlchemyError:
            logger.exception(f"Simulation: failed to load order {order_id}")
            return False
        if not driver_id:
            logger.warning(f"Simulation: order {order_id} has no driver assigned")
            return False

        steps = max(1, duration_minutes * 2)
        lat_step = (end_lat - start_lat) / steps
        lng_step = (end_lng - start_lng) / steps
        heading = round(math.degrees(math.atan2(lat_step, lng_step)))

        logger.info(f"Simulation: order {order_id}, {steps} steps, heading {heading}")

        first = await self.record_location(
            order_id, driver_id, start_lat, start_lng,
            accuracy=SIMULATION_ACCURACY_METERS, heading=0, speed=0,
        )
        if first is None:
            return False

        for i in range(1, steps + 1):
            if step_delay > 0:
                await asyncio.sleep(step_delay)

            location = await self.record_location(
                order_id,
                driver_id,
                start_lat + lat_step * i,
                start_lng + lng_step * i,
                accuracy=SIMULATION_ACCURACY_METERS,
                heading=heading,
                speed=random.uniform(10, 20),
            )
            if location is None:
                return False

        logger.info(f"Simulation: order {order_id} arrived")
        return True
