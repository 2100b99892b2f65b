"""
Delivery tracking endpoints and the admin driver/simulation controls.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from gestro.api.deps import get_context, get_current_user, get_feed, get_session_factory, require_staff
from gestro.api.orders import ensure_can_view, load_order
from gestro.core.config import get_settings
from gestro.models import Profile
from gestro.schemas import (
    DriverAssignRequest,
    DriverCreate,
    DriverLocationResponse,
    DriverResponse,
    OrderResponse,
    SimulationRequest,
    TrackingResponse,
)
from gestro.services.context import ServiceContext
from gestro.services.delivery import DeliveryTracker
from gestro.services.orders import OrderRepository
from gestro.services.realtime import BaseChangeFeed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Delivery"])
admin_router = APIRouter(
    prefix="/api/admin",
    tags=["Admin - Delivery"],
    dependencies=[Depends(require_staff)],
)


async def run_delivery_simulation(
    session_factory: async_sessionmaker,
    feed: BaseChangeFeed,
    order_id: str,
    request: SimulationRequest,
) -> None:
    """Background task body; the request's session is closed by the time it runs."""
    async with session_factory() as session:
        ctx = ServiceContext(session=session, feed=feed, settings=get_settings())
        finished = await DeliveryTracker(ctx).simulate_driver_movement(
            order_id,
            request.start_lat,
            request.start_lng,
            request.end_lat,
            request.end_lng,
            duration_minutes=request.duration_minutes,
        )
    logger.info(f"Delivery simulation for order {order_id} {'finished' if finished else 'aborted'}")


# =============================================================================
# CUSTOMER TRACKING
# =============================================================================

@router.get("/{order_id}/tracking", response_model=TrackingResponse)
async def track_order(
    order_id: str,
    ctx: ServiceContext = Depends(get_context),
    user: Optional[Profile] = Depends(get_current_user),
) -> TrackingResponse:
    """Latest driver position and the estimated delivery time."""
    order = await load_order(ctx, order_id)
    ensure_can_view(order, user)

    tracker = DeliveryTracker(ctx)
    location = await tracker.get_order_driver_location(order_id)
    eta = await tracker.get_eta(order)

    return TrackingResponse(
        order_id=order.id,
        status=order.status,
        driver_location=DriverLocationResponse.model_validate(location) if location else None,
        estimated_minutes=eta.minutes,
        estimated_time=eta.estimated_time,
    )


@router.get("/{order_id}/tracking/history", response_model=List[DriverLocationResponse])
async def tracking_history(
    order_id: str,
    limit: int = Query(20, ge=1, le=200),
    ctx: ServiceContext = Depends(get_context),
    user: Optional[Profile] = Depends(get_current_user),
):
    order = await load_order(ctx, order_id)
    ensure_can_view(order, user)
    return await DeliveryTracker(ctx).get_driver_location_history(order_id, limit=limit)


# =============================================================================
# ADMIN
# =============================================================================

@admin_router.get("/drivers", response_model=List[DriverResponse])
async def list_drivers(ctx: ServiceContext = Depends(get_context)):
    return await DeliveryTracker(ctx).get_active_drivers()


@admin_router.post("/drivers", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def create_driver(data: DriverCreate, ctx: ServiceContext = Depends(get_context)):
    driver = await DeliveryTracker(ctx).create_driver(data)
    if driver is None:
        raise HTTPException(status_code=500, detail="Could not create driver")
    return driver


@admin_router.post("/orders/{order_id}/driver", response_model=OrderResponse)
async def assign_driver(
    order_id: str,
    request: DriverAssignRequest,
    ctx: ServiceContext = Depends(get_context),
):
    order = await OrderRepository(ctx).assign_driver(order_id, request.driver_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order


@admin_router.post("/orders/{order_id}/simulate-delivery", status_code=status.HTTP_202_ACCEPTED)
async def simulate_delivery(
    order_id: str,
    request: SimulationRequest,
    background_tasks: BackgroundTasks,
    ctx: ServiceContext = Depends(get_context),
    feed: BaseChangeFeed = Depends(get_feed),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> dict:
    """Start a simulated drive from the restaurant to the customer."""
    order = await load_order(ctx, order_id)
    if not order.driver_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assign a driver first")

    background_tasks.add_task(run_delivery_simulation, session_factory, feed, order_id, request)
    return {
        "success": True,
        "order_id": order_id,
        "steps": request.duration_minutes * 2,
    }
