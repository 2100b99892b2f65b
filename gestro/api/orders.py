"""
Customer order endpoints.
"""

import logging
from typing import Optional

from celery.exceptions import OperationalError
from fastapi import APIRouter, Depends, HTTPException, status

from gestro.api.deps import get_context, get_current_user, require_user
from gestro.models import Order, Profile
from gestro.schemas import (
    ErrorResponse,
    OrderCreate,
    OrderDraft,
    OrderItemCreate,
    OrderListResponse,
    OrderResponse,
)
from gestro.services.context import ServiceContext
from gestro.services.orders import OrderRepository
from gestro.tasks import export_order_to_excel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


def order_export_payload(order: Order, customer: Optional[Profile] = None) -> dict:
    return {
        "order_id": order.id,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "customer_name": customer.name if customer else None,
        "customer_email": customer.email if customer else None,
        "customer_phone": customer.phone if customer else None,
        "table_number": order.table_number,
        "items": [
            {
                "product_id": item.product_id,
                "name": item.product.name if item.product else None,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in order.items
        ],
        "notes": order.notes,
        "total_amount": order.total_amount,
        "payment_status": order.payment_status.value if order.payment_status else None,
        "payment_transaction_id": order.payment_transaction_id,
        "order_status": order.status.value,
    }


def queue_order_export(ctx: ServiceContext, order: Order, customer: Optional[Profile] = None) -> None:
    """Hand the order to the Excel ledger worker when exports are enabled."""
    if not ctx.settings.export_to_excel:
        return
    try:
        export_order_to_excel.delay(order_export_payload(order, customer))
    except OperationalError as e:
        # Broker down: the order itself is committed, only the ledger row is lost
        logger.error(f"Could not queue Excel export for order {order.id}: {e}")


def ensure_can_view(order: Order, user: Optional[Profile]) -> None:
    if order.customer_id is None:
        return
    if user is None or (user.id != order.customer_id and not user.is_staff):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your order")


async def load_order(ctx: ServiceContext, order_id: str) -> Order:
    order = await OrderRepository(ctx).get_order_with_items(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_order(
    order_data: OrderCreate,
    ctx: ServiceContext = Depends(get_context),
    user: Optional[Profile] = Depends(get_current_user),
):
    """
    Place an order.

    Prices are taken from the menu at the moment of ordering; the total
    is computed by the server. Anonymous orders are accepted.
    """
    order = await OrderRepository(ctx).create_order(
        OrderDraft(
            customer_id=user.id if user else None,
            notes=order_data.notes,
            table_number=order_data.table_number,
        ),
        [OrderItemCreate(**item.model_dump()) for item in order_data.items],
    )
    if order is None:
        raise HTTPException(status_code=500, detail="Could not create order")

    queue_order_export(ctx, order, user)
    return order


@router.get("", response_model=OrderListResponse)
async def list_my_orders(
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    orders = await OrderRepository(ctx).get_user_orders(user.id)
    return OrderListResponse(total=len(orders), orders=[OrderResponse.model_validate(o) for o in orders])


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    ctx: ServiceContext = Depends(get_context),
    user: Optional[Profile] = Depends(get_current_user),
):
    order = await load_order(ctx, order_id)
    ensure_can_view(order, user)
    return order


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses={409: {"model": ErrorResponse}},
)
async def cancel_order(
    order_id: str,
    ctx: ServiceContext = Depends(get_context),
    user: Profile = Depends(require_user),
):
    """Cancel an order that has not started preparation yet."""
    order = await load_order(ctx, order_id)
    ensure_can_view(order, user)

    cancelled = await OrderRepository(ctx).cancel_order(order_id)
    if cancelled is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Order can no longer be cancelled")
    return cancelled
