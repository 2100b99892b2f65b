"""
Back-office endpoints (role admin or staff).
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from gestro.api.deps import get_context, require_staff
from gestro.models import OrderStatus, ReservationStatus, TableStatus
from gestro.schemas import (
    ErrorResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    ReservationResponse,
    ReservationStatusUpdate,
    TableCreate,
    TableResponse,
    TableStatsResponse,
    TableStatusUpdate,
    TableUpdate,
)
from gestro.services.analytics import AnalyticsService
from gestro.services.context import ServiceContext
from gestro.services.excel_manager import REPORT_FORMATS, ExcelManager
from gestro.services.orders import OrderRepository
from gestro.services.reservations import ReservationRepository
from gestro.services.tables import TableRepository

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_staff)],
)

REPORT_MEDIA_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


# =============================================================================
# ORDERS
# =============================================================================

@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    ctx: ServiceContext = Depends(get_context),
) -> OrderListResponse:
    repo = OrderRepository(ctx)
    orders = await repo.get_all_orders(status=status_filter, skip=skip, limit=limit)
    return OrderListResponse(
        total=await repo.count_orders(status_filter),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdate,
    ctx: ServiceContext = Depends(get_context),
):
    """
    Move an order along the workflow.

    Invalid transitions answer 409 unless **force** is set.
    """
    order = await OrderRepository(ctx).update_order_status(order_id, request.status, force=request.force)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order


@router.get("/kitchen")
async def kitchen_queue(ctx: ServiceContext = Depends(get_context)) -> dict:
    """Pending, preparing and ready orders with waiting-time priority."""
    return await AnalyticsService(ctx).get_kitchen_queue()


@router.get("/export/orders")
async def export_orders(
    fmt: str = Query("xlsx", alias="format"),
    limit: Optional[int] = Query(None, ge=1),
    ctx: ServiceContext = Depends(get_context),
) -> Response:
    """Download the order list as an Excel workbook or CSV file."""
    if fmt not in REPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Invalid format. Options: {list(REPORT_FORMATS)}")

    rows = await OrderRepository(ctx).get_orders_with_customer_info(limit=limit)
    content = ExcelManager.build_orders_report(rows, fmt)
    filename = f"orders_{date.today().isoformat()}.{fmt}"
    return Response(
        content=content,
        media_type=REPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# ANALYTICS
# =============================================================================

@router.get("/dashboard")
async def dashboard(ctx: ServiceContext = Depends(get_context)) -> dict:
    return await AnalyticsService(ctx).get_dashboard()


@router.get("/analytics/sales")
async def sales_by_day(
    days: int = Query(7, ge=1, le=90),
    ctx: ServiceContext = Depends(get_context),
) -> list[dict]:
    return await AnalyticsService(ctx).get_sales_by_day(days=days)


# =============================================================================
# TABLES
# =============================================================================

@router.get("/tables", response_model=List[TableResponse])
async def list_tables(
    status_filter: Optional[TableStatus] = Query(None, alias="status"),
    ctx: ServiceContext = Depends(get_context),
):
    repo = TableRepository(ctx)
    if status_filter is not None:
        return await repo.get_tables_by_status(status_filter)
    return await repo.get_all_tables()


@router.get("/tables/stats", response_model=TableStatsResponse)
async def table_stats(ctx: ServiceContext = Depends(get_context)):
    return await TableRepository(ctx).get_table_stats()


@router.post("/tables", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(data: TableCreate, ctx: ServiceContext = Depends(get_context)):
    repo = TableRepository(ctx)
    if await repo.get_table_by_number(data.table_number) is not None:
        raise HTTPException(status_code=409, detail=f"Table #{data.table_number} already exists")
    table = await repo.create_table(data)
    if table is None:
        raise HTTPException(status_code=500, detail="Could not create table")
    return table


@router.patch("/tables/{table_id}", response_model=TableResponse)
async def update_table(table_id: str, data: TableUpdate, ctx: ServiceContext = Depends(get_context)):
    table = await TableRepository(ctx).update_table(table_id, data)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Table {table_id} not found")
    return table


@router.patch("/tables/{table_id}/status", response_model=TableResponse)
async def update_table_status(
    table_id: str,
    request: TableStatusUpdate,
    ctx: ServiceContext = Depends(get_context),
):
    table = await TableRepository(ctx).update_table_status(table_id, request.status)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Table {table_id} not found")
    return table


@router.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(table_id: str, ctx: ServiceContext = Depends(get_context)):
    if not await TableRepository(ctx).delete_table(table_id):
        raise HTTPException(status_code=404, detail=f"Table {table_id} not found")


# =============================================================================
# RESERVATIONS
# =============================================================================

@router.get("/reservations", response_model=List[ReservationResponse])
async def list_reservations(
    reservation_date: date = Query(..., alias="date"),
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    ctx: ServiceContext = Depends(get_context),
):
    return await ReservationRepository(ctx).get_reservations_by_date(reservation_date, status=status_filter)


@router.patch("/reservations/{reservation_id}/status", response_model=ReservationResponse)
async def update_reservation_status(
    reservation_id: str,
    request: ReservationStatusUpdate,
    ctx: ServiceContext = Depends(get_context),
):
    reservation = await ReservationRepository(ctx).update_reservation_status(reservation_id, request.status)
    if reservation is None:
        raise HTTPException(status_code=404, detail=f"Reservation {reservation_id} not found")
    return reservation
