"""
Tool Dispatcher

A fixed table of named tools an LLM client (or the built-in assistant)
can call over HTTP. Every tool takes a params dict with camelCase keys
and returns ``{"success": True, "data": ..., "message": ...}`` or
``{"success": False, "error": ...}``.

handle_request() wraps a call into ``{"result": ...}`` or ``{"error": ...}``.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from datetime import date, time
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from gestro.exceptions import GestroError, NotFoundError
from gestro.models import Profile, ReservationStatus
from gestro.schemas import (
    CategoryResponse,
    OrderDraft,
    OrderItemCreate,
    OrderResponse,
    ProductResponse,
    ReservationCreate,
    ReservationResponse,
    TableResponse,
)
from gestro.services.catalog import CatalogRepository
from gestro.services.context import ServiceContext
from gestro.services.orders import OrderRepository
from gestro.services.reservations import ReservationRepository
from gestro.services.tables import TableRepository

logger = logging.getLogger(__name__)

ToolFn = Callable[[dict], Awaitable[dict]]

# Tools that act for a user; the caller's identity replaces params["userId"]
USER_SCOPED_TOOLS = frozenset({"getUserOrders", "createOrder", "createReservation"})


def _dump(schema: type[BaseModel], rows) -> Any:
    if isinstance(rows, list):
        return [schema.model_validate(row).model_dump(mode="json") for row in rows]
    return schema.model_validate(rows).model_dump(mode="json")


def _ok(data: Any, message: str) -> dict:
    return {"success": True, "data": data, "message": message}


def _fail(error: str) -> dict:
    return {"success": False, "error": error}


class ToolDispatcher:
    """
    Example:
        >>> tools = ToolDispatcher(ctx)
        >>> await tools.handle_request({"tool": "getCategories", "params": {}})
        {'result': {'success': True, 'data': [...], 'message': 'Retrieved 4 categories.'}}
    """

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.catalog = CatalogRepository(ctx)
        self.orders = OrderRepository(ctx)
        self.tables = TableRepository(ctx)
        self.reservations = ReservationRepository(ctx)

        self.tools: dict[str, ToolFn] = {
            "searchProducts": self.search_products,
            "getProductDetails": self.get_product_details,
            "getCategories": self.get_categories,
            "getUserOrders": self.get_user_orders,
            "createOrder": self.create_order,
            "getAvailableTables": self.get_available_tables,
            "createReservation": self.create_reservation,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self.tools)

    async def handle_request(self, request: dict) -> dict:
        tool = request.get("tool")
        if not tool or tool not in self.tools:
            return {"error": "Tool not found"}

        try:
            result = await self.tools[tool](request.get("params") or {})
        except (KeyError, TypeError, ValueError, GestroError, SQLAlchemyError):
            logger.exception(f"Tool {tool} failed")
            return {"error": "Error processing request"}

        logger.debug(f"Tool {tool}: success={result.get('success')}")
        return {"result": result}

    # =========================================================================
    # MENU
    # =========================================================================

    async def search_products(self, params: dict) -> dict:
        _, products = await self.catalog.search_products(
            search=params.get("query"),
            category_id=params.get("category"),
            only_available=False,
            sort="name",
        )
        return _ok(
            _dump(ProductResponse, products),
            f"Found {len(products)} products matching your criteria.",
        )

    async def get_product_details(self, params: dict) -> dict:
        product = await self.catalog.get_product(params["productId"])
        if product is None:
            return _fail("Product not found")
        return _ok(_dump(ProductResponse, product), f"Retrieved details for product: {product.name}")

    async def get_categories(self, params: dict) -> dict:
        categories = sorted(await self.catalog.get_categories(), key=lambda c: c.name)
        return _ok(_dump(CategoryResponse, categories), f"Retrieved {len(categories)} categories.")

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def get_user_orders(self, params: dict) -> dict:
        orders = await self.orders.get_user_orders(params["userId"])
        return _ok(_dump(OrderResponse, orders), f"Retrieved {len(orders)} orders for the user.")

    async def _user_exists(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        result = await self.ctx.session.execute(select(Profile.id).where(Profile.id == user_id))
        return result.scalar_one_or_none() is not None

    async def create_order(self, params: dict) -> dict:
        user_id = params.get("userId")
        if not await self._user_exists(user_id):
            return _fail("User not found")

        try:
            items = [
                OrderItemCreate(
                    product_id=item["productId"],
                    quantity=item.get("quantity", 1),
                    notes=item.get("notes"),
                )
                for item in params.get("items") or []
            ]
        except ValidationError:
            return _fail("Invalid order items")
        if not items:
            return _fail("Order has no items")

        try:
            order = await self.orders.create_order(
                OrderDraft(customer_id=user_id, notes=params.get("notes")),
                items,
            )
        except NotFoundError:
            return _fail("One or more products not found")
        except GestroError as e:
            return _fail(e.message)

        if order is None:
            return _fail("Error creating order")
        return _ok(_dump(OrderResponse, order), f"Order created successfully with ID: {order.id}")

    # =========================================================================
    # TABLES & RESERVATIONS
    # =========================================================================

    async def get_available_tables(self, params: dict) -> dict:
        tables = await self.reservations.get_available_tables(
            date.fromisoformat(params["date"]),
            time.fromisoformat(params["startTime"]),
            time.fromisoformat(params["endTime"]),
            party_size=params.get("partySize"),
        )
        return _ok(
            _dump(TableResponse, tables),
            f"Found {len(tables)} available tables for the requested time.",
        )

    async def create_reservation(self, params: dict) -> dict:
        try:
            data = ReservationCreate(
                table_id=params["tableId"],
                reservation_date=params["date"],
                start_time=params["startTime"],
                end_time=params["endTime"],
                party_size=params["partySize"],
                notes=params.get("notes"),
            )
        except ValidationError as e:
            return _fail(f"Invalid reservation: {e.errors()[0]['msg']}")

        try:
            await self.reservations.ensure_bookable(
                data.table_id, data.reservation_date, data.start_time, data.end_time, data.party_size
            )
        except GestroError as e:
            return _fail(e.message)

        reservation = await self.reservations.create_reservation(
            data,
            customer_id=params.get("userId"),
            status=ReservationStatus.CONFIRMED,
        )
        if reservation is None:
            return _fail("Error creating reservation")

        return _ok(
            _dump(ReservationResponse, reservation),
            f"Reservation created for {data.reservation_date} "
            f"from {data.start_time:%H:%M} to {data.end_time:%H:%M}.",
        )
