"""
Assistant Dispatcher

Routes a chat request:

    "place an order" / "create order"   → createOrder tool with the cart in context
    "book a table" / "reserve"          → getAvailableTables + createReservation
    anything else                        → backend reply, with menu/orders/tables
                                           data added to the context first

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from gestro.models import TableStatus
from gestro.schemas import OrderResponse, ProductResponse, TableResponse
from gestro.services.assistant.base import BaseAssistantBackend, Message, last_user_message
from gestro.services.assistant.fallback import (
    LOGIN_REQUIRED_ORDER,
    LOGIN_REQUIRED_RESERVATION,
    MENU_KEYWORDS,
    NO_QUERY,
    ORDER_KEYWORDS,
    RESERVATION_KEYWORDS,
)
from gestro.services.context import ServiceContext
from gestro.services.mcp import ToolDispatcher

logger = logging.getLogger(__name__)

ORDER_ACTION_PHRASES = ("place an order", "place order", "place my order", "create order", "create an order", "make an order")
RESERVATION_ACTION_PHRASES = ("book a table", "make a reservation", "reserve")

GENERIC_ERROR = "Sorry, something went wrong while handling your request. Please try again later."


@dataclass
class AssistantReply:
    response: str
    action: Optional[str] = None
    data: Optional[dict] = None


class AssistantDispatcher:

    def __init__(self, ctx: ServiceContext, backend: BaseAssistantBackend):
        self.ctx = ctx
        self.backend = backend
        self.tools = ToolDispatcher(ctx)

    async def process_request(
        self,
        messages: list[Message],
        context: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> AssistantReply:
        """
        Answer the last user message.

        Args:
            messages: Chat history as role/content dicts
            context: Client context (cart, reservation details)
            user_id: Authenticated user, overrides any userId in context
        """
        context = {**(context or {}), "userId": user_id}

        query = last_user_message(messages)
        if query is None:
            return AssistantReply(response=NO_QUERY)
        query = query.lower()

        if any(phrase in query for phrase in ORDER_ACTION_PHRASES):
            return await self._handle_create_order(context)
        if any(phrase in query for phrase in RESERVATION_ACTION_PHRASES):
            return await self._handle_create_reservation(context)

        await self._enrich_context(query, context)
        response = await self.backend.generate_response(messages, context)
        return AssistantReply(response=response)

    # =========================================================================
    # ACTIONS
    # =========================================================================

    async def _handle_create_order(self, context: dict[str, Any]) -> AssistantReply:
        if not context.get("userId"):
            return AssistantReply(response=LOGIN_REQUIRED_ORDER)

        cart = context.get("cart") or []
        if not cart:
            return AssistantReply(
                response="Your cart is empty. Add some dishes from the menu and ask me again."
            )

        reply = await self.tools.handle_request({
            "tool": "createOrder",
            "params": {"userId": context["userId"], "items": cart, "notes": context.get("notes")},
        })
        result = reply.get("result")
        if result is None:
            return AssistantReply(response=GENERIC_ERROR)
        if not result["success"]:
            return AssistantReply(response=f"I couldn't place the order: {result['error']}")

        order = result["data"]
        response = self.backend.generate_action_response("createOrder", {
            "order_id": order["id"],
            "total": order["total_amount"],
            "items": [
                {
                    "name": (item.get("product") or {}).get("name", item["product_id"]),
                    "quantity": item["quantity"],
                    "unit_price": item["unit_price"],
                }
                for item in order["items"]
            ],
        })
        logger.info(f"Assistant placed order {order['id']} for user {context['userId']}")
        return AssistantReply(response=response, action="createOrder", data=order)

    async def _handle_create_reservation(self, context: dict[str, Any]) -> AssistantReply:
        if not context.get("userId"):
            return AssistantReply(response=LOGIN_REQUIRED_RESERVATION)

        details = context.get("reservation") or {}
        required = ("date", "startTime", "endTime", "partySize")
        if not all(details.get(key) for key in required):
            return AssistantReply(
                response="Happy to book a table! Tell me the date, the time and how many guests will come."
            )

        reply = await self.tools.handle_request({"tool": "getAvailableTables", "params": details})
        result = reply.get("result")
        if result is None:
            return AssistantReply(response=GENERIC_ERROR)
        if not result["data"]:
            return AssistantReply(
                response="Sorry, there are no tables free for that time. Would another time work?"
            )

        table = result["data"][0]
        reply = await self.tools.handle_request({
            "tool": "createReservation",
            "params": {**details, "tableId": table["id"], "userId": context["userId"]},
        })
        result = reply.get("result")
        if result is None:
            return AssistantReply(response=GENERIC_ERROR)
        if not result["success"]:
            return AssistantReply(response=f"I couldn't book the table: {result['error']}")

        reservation = result["data"]
        response = self.backend.generate_action_response("createReservation", {
            "reservation_id": reservation["id"],
            "table_number": table["table_number"],
            "party_size": reservation["party_size"],
            "date": reservation["reservation_date"],
            "start_time": reservation["start_time"][:5],
            "end_time": reservation["end_time"][:5],
        })
        logger.info(f"Assistant booked table {table['table_number']} for user {context['userId']}")
        return AssistantReply(response=response, action="createReservation", data=reservation)

    # =========================================================================
    # CONTEXT
    # =========================================================================

    async def _enrich_context(self, query: str, context: dict[str, Any]) -> None:
        if any(keyword in query for keyword in MENU_KEYWORDS):
            _, products = await self.tools.catalog.search_products(limit=10)
            context["products"] = [ProductResponse.model_validate(p).model_dump(mode="json") for p in products]

        if context.get("userId") and any(keyword in query for keyword in ORDER_KEYWORDS):
            orders = await self.tools.orders.get_user_orders(context["userId"])
            context["orders"] = [OrderResponse.model_validate(o).model_dump(mode="json") for o in orders]

        if any(keyword in query for keyword in RESERVATION_KEYWORDS):
            tables = await self.tools.tables.get_tables_by_status(TableStatus.AVAILABLE)
            context["tables"] = [TableResponse.model_validate(t).model_dump(mode="json") for t in tables]
