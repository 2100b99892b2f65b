"""
Assistant Backend Abstract Base Class

A backend turns a chat history plus request context into a reply.
Confirmations for completed actions (order placed, table booked) use
fixed templates so they always quote the real ids and amounts.

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


Message = dict[str, str]


def last_user_message(messages: list[Message]) -> Optional[str]:
    for message in reversed(messages):
        if message.get("role") == "user":
            return message.get("content", "")
    return None


class BaseAssistantBackend(ABC):
    """Abstract base class for assistant backends."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def generate_response(self, messages: list[Message], context: dict[str, Any]) -> str:
        """Reply to the last user message."""
        pass

    async def health_check(self) -> bool:
        return True

    def generate_action_response(self, action: str, params: dict[str, Any]) -> str:
        if action == "createOrder":
            lines = "\n".join(
                f"- {item['quantity']}x {item['name']} (${item['unit_price']:.2f})"
                for item in params["items"]
            )
            return (
                "Order placed!\n\n"
                f"Items:\n{lines}\n\n"
                f"Total: ${params['total']:.2f}\n"
                f"Your order number is {params['order_id']}.\n"
                "Estimated preparation time: 20-30 minutes.\n\n"
                "Thanks for your order! Anything else I can help with?"
            )

        if action == "createReservation":
            return (
                "Reservation confirmed!\n\n"
                f"Date: {params['date']}\n"
                f"Time: {params['start_time']} - {params['end_time']}\n"
                f"Table: #{params['table_number']}\n"
                f"Guests: {params['party_size']}\n\n"
                f"Your reservation number is {params['reservation_id']}.\n"
                "You can cancel free of charge up to 2 hours before.\n\n"
                "See you soon!"
            )

        return "I could not put together a reply for that action."
