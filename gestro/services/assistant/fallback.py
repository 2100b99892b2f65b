"""
Keyword fallback assistant.

Answers from a fixed string table keyed on words in the last user
message. Used in development and whenever the LLM backend is down.
"""

import logging
from typing import Any, Optional

from gestro.core.config import Settings, get_settings
from gestro.services.assistant.base import BaseAssistantBackend, Message, last_user_message

logger = logging.getLogger(__name__)

NO_QUERY = "I couldn't find a question in your message."
LOGIN_REQUIRED_ORDER = "To place an order you need to sign in first."
LOGIN_REQUIRED_RESERVATION = "To book a table you need to sign in first."

# First match wins
MENU_KEYWORDS = ("menu", "dish", "food", "products")
DRINK_KEYWORDS = ("drink", "beverage", "wine", "beer", "cocktail")
RESERVATION_KEYWORDS = ("reservation", "table", "book")
HOURS_KEYWORDS = ("hours", "open", "close")
LOCATION_KEYWORDS = ("location", "address", "where")
ORDER_KEYWORDS = ("order",)


def _contains_any(query: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in query for keyword in keywords)


class FallbackAssistant(BaseAssistantBackend):

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def provider_name(self) -> str:
        return "fallback"

    async def generate_response(self, messages: list[Message], context: dict[str, Any]) -> str:
        return self.respond(messages, context)

    def respond(self, messages: list[Message], context: dict[str, Any]) -> str:
        query = last_user_message(messages)
        if query is None:
            return NO_QUERY
        query = query.lower()
        s = self.settings

        if _contains_any(query, MENU_KEYWORDS):
            return (
                "We have a wide range of dishes on the menu: starters, mains, pizzas and desserts. "
                "Is there a category you're interested in?"
            )

        if _contains_any(query, DRINK_KEYWORDS):
            return (
                "We serve wines, beers, cocktails and alcohol-free drinks. "
                "What would you like to drink?"
            )

        if _contains_any(query, RESERVATION_KEYWORDS):
            return (
                "You can book a table for any day of the week and we have tables for groups of all sizes. "
                "How many people is the reservation for?"
            )

        if _contains_any(query, HOURS_KEYWORDS):
            return f"Our opening hours are {s.opening_hours}."

        if _contains_any(query, LOCATION_KEYWORDS):
            return f"You can find us at {s.restaurant_address}. Call us on {s.restaurant_phone}."

        if _contains_any(query, ORDER_KEYWORDS):
            if not context.get("userId"):
                return LOGIN_REQUIRED_ORDER
            return "Add the dishes you want to your cart and check out when ready. What would you like to order?"

        return (
            f"I'm the virtual assistant of {s.restaurant_name}. I can help with the menu, "
            "table reservations or questions about the restaurant. How can I help you today?"
        )
