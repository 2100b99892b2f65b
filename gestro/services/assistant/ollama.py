"""
Ollama Assistant Backend

Sends the chat history, prefixed with a system prompt describing the
restaurant and whatever data the dispatcher put in the context, to a
local Ollama server. Any transport or payload error falls back to the
keyword table so the assistant never goes silent.

Author: Khalil Bannouri
Version: 1.0.0
"""

import json
import logging
from typing import Any, Optional

import httpx

from gestro.core.config import Settings, get_settings
from gestro.services.assistant.base import BaseAssistantBackend, Message
from gestro.services.assistant.fallback import FallbackAssistant

logger = logging.getLogger(__name__)


class OllamaAssistant(BaseAssistantBackend):
    """LLM backend over the Ollama /api/chat endpoint."""

    def __init__(self, settings: Optional[Settings] = None, fallback: Optional[FallbackAssistant] = None):
        self.settings = settings or get_settings()
        self.fallback = fallback or FallbackAssistant(self.settings)
        logger.info(f"OllamaAssistant initialized (model={self.settings.ollama_model})")

    @property
    def provider_name(self) -> str:
        return "ollama"

    def _system_prompt(self, context: dict[str, Any]) -> str:
        s = self.settings
        user = f"- User id: {context['userId']}" if context.get("userId") else "- User not signed in"

        sections = [
            f"You are the virtual assistant of {s.restaurant_name}. Help customers with the menu, "
            "orders and table reservations.",
            f"User:\n{user}",
            f"Opening hours: {s.opening_hours}. Address: {s.restaurant_address}.",
            "Be friendly and concise. If you don't know something, say so and suggest an alternative.",
        ]
        for key, label, limit in (
            ("products", "Products", 5),
            ("orders", "User orders", 3),
            ("tables", "Available tables", 5),
        ):
            if context.get(key):
                sections.append(f"{label}: {json.dumps(context[key][:limit], default=str)}")
        return "\n\n".join(sections)

    def _history(self, messages: list[Message], context: dict[str, Any]) -> list[dict]:
        return [
            {"role": "system", "content": self._system_prompt(context)},
            *[
                {"role": "user" if m.get("role") == "user" else "assistant", "content": m.get("content", "")}
                for m in messages
                if m.get("role") != "system"
            ],
        ]

    async def generate_response(self, messages: list[Message], context: dict[str, Any]) -> str:
        payload = {
            "model": self.settings.ollama_model,
            "messages": self._history(messages, context),
            "stream": False,
            "options": {"temperature": 0.7, "top_p": 0.95, "top_k": 40},
        }

        try:
            async with httpx.AsyncClient(timeout=self.settings.ollama_timeout) as client:
                response = await client.post(f"{self.settings.ollama_url}/api/chat", json=payload)
                response.raise_for_status()
                return response.json()["message"]["content"]

        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"Ollama unavailable, using fallback reply: {e}")
            return self.fallback.respond(messages, context)

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.settings.ollama_timeout) as client:
                response = await client.get(f"{self.settings.ollama_url}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
