"""
Assistant Backend Factory

Development uses the keyword fallback; staging/production talk to Ollama
(which itself falls back to the keyword table when unreachable).

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from gestro.core.config import get_settings
from gestro.services.assistant.base import BaseAssistantBackend
from gestro.services.assistant.dispatcher import AssistantDispatcher, AssistantReply
from gestro.services.assistant.fallback import FallbackAssistant
from gestro.services.assistant.ollama import OllamaAssistant

logger = logging.getLogger(__name__)


@lru_cache()
def get_assistant_backend() -> BaseAssistantBackend:
    settings = get_settings()

    if settings.is_development:
        logger.info("Assistant: Using FallbackAssistant (development mode)")
        return FallbackAssistant(settings)

    logger.info(f"Assistant: Using OllamaAssistant ({settings.env_mode.value} mode)")
    return OllamaAssistant(settings)


def reset_assistant_backend() -> None:
    get_assistant_backend.cache_clear()


__all__ = [
    "get_assistant_backend",
    "reset_assistant_backend",
    "AssistantDispatcher",
    "AssistantReply",
    "BaseAssistantBackend",
    "FallbackAssistant",
    "OllamaAssistant",
]
