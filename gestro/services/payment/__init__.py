"""
Payment gateways.

get_payment_service() hands out one cached gateway per process:
MockPaymentService in development, StripePaymentService in staging
and production. Tests call reset_payment_service() after changing
ENV_MODE.
"""

import logging
from functools import lru_cache

from gestro.core.config import get_settings
from gestro.services.payment.base import (
    BasePaymentService,
    PaymentResult,
    RefundResult,
    WebhookUpdate,
    map_provider_status,
)
from gestro.services.payment.mock import MockPaymentService
from gestro.services.payment.stripe import StripePaymentService

logger = logging.getLogger(__name__)


@lru_cache()
def get_payment_service() -> BasePaymentService:
    settings = get_settings()

    if settings.use_real_services:
        logger.info(f"Payments go through Stripe ({settings.env_mode.value})")
        return StripePaymentService()

    logger.info("Payments go through the mock gateway")
    return MockPaymentService(failure_rate=0.10, min_latency=0.2, max_latency=0.8)


def reset_payment_service() -> None:
    get_payment_service.cache_clear()


__all__ = [
    "get_payment_service",
    "reset_payment_service",
    "BasePaymentService",
    "PaymentResult",
    "RefundResult",
    "WebhookUpdate",
    "map_provider_status",
    "MockPaymentService",
    "StripePaymentService",
]
