"""
Stripe Payment Gateway

Real gateway for staging (test keys) and production (live keys).
Charges are PaymentIntents created and confirmed server-side in one
request, using the payment method id the browser got from Stripe
Elements. The SDK is synchronous, so each call is pushed to a worker
thread to keep the event loop free.

Needs STRIPE_SECRET_KEY; STRIPE_WEBHOOK_SECRET enables signature checks.
Card data never reaches this process, only pm_… tokens.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import json
import logging
import time
from typing import Optional

import stripe
from stripe import (
    APIConnectionError,
    AuthenticationError,
    CardError,
    InvalidRequestError,
    SignatureVerificationError,
    StripeError,
)

from gestro.core.config import get_settings
from gestro.services.payment.base import BasePaymentService, PaymentResult, RefundResult

logger = logging.getLogger(__name__)

API_VERSION = "2023-10-16"

# Intent states that mean the money is (or will be) ours
ACCEPTED_STATUSES = ("succeeded", "processing", "requires_capture")

# (error_code, message shown to the customer, log level)
FAILURES = {
    InvalidRequestError: ("invalid_request", None, logging.ERROR),
    AuthenticationError: ("authentication_error", "Payment service configuration error", logging.CRITICAL),
    APIConnectionError: ("connection_error", "Payment service temporarily unavailable", logging.ERROR),
}


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def from_cents(cents: int) -> float:
    return cents / 100.0


def ms_since(started: float) -> float:
    return (time.perf_counter() - started) * 1000


class StripePaymentService(BasePaymentService):
    """PaymentIntent based gateway backed by the stripe SDK."""

    def __init__(self):
        settings = get_settings()

        if not settings.stripe_secret_key:
            raise ValueError("STRIPE_SECRET_KEY must be set outside development mode")

        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = API_VERSION

        self._webhook_secret = settings.stripe_webhook_secret
        self._currency = settings.stripe_currency

        logger.info(f"Stripe gateway ready (api_version={API_VERSION}, currency={self._currency})")

    @property
    def provider_name(self) -> str:
        return "stripe"

    async def process_payment(
        self,
        amount: float,
        currency: str = "usd",
        payment_token: Optional[str] = None,
        customer_email: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        if amount <= 0:
            return PaymentResult(success=False, error_message="Amount must be greater than 0", error_code="invalid_amount")
        if not payment_token:
            return PaymentResult(
                success=False,
                error_message="A payment method token is required",
                error_code="missing_payment_method",
            )

        started = time.perf_counter()

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=to_cents(amount),
                currency=currency or self._currency,
                payment_method=payment_token,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                description=description or "Gestro order",
                receipt_email=customer_email,
                metadata={"source": "gestro", **{k: str(v) for k, v in (metadata or {}).items()}},
            )
        except CardError as e:
            logger.warning(f"Stripe declined {amount:.2f}: {e.code}")
            return PaymentResult(
                success=False,
                provider_status="requires_payment_method",
                error_message=e.user_message,
                error_code=e.code,
                response_time_ms=ms_since(started),
            )
        except StripeError as e:
            code, message, level = FAILURES.get(type(e), ("stripe_error", "Payment processing error", logging.ERROR))
            logger.log(level, f"Stripe charge failed ({code}): {e}")
            return PaymentResult(
                success=False,
                error_message=message or str(e),
                error_code=code,
                response_time_ms=ms_since(started),
            )

        logger.info(f"Stripe intent {intent.id} -> {intent.status}")
        return PaymentResult(
            success=intent.status in ACCEPTED_STATUSES,
            payment_intent_id=intent.id,
            provider_status=intent.status,
            amount=from_cents(intent.amount),
            currency=intent.currency,
            response_time_ms=ms_since(started),
            metadata={"status": intent.status},
        )

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> RefundResult:
        """reason must be one of Stripe's codes: duplicate, fraudulent, requested_by_customer."""
        params = {"payment_intent": payment_intent_id}
        if amount is not None:
            params["amount"] = to_cents(amount)
        if reason:
            params["reason"] = reason

        try:
            refund = await asyncio.to_thread(stripe.Refund.create, **params)
        except StripeError as e:
            logger.error(f"Stripe refund of {payment_intent_id} failed: {e}")
            return RefundResult(success=False, error_message=str(e))

        logger.info(f"Stripe refund {refund.id} for {payment_intent_id} -> {refund.status}")
        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            refund_id=refund.id,
            amount=from_cents(refund.amount),
            status=refund.status,
        )

    async def verify_webhook(self, payload: bytes, signature: str) -> Optional[dict]:
        if not self._webhook_secret:
            # Staging without a secret: trust the body
            logger.warning("STRIPE_WEBHOOK_SECRET not set, accepting unsigned webhook")
            try:
                return json.loads(payload)
            except json.JSONDecodeError:
                return None

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except SignatureVerificationError as e:
            logger.warning(f"Rejected Stripe webhook, bad signature: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Rejected Stripe webhook, bad payload: {e}")
            return None

        return event.to_dict() if hasattr(event, "to_dict") else dict(event)

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(stripe.Account.retrieve)
        except StripeError as e:
            logger.error(f"Stripe health check failed: {e}")
            return False
        return True
