"""
Mock Payment Gateway

Development stand-in for Stripe. Nothing leaves the process:
charges are decided locally, ids look like Stripe's (pi_mock_…,
re_mock_…) and webhooks are accepted unsigned.

Decisions, in order:
    1. amount <= 0            → invalid_amount
    2. a decline test token   → the matching decline code
    3. failure_rate roll      → a random decline code
    4. otherwise              → succeeded

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import json
import logging
import random
import uuid
from typing import Optional

from gestro.services.payment.base import BasePaymentService, PaymentResult, RefundResult

logger = logging.getLogger(__name__)

INVALID_AMOUNT = PaymentResult(
    success=False,
    error_message="Amount must be greater than 0",
    error_code="invalid_amount",
)


class MockPaymentService(BasePaymentService):
    """
    In-process gateway.

    Tests build it with failure_rate=0 and zero latency so every
    outcome is driven by the payment token alone.
    """

    RANDOM_DECLINES = [
        ("card_declined", "Your card was declined."),
        ("insufficient_funds", "Your card has insufficient funds."),
        ("expired_card", "Your card has expired."),
        ("incorrect_cvc", "Your card's security code is incorrect."),
        ("processing_error", "An error occurred while processing your card."),
    ]

    # Same names as Stripe's test payment methods
    DECLINE_TOKENS = {
        "pm_card_chargeDeclined": ("card_declined", "Your card was declined."),
        "pm_card_chargeDeclinedInsufficientFunds": ("insufficient_funds", "Your card has insufficient funds."),
        "pm_card_chargeDeclinedExpiredCard": ("expired_card", "Your card has expired."),
    }

    def __init__(self, failure_rate: float = 0.10, min_latency: float = 0.2, max_latency: float = 0.8):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.refunds: list[dict] = []

        logger.info(
            f"Mock gateway ready: {failure_rate:.0%} random declines, "
            f"{min_latency}-{max_latency}s latency"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _wait(self) -> float:
        """Sleep for a random latency; returns it in milliseconds."""
        seconds = random.uniform(self.min_latency, self.max_latency)
        if seconds > 0:
            await asyncio.sleep(seconds)
        return seconds * 1000

    def _decline_for(self, payment_token: Optional[str]) -> Optional[tuple[str, str]]:
        if payment_token in self.DECLINE_TOKENS:
            return self.DECLINE_TOKENS[payment_token]
        if random.random() < self.failure_rate:
            return random.choice(self.RANDOM_DECLINES)
        return None

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
            return INVALID_AMOUNT

        elapsed_ms = await self._wait()
        decline = self._decline_for(payment_token)

        if decline is not None:
            code, message = decline
            logger.info(f"Mock gateway declined {amount:.2f} {currency.upper()}: {code}")
            return PaymentResult(
                success=False,
                provider_status="requires_payment_method",
                amount=amount,
                currency=currency,
                error_message=message,
                error_code=code,
                response_time_ms=elapsed_ms,
            )

        intent_id = f"pi_mock_{uuid.uuid4().hex[:24]}"
        logger.info(f"Mock gateway charged {amount:.2f} {currency.upper()} as {intent_id}")
        return PaymentResult(
            success=True,
            payment_intent_id=intent_id,
            provider_status="succeeded",
            amount=amount,
            currency=currency,
            response_time_ms=elapsed_ms,
            metadata={
                **(metadata or {}),
                "customer_email": customer_email,
                "description": description,
                "mock": True,
            },
        )

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> RefundResult:
        await self._wait()

        if not payment_intent_id or not payment_intent_id.startswith("pi_"):
            return RefundResult(success=False, error_message="Invalid payment intent ID")

        refund_id = f"re_mock_{uuid.uuid4().hex[:24]}"
        self.refunds.append({
            "refund_id": refund_id,
            "payment_intent_id": payment_intent_id,
            "amount": amount,
            "reason": reason,
        })
        logger.info(f"Mock gateway refunded {payment_intent_id} as {refund_id}")
        return RefundResult(success=True, refund_id=refund_id, amount=amount, status="succeeded")

    async def verify_webhook(self, payload: bytes, signature: str) -> Optional[dict]:
        """Unsigned: any JSON body is accepted."""
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Mock gateway got a non-JSON webhook body")
            return None

    async def health_check(self) -> bool:
        return True
