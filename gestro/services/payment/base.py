"""
Payment Gateway Contract

Every gateway (mock or Stripe) answers the same four calls: charge,
refund, verify a webhook and report health. The ledger only ever talks
to this interface, so switching ENV_MODE swaps the provider without
touching order or checkout code.

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Optional

from gestro.models import PaymentStatus


# PaymentIntent.status -> our payment status
PROVIDER_STATUS_MAP: dict[str, PaymentStatus] = {
    "succeeded": PaymentStatus.APPROVED,
    "processing": PaymentStatus.PENDING,
    "requires_action": PaymentStatus.PENDING,
    "requires_confirmation": PaymentStatus.PENDING,
    "requires_capture": PaymentStatus.PENDING,
    "requires_payment_method": PaymentStatus.REJECTED,
    "canceled": PaymentStatus.CANCELLED,
    "refunded": PaymentStatus.REFUNDED,
}


def map_provider_status(provider_status: Optional[str]) -> PaymentStatus:
    """Unknown provider statuses are treated as still pending."""
    return PROVIDER_STATUS_MAP.get((provider_status or "").lower(), PaymentStatus.PENDING)


@dataclass
class PaymentResult:
    """
    Outcome of a single charge attempt.

    Amounts are in major units (12.50, not 1250). On a decline,
    error_code carries the provider's code (card_declined,
    insufficient_funds, ...) and error_message a text safe to show.
    """
    success: bool
    payment_intent_id: Optional[str] = None
    provider_status: Optional[str] = None
    amount: Optional[float] = None
    currency: str = "usd"
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time_ms: float = 0.0
    metadata: Optional[dict] = None

    @property
    def payment_status(self) -> PaymentStatus:
        if not self.success:
            return PaymentStatus.REJECTED
        return map_provider_status(self.provider_status)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RefundResult:
    success: bool
    refund_id: Optional[str] = None
    amount: Optional[float] = None
    status: str = "pending"
    error_message: Optional[str] = None


@dataclass
class WebhookUpdate:
    """Payment state change extracted from a gateway webhook event."""
    provider_transaction_id: str
    provider_status: str
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None


class BasePaymentService(ABC):
    """Interface shared by MockPaymentService and StripePaymentService."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short id stored on each transaction ("mock", "stripe")."""

    @abstractmethod
    async def process_payment(
        self,
        amount: float,
        currency: str = "usd",
        payment_token: Optional[str] = None,
        customer_email: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentResult:
        """
        Charge payment_token for amount right away.

        metadata is attached to the provider object; the ledger puts
        transaction_id there so webhooks can be matched back.
        """

    @abstractmethod
    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> RefundResult:
        """Refund a captured charge. amount=None refunds all of it."""

    @abstractmethod
    async def verify_webhook(self, payload: bytes, signature: str) -> Optional[dict]:
        """Return the event as a dict, or None when the signature or body is bad."""

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    def parse_webhook_event(self, event: dict) -> Optional[WebhookUpdate]:
        """
        Extract a payment state change from a verified event.

        Only payment_intent.* and charge.refunded events carry one; any
        other event type returns None and should be acknowledged as-is.
        """
        event_type = event.get("type") or ""
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}

        if event_type == "charge.refunded":
            intent_id = obj.get("payment_intent")
            if not intent_id:
                return None
            return WebhookUpdate(
                provider_transaction_id=intent_id,
                provider_status="refunded",
                payment_status=PaymentStatus.REFUNDED,
                transaction_id=metadata.get("transaction_id"),
            )

        if not event_type.startswith("payment_intent.") or not obj.get("id"):
            return None

        provider_status = obj.get("status") or ""
        return WebhookUpdate(
            provider_transaction_id=obj["id"],
            provider_status=provider_status,
            payment_status=map_provider_status(provider_status),
            transaction_id=metadata.get("transaction_id"),
        )
