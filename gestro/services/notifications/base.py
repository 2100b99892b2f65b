"""
Customer messaging contract.

Providers implement the two channels (SMS and email); the order status
fan-out on top of them is shared, so mock and real messages read the
same.
"""

import html
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from gestro.core.config import get_settings
from gestro.models import OrderStatus
from gestro.services.order_status import CUSTOMER_MESSAGES, STATUS_LABELS


@dataclass
class NotificationResult:
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


def render_status_message(
    restaurant_name: str,
    order_id: str,
    customer_name: Optional[str],
    status: OrderStatus,
) -> tuple[str, str]:
    """Build (subject, text body) for an order status change."""
    greeting = f"Hi {customer_name}!" if customer_name else "Hi!"
    short_id = order_id[:8]
    subject = f"Order #{short_id} - {STATUS_LABELS[status]} - {restaurant_name}"
    body = (
        f"{greeting} {CUSTOMER_MESSAGES[status]}\n"
        f"Order #{short_id}\n"
        f"- {restaurant_name}"
    )
    return subject, body


def render_status_html(subject: str, body: str) -> str:
    """Minimal HTML version of the text message; all text is escaped."""
    paragraphs = "".join(f"<p>{html.escape(line)}</p>" for line in body.splitlines())
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h1 style="color: #ff4757;">{html.escape(subject)}</h1>{paragraphs}</div>'
    )


class BaseNotificationService(ABC):

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        ...

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    async def send_order_status_update(
        self,
        order_id: str,
        status: OrderStatus,
        customer_name: Optional[str],
        customer_email: Optional[str],
        customer_phone: Optional[str],
    ) -> NotificationResult:
        """
        Tell the customer their order moved to a new status.

        SMS goes first, then email. The update counts as delivered when
        at least one channel succeeded; with neither a phone nor an
        email on file nothing is sent.
        """
        subject, body = render_status_message(get_settings().restaurant_name, order_id, customer_name, status)

        results = []
        if customer_phone:
            results.append(await self.send_sms(customer_phone, body))
        if customer_email:
            results.append(
                await self.send_email(customer_email, subject, render_status_html(subject, body), body_text=body)
            )

        if not results:
            return NotificationResult(success=False, error_message="No contact channel", provider=self.provider_name)

        return NotificationResult(
            success=any(r.success for r in results),
            message_id=next((r.message_id for r in results if r.message_id), None),
            provider=self.provider_name,
        )
