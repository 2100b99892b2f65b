"""
Mock customer messaging.

Nothing is sent: each message is logged and appended to `sent`, which
tests inspect. A configurable share of sends fails on purpose.
"""

import asyncio
import logging
import random
import uuid
from typing import Optional

from gestro.services.notifications.base import BaseNotificationService, NotificationResult

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):

    def __init__(self, failure_rate: float = 0.05, latency: tuple[float, float] = (0.1, 0.3)):
        self.failure_rate = failure_rate
        self.latency = latency
        self.sent: list[dict] = []
        logger.info(f"Mock messaging ready ({failure_rate:.0%} simulated failures)")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _deliver(self, channel: str, to: str, **fields) -> NotificationResult:
        delay = random.uniform(*self.latency)
        if delay > 0:
            await asyncio.sleep(delay)

        if random.random() < self.failure_rate:
            logger.warning(f"Simulated {channel} failure for {to}")
            return NotificationResult(success=False, error_message=f"Simulated {channel} failure", provider="mock")

        message_id = f"{channel}_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": channel, "to": to, "id": message_id, **fields})
        logger.info(f"[mock {channel}] {to}: {message_id}")
        return NotificationResult(success=True, message_id=message_id, provider="mock")

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        return await self._deliver("sms", to_phone, body=message)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        return await self._deliver("email", to_email, subject=subject)

    async def health_check(self) -> bool:
        return True
