"""
Twilio (SMS) and SendGrid (email) messaging for staging and production.

Either channel may be left unconfigured; sends on it then fail with a
result instead of raising. Both SDKs block, so calls run in a thread.
"""

import asyncio
import logging
from typing import Optional

from python_http_client.exceptions import HTTPError as SendGridHTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from gestro.core.config import get_settings
from gestro.services.notifications.base import BaseNotificationService, NotificationResult

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):

    def __init__(self):
        settings = get_settings()

        self.twilio_client = None
        self.sms_sender = settings.twilio_phone_number
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)

        self.sendgrid_client = None
        self.email_sender = settings.sendgrid_from_email
        if settings.sendgrid_api_key:
            self.sendgrid_client = SendGridAPIClient(settings.sendgrid_api_key)

        logger.info(
            f"Messaging: sms={'twilio' if self.twilio_client else 'off'}, "
            f"email={'sendgrid' if self.sendgrid_client else 'off'}"
        )

    @property
    def provider_name(self) -> str:
        return "real"

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        if self.twilio_client is None:
            return NotificationResult(success=False, error_message="Twilio not configured", provider="twilio")

        try:
            sms = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.sms_sender,
                to=to_phone,
            )
        except TwilioException as e:
            logger.error(f"SMS to {to_phone} failed: {e}")
            return NotificationResult(success=False, error_message=str(e), provider="twilio")

        logger.info(f"SMS {sms.sid} queued for {to_phone}")
        return NotificationResult(success=True, message_id=sms.sid, provider="twilio")

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        if self.sendgrid_client is None:
            return NotificationResult(success=False, error_message="SendGrid not configured", provider="sendgrid")

        mail = Mail(
            from_email=self.email_sender,
            to_emails=to_email,
            subject=subject,
            html_content=body_html,
            plain_text_content=body_text,
        )
        try:
            response = await asyncio.to_thread(self.sendgrid_client.send, mail)
        except SendGridHTTPError as e:
            logger.error(f"Email to {to_email} failed: {e}")
            return NotificationResult(success=False, error_message=str(e), provider="sendgrid")

        accepted = 200 <= response.status_code < 300
        logger.info(f"Email to {to_email}: HTTP {response.status_code}")
        return NotificationResult(
            success=accepted,
            message_id=response.headers.get("X-Message-Id"),
            provider="sendgrid",
        )

    async def health_check(self) -> bool:
        return self.twilio_client is not None or self.sendgrid_client is not None
