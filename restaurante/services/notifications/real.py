"""
Real Notification Service

Production implementation using Twilio for SMS.
"""

import asyncio
import logging

from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException, TwilioRestException

from restaurante.core.config import get_settings, mask_phone
from restaurante.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)

# Twilio error raised for numbers it cannot route to
INVALID_NUMBER_CODE = 21211


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio."""

    def __init__(self):
        settings = get_settings()
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "twilio"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            # The Twilio client is blocking; keep the event loop free
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=to_phone,
            )

            logger.info(f"SMS sent to {mask_phone(to_phone)}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioRestException as e:
            logger.error(f"Twilio error {e.code} sending to {mask_phone(to_phone)}: {e.msg}")
            return NotificationResult(
                success=False,
                error_message="Número inválido" if e.code == INVALID_NUMBER_CODE else "Intenta más tarde",
                error_code=str(e.code),
                provider="twilio"
            )
        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def health_check(self) -> bool:
        """Check the Twilio account is reachable."""
        if not self.twilio_client:
            return False
        settings = get_settings()
        try:
            await asyncio.to_thread(
                self.twilio_client.api.v2010.accounts(settings.twilio_account_sid).fetch
            )
            return True
        except TwilioException as e:
            logger.error(f"Twilio health check failed: {e}")
            return False
