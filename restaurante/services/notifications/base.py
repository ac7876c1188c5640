"""
Notification Service Abstract Base Class

Defines the interface for sending SMS messages, used to deliver phone
verification codes. Supports both Mock (development) and Real (Twilio)
implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from restaurante.core.config import get_settings


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    provider: str = "unknown"


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    async def send_verification_code(
        self,
        to_phone: str,
        code: str,
    ) -> NotificationResult:
        """Send a registration verification code."""
        template = get_settings().verification_message
        return await self.send_sms(to_phone, template.format(code=code))

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
