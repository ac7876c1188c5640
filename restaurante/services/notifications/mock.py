"""
Mock Notification Service

Simulates SMS sending for development.
No actual messages are sent - they are logged and kept in an outbox.
"""

import asyncio
import random
import uuid
import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

from restaurante.core.config import mask_phone
from restaurante.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    to_phone: str
    body: str
    message_id: str


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.05,
        max_latency: float = 0.2,
        outbox_size: int = 100,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        # Keeps only the most recent messages
        self.outbox: deque[SentMessage] = deque(maxlen=outbox_size)
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {mask_phone(to_phone)}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        self.outbox.append(SentMessage(to_phone=to_phone, body=message, message_id=message_id))
        # Development only: the body is logged so codes can be read from the console
        logger.info(f"Mock SMS sent to {mask_phone(to_phone)}: {message} (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    def last_message_to(self, to_phone: str) -> Optional[SentMessage]:
        for sent in reversed(self.outbox):
            if sent.to_phone == to_phone:
                return sent
        return None

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
