"""
Redis-backed verification store.

Shares pending registrations between API instances. Keys carry a native
expiry slightly longer than the verification TTL, so an expired code is
still found (and reported as expired) when confirmed shortly after.
"""

import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from restaurante.services.verification.base import (
    BaseVerificationStore,
    PendingVerification,
)

logger = logging.getLogger(__name__)

KEY_PREFIX = "verification:"
EXPIRY_GRACE_SECONDS = 60


class RedisVerificationStore(BaseVerificationStore):

    def __init__(self, client: aioredis.Redis, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "RedisVerificationStore":
        return cls(aioredis.from_url(url, decode_responses=True), ttl_seconds)

    @property
    def backend_name(self) -> str:
        return "redis"

    @staticmethod
    def _key(phone: str) -> str:
        return f"{KEY_PREFIX}{phone}"

    async def get(self, phone: str) -> Optional[PendingVerification]:
        raw = await self.client.get(self._key(phone))
        if raw is None:
            return None
        return PendingVerification.from_json(raw)

    async def put(self, record: PendingVerification) -> None:
        await self.client.set(
            self._key(record.phone),
            record.to_json(),
            ex=self.ttl_seconds + EXPIRY_GRACE_SECONDS,
        )

    async def delete(self, phone: str) -> None:
        await self.client.delete(self._key(phone))

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
