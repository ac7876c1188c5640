"""
Verification Store Factory

Returns the memory or Redis store based on VERIFICATION_BACKEND.
"""

import logging
from functools import lru_cache

from restaurante.core.config import get_settings, VerificationBackend
from restaurante.services.verification.base import (
    BaseVerificationStore,
    PendingVerification,
)
from restaurante.services.verification.memory import MemoryVerificationStore
from restaurante.services.verification.redis_store import RedisVerificationStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_verification_store() -> BaseVerificationStore:
    """Get the configured verification store (one per process)."""
    settings = get_settings()

    if settings.verification_backend == VerificationBackend.REDIS:
        logger.info("Verification Store: Using RedisVerificationStore")
        return RedisVerificationStore.from_url(
            settings.redis_url,
            ttl_seconds=settings.verification_ttl_seconds,
        )

    if settings.use_real_services:
        logger.warning(
            "Verification Store: in-memory store in "
            f"{settings.env_mode.value} mode; codes are not shared between instances"
        )
    else:
        logger.info("Verification Store: Using MemoryVerificationStore")
    return MemoryVerificationStore()


__all__ = [
    "get_verification_store",
    "BaseVerificationStore",
    "PendingVerification",
    "MemoryVerificationStore",
    "RedisVerificationStore",
]
