"""
In-process verification store.

Only valid for a single server process: pending codes are lost on
restart and invisible to other instances. Use the Redis store when
running more than one worker.
"""

import asyncio
from typing import Optional

from restaurante.services.verification.base import (
    BaseVerificationStore,
    PendingVerification,
)


class MemoryVerificationStore(BaseVerificationStore):

    def __init__(self):
        self._records: dict[str, PendingVerification] = {}
        self._lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def get(self, phone: str) -> Optional[PendingVerification]:
        async with self._lock:
            return self._records.get(phone)

    async def put(self, record: PendingVerification) -> None:
        async with self._lock:
            self._records[record.phone] = record

    async def delete(self, phone: str) -> None:
        async with self._lock:
            self._records.pop(phone, None)

    def __len__(self) -> int:
        return len(self._records)
