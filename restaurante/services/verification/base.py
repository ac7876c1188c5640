"""
Verification Store Abstract Base Class

Keeps pending registrations keyed by canonical phone until the SMS code
is confirmed. Exactly one record exists per phone; writing a new one
replaces the previous record.

Expiry is checked lazily by the auth service when a code is confirmed,
so implementations only need get/put/delete.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional


@dataclass
class PendingVerification:
    """A registration waiting for its SMS code."""
    phone: str
    code: str
    name: str
    password: str
    created_at: datetime

    def is_expired(self, now: datetime, ttl_seconds: int) -> bool:
        return (now - self.created_at).total_seconds() > ttl_seconds

    def to_json(self) -> str:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "PendingVerification":
        data = json.loads(raw)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        return cls(**data)


class BaseVerificationStore(ABC):
    """Abstract base class for pending verification storage."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    @abstractmethod
    async def get(self, phone: str) -> Optional[PendingVerification]:
        """Return the pending record for a phone, if any."""
        pass

    @abstractmethod
    async def put(self, record: PendingVerification) -> None:
        """Store a record, replacing any previous one for the same phone."""
        pass

    @abstractmethod
    async def delete(self, phone: str) -> None:
        pass

    async def health_check(self) -> bool:
        return True
