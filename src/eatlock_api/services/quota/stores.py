"""Persistent daily quota contract and its in-memory implementation."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class QuotaDecision(BaseModel):
    """Outcome of one consume attempt against the persistent quota."""

    allowed: bool
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class QuotaStore(ABC):
    """
    Authoritative per-user daily quota.

    ``consume`` must be atomic: two concurrent calls for the same
    ``(user_id, kind, day)`` can never both be admitted past ``limit``.
    """

    @abstractmethod
    async def consume(self, user_id: str, kind: str, limit: int, day: str) -> QuotaDecision:
        """Increment the counter if it is below ``limit``."""

    @abstractmethod
    async def get_used(self, user_id: str, kind: str, day: str) -> int:
        """Current count for ``(user_id, kind, day)`` (0 if never used)."""


class InMemoryQuotaStore(QuotaStore):
    """Dict-backed quota store for tests and single-process development."""

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str, str], int] = {}

    async def consume(self, user_id: str, kind: str, limit: int, day: str) -> QuotaDecision:
        # No await between the read and the write, so this is atomic on one loop
        key = (user_id, day, kind)
        used = self._counts.get(key, 0)
        if used >= limit:
            return QuotaDecision(allowed=False, used=used, limit=limit)
        self._counts[key] = used + 1
        return QuotaDecision(allowed=True, used=used + 1, limit=limit)

    async def get_used(self, user_id: str, kind: str, day: str) -> int:
        return self._counts.get((user_id, day, kind), 0)
