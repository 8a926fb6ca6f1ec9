"""Per-process limiter primitives used by the quota engine.

None of these are shared between instances. They sit in front of the
persistent daily quota as cheap secondary checks; the one exception is
``MongoSlidingWindowStore``, which shares burst hits across instances on a
best-effort basis.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from motor.motor_asyncio import AsyncIOMotorCollection

from eatlock_api.utils.dates import UTC_TZ

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

# Idle keys are swept from the in-memory maps once per this many calls
SWEEP_EVERY = 256


# =============================================================================
# Sliding-window burst limiter
# =============================================================================


class SlidingWindowStore(ABC):
    """Backing store for sliding-window rate limits."""

    @abstractmethod
    async def hit(self, key: str, limit: int, window: float, now: float) -> bool:
        """
        Record a hit for ``key`` if it is under ``limit`` within the trailing window.

        Hits older than ``window`` seconds are dropped first. A rejected
        attempt is not recorded.

        Returns:
            True if admitted
        """


class InMemorySlidingWindowStore(SlidingWindowStore):
    """
    Timestamp list per key, held in process memory.

    A key is dropped as soon as its window empties. Keys that are never hit
    again are removed by a sweep that runs every ``sweep_every`` hits.
    """

    def __init__(self, sweep_every: int = SWEEP_EVERY) -> None:
        self.sweep_every = sweep_every
        self._hits: dict[str, list[float]] = {}
        self._windows: dict[str, float] = {}
        self._calls = 0

    def __len__(self) -> int:
        return len(self._hits)

    async def hit(self, key: str, limit: int, window: float, now: float) -> bool:
        self._maybe_sweep(now)
        current = [ts for ts in self._hits.get(key, []) if now - ts < window]
        admitted = len(current) < limit
        if admitted:
            current.append(now)
        self._keep(key, current, window)
        return admitted

    def count(self, key: str, window: float, now: float) -> int:
        return sum(1 for ts in self._hits.get(key, []) if now - ts < window)

    def _keep(self, key: str, hits: list[float], window: float) -> None:
        if hits:
            self._hits[key] = hits
            self._windows[key] = window
        else:
            self._hits.pop(key, None)
            self._windows.pop(key, None)

    def _maybe_sweep(self, now: float) -> None:
        self._calls += 1
        if self._calls % self.sweep_every:
            return
        idle = [
            key for key, hits in self._hits.items()
            if now - max(hits) >= self._windows[key]
        ]
        for key in idle:
            del self._hits[key]
            del self._windows[key]
        if idle:
            logger.debug(f"Evicted {len(idle)} idle burst keys")


class MongoSlidingWindowStore(SlidingWindowStore):
    """
    Sliding-window hits stored in MongoDB so instances share them.

    The push only matches while the hit array is shorter than ``limit``;
    when it is full the upsert collides with the existing document and the
    hit is rejected. Store failures admit the hit. ``expires_at`` feeds a
    TTL index so idle buckets are purged.
    """

    COLLECTION_NAME = "RateLimitHits"

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def hit(self, key: str, limit: int, window: float, now: float) -> bool:
        if limit <= 0:
            return False
        try:
            await self.collection.update_one(
                {"_id": key},
                {"$pull": {"hits": {"$lte": now - window}}},
            )
            await self.collection.find_one_and_update(
                {"_id": key, f"hits.{limit - 1}": {"$exists": False}},
                {"$push": {"hits": now}, "$set": {"expires_at": datetime.fromtimestamp(now + window, UTC_TZ)}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            return True
        except DuplicateKeyError:
            return False
        except PyMongoError as e:
            logger.warning(f"Shared burst store unavailable, admitting {key}: {e}")
            return True


# =============================================================================
# In-memory daily counter
# =============================================================================


@dataclass
class _DailyBucket:
    count: int
    reset_at: float


class InMemoryDailyCounter:
    """
    Per-process daily counter: ``{count, reset_at}`` per key, reset lazily.

    Advisory only. It forgets everything on restart and is not shared
    between instances, so the persistent quota stays the authority.
    Expired buckets are swept every ``sweep_every`` calls.
    """

    def __init__(self, window: float = DAY_SECONDS, sweep_every: int = SWEEP_EVERY) -> None:
        self.window = window
        self.sweep_every = sweep_every
        self._buckets: dict[str, _DailyBucket] = {}
        self._calls = 0

    def __len__(self) -> int:
        return len(self._buckets)

    def _maybe_sweep(self, now: float) -> None:
        self._calls += 1
        if self._calls % self.sweep_every:
            return
        expired = [key for key, bucket in self._buckets.items() if now > bucket.reset_at]
        for key in expired:
            del self._buckets[key]

    def consume(self, key: str, limit: int, now: float) -> tuple[bool, int]:
        """
        Count one use of ``key``.

        Returns:
            Tuple of (allowed, remaining)
        """
        self._maybe_sweep(now)
        bucket = self._buckets.get(key)
        if bucket is None or now > bucket.reset_at:
            if limit <= 0:
                self._buckets.pop(key, None)
                return False, 0
            self._buckets[key] = _DailyBucket(count=1, reset_at=now + self.window)
            return True, limit - 1
        if bucket.count >= limit:
            return False, 0
        bucket.count += 1
        return True, limit - bucket.count


# =============================================================================
# Concurrent-active limiter
# =============================================================================


class ConcurrencyLimiter:
    """
    Bounds in-flight requests per key.

    A slot is held from ``acquire`` until ``release``. Slots older than
    ``window`` seconds are treated as abandoned and no longer count.
    """

    def __init__(self, limit: int, window: float) -> None:
        self.limit = limit
        self.window = window
        self._active: dict[str, dict[str, float]] = {}

    def __len__(self) -> int:
        return len(self._active)

    def _prune(self, key: str, now: float) -> dict[str, float]:
        slots = {
            token: started
            for token, started in self._active.get(key, {}).items()
            if now - started < self.window
        }
        if slots:
            self._active[key] = slots
        else:
            self._active.pop(key, None)
        return slots

    def acquire(self, key: str, now: float) -> str | None:
        """Take a slot. Returns a release token, or None if the key is saturated."""
        slots = self._prune(key, now)
        if len(slots) >= self.limit:
            return None
        token = uuid.uuid4().hex
        slots[token] = now
        self._active[key] = slots
        return token

    def release(self, key: str, token: str) -> None:
        slots = self._active.get(key)
        if slots is None:
            return
        slots.pop(token, None)
        if not slots:
            del self._active[key]

    def in_flight(self, key: str, now: float) -> int:
        return len(self._prune(key, now))


# =============================================================================
# Failed-scan cooldown
# =============================================================================


class FailedScanTracker:
    """
    Puts a user into a cooldown after repeated non-food verdicts.

    ``limit`` failures within ``window`` seconds start a cooldown of
    ``cooldown`` seconds.

    Failure lists and cooldowns that have run out are swept every
    ``sweep_every`` recorded failures.
    """

    def __init__(
        self, limit: int, window: float, cooldown: float, sweep_every: int = SWEEP_EVERY
    ) -> None:
        self.limit = limit
        self.window = window
        self.cooldown = cooldown
        self.sweep_every = sweep_every
        self._failures: dict[str, list[float]] = {}
        self._cooldown_until: dict[str, float] = {}
        self._calls = 0

    def __len__(self) -> int:
        return len(self._failures.keys() | self._cooldown_until.keys())

    def _maybe_sweep(self, now: float) -> None:
        self._calls += 1
        if self._calls % self.sweep_every:
            return
        for key in [k for k, failures in self._failures.items() if now - max(failures) >= self.window]:
            del self._failures[key]
        for key in [k for k, until in self._cooldown_until.items() if now > until]:
            del self._cooldown_until[key]

    def record_failure(self, key: str, now: float) -> bool:
        """Record a failed scan. Returns True if this failure started a cooldown."""
        self._maybe_sweep(now)
        current = [ts for ts in self._failures.get(key, []) if now - ts < self.window]
        current.append(now)
        self._failures[key] = current
        if len(current) >= self.limit:
            self._cooldown_until[key] = now + self.cooldown
            return True
        return False

    def cooldown_remaining(self, key: str, now: float) -> float:
        """Seconds left in the cooldown for ``key`` (0 if none)."""
        until = self._cooldown_until.get(key)
        if until is None:
            return 0.0
        if now > until:
            del self._cooldown_until[key]
            return 0.0
        return until - now
