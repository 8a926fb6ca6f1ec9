"""Layered admission control in front of the vision model.

Checks run cheapest-rejection first and all must pass:

1. Persistent daily quota (authoritative, shared by every instance).
   Store failures admit the request and are logged.
2. In-memory daily counter (advisory, per process, optional).
3. Concurrent in-flight cap per user.
4. Sliding-window burst limit per user, then per client IP.

Only (1) is authoritative. (2)-(4) live in this process and only blunt
bursts against a single instance.
"""

import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Literal

from eatlock_api.core.config import Settings
from eatlock_api.core.exceptions import RateLimitedError
from eatlock_api.models.vision import QuotaKind, QuotaUsage, UsageResponse
from eatlock_api.utils.dates import Clock, SystemClock, day_key

from .limiters import (
    ConcurrencyLimiter,
    FailedScanTracker,
    InMemoryDailyCounter,
    InMemorySlidingWindowStore,
    SlidingWindowStore,
)
from .stores import QuotaDecision, QuotaStore

logger = logging.getLogger(__name__)

UploadScope = Literal["signed", "direct"]


@dataclass(frozen=True)
class QuotaPolicy:
    """Limits applied to one metered operation."""

    kind: QuotaKind
    daily_limit: int
    burst_limit: int
    ip_burst_limit: int

    @property
    def daily_message(self) -> str:
        return f"Daily limit reached ({self.daily_limit} {self.kind.value}/day)"

    @property
    def burst_message(self) -> str:
        return f"Too many {self.kind.value} requests. Please slow down."


def build_policies(settings: Settings) -> dict[QuotaKind, QuotaPolicy]:
    """Build per-operation policies from settings."""
    limits = {
        QuotaKind.VERIFY: (settings.verify_daily_limit, settings.verify_burst_limit),
        QuotaKind.COMPARE: (settings.compare_daily_limit, settings.compare_burst_limit),
        QuotaKind.NUTRITION: (settings.nutrition_daily_limit, settings.nutrition_burst_limit),
    }
    return {
        kind: QuotaPolicy(
            kind=kind,
            daily_limit=daily,
            burst_limit=burst,
            ip_burst_limit=burst * settings.burst_ip_multiplier,
        )
        for kind, (daily, burst) in limits.items()
    }


class QuotaEngine:
    """
    Admission control for model-backed and upload endpoints.

    Usage:
        engine = QuotaEngine(store, settings)

        async with engine.admit(user_id, ip, QuotaKind.VERIFY):
            result = await service.verify_food(user_id, key)
    """

    ACTIVE_MESSAGE = "Too many active scan requests. Please wait a moment."
    UPLOAD_MESSAGE = "Too many upload requests. Please wait and try again."

    def __init__(
        self,
        store: QuotaStore,
        settings: Settings,
        *,
        burst_store: SlidingWindowStore | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Authoritative persistent quota store
            settings: Limits and windows
            burst_store: Sliding-window store (in-memory if not provided)
            clock: Time source returning epoch seconds
        """
        self.store = store
        self.settings = settings
        self.clock = clock or SystemClock()
        self.policies = build_policies(settings)

        self.bursts = burst_store or InMemorySlidingWindowStore()
        self.memory_counter = InMemoryDailyCounter() if settings.memory_quota_enabled else None
        self.concurrency = ConcurrencyLimiter(
            limit=settings.concurrency_limit,
            window=settings.concurrency_window_seconds,
        )
        self.failed_scans = FailedScanTracker(
            limit=settings.failed_scan_limit,
            window=settings.failed_scan_window_seconds,
            cooldown=settings.failed_scan_cooldown_seconds,
        )

    def policy(self, kind: QuotaKind) -> QuotaPolicy:
        return self.policies[kind]

    async def _consume_persistent(
        self, user_id: str, policy: QuotaPolicy, now: float
    ) -> QuotaDecision | None:
        """Consume one unit of the persistent quota, or None if the store failed."""
        try:
            return await self.store.consume(
                user_id, policy.kind.value, policy.daily_limit, day_key(now)
            )
        except Exception as e:
            logger.warning(
                f"Persistent quota unavailable, failing open for {policy.kind.value}: {e}",
                extra={"user_id": user_id, "kind": policy.kind.value},
            )
            return None

    @asynccontextmanager
    async def admit(
        self, user_id: str, ip: str, kind: QuotaKind
    ) -> AsyncIterator[QuotaDecision | None]:
        """
        Run every admission check and hold a concurrency slot for the block.

        Yields:
            The persistent quota decision (None if the store failed open)

        Raises:
            RateLimitedError: On the first check that rejects
        """
        policy = self.policy(kind)
        now = self.clock.now()

        decision = await self._consume_persistent(user_id, policy, now)
        if decision is not None and not decision.allowed:
            logger.info(f"Daily {kind.value} quota exhausted for {user_id} ({decision.used}/{decision.limit})")
            raise RateLimitedError(policy.daily_message, remaining=0)

        if self.memory_counter is not None:
            allowed, _ = self.memory_counter.consume(
                f"{kind.value}:{user_id}", policy.daily_limit, now
            )
            if not allowed:
                logger.info(f"In-memory {kind.value} counter exhausted for {user_id}")
                raise RateLimitedError(policy.daily_message, remaining=0)

        active_key = f"active:{user_id}"
        token = self.concurrency.acquire(active_key, now)
        if token is None:
            raise RateLimitedError(self.ACTIVE_MESSAGE)

        try:
            window = self.settings.burst_window_seconds
            if not await self.bursts.hit(f"{kind.value}:user:{user_id}", policy.burst_limit, window, now):
                raise RateLimitedError(policy.burst_message)
            if not await self.bursts.hit(f"{kind.value}:ip:{ip}", policy.ip_burst_limit, window, now):
                raise RateLimitedError(policy.burst_message)

            yield decision
        finally:
            self.concurrency.release(active_key, token)

    async def check_upload_rate(self, user_id: str, ip: str, scope: UploadScope) -> None:
        """
        Rate-limit upload handshakes and direct PUTs per user and per IP.

        Raises:
            RateLimitedError: If either window is full
        """
        if scope == "signed":
            user_limit = self.settings.signed_upload_user_limit
            ip_limit = self.settings.signed_upload_ip_limit
        else:
            user_limit = self.settings.direct_upload_user_limit
            ip_limit = self.settings.direct_upload_ip_limit

        now = self.clock.now()
        window = self.settings.upload_window_seconds
        user_ok = await self.bursts.hit(f"{scope}:user:{user_id}", user_limit, window, now)
        ip_ok = await self.bursts.hit(f"{scope}:ip:{ip}", ip_limit, window, now)
        if not user_ok or not ip_ok:
            raise RateLimitedError(self.UPLOAD_MESSAGE)

    def ensure_not_cooling_down(self, user_id: str) -> None:
        """
        Reject verify requests while the user is in a failed-scan cooldown.

        Raises:
            RateLimitedError: If a cooldown is active
        """
        remaining = self.failed_scans.cooldown_remaining(f"failed:{user_id}", self.clock.now())
        if remaining > 0:
            minutes = math.ceil(self.settings.failed_scan_cooldown_seconds / 60)
            raise RateLimitedError(f"Too many failed scans, try again in {minutes} minutes.")

    def record_failed_scan(self, user_id: str) -> None:
        if self.failed_scans.record_failure(f"failed:{user_id}", self.clock.now()):
            logger.info(f"Failed-scan cooldown started for {user_id}")

    async def usage(self, user_id: str) -> UsageResponse:
        """Persistent usage for every metered operation today."""
        day = day_key(self.clock.now())
        usage = []
        for kind, policy in self.policies.items():
            used = await self.store.get_used(user_id, kind.value, day)
            usage.append(
                QuotaUsage(
                    kind=kind,
                    used=used,
                    limit=policy.daily_limit,
                    remaining=max(0, policy.daily_limit - used),
                )
            )
        return UsageResponse(date=day, usage=usage)
