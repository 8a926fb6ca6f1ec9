"""Admission control: persistent daily quota plus per-process limiters."""

from .engine import QuotaEngine, QuotaPolicy, build_policies
from .limiters import (
    ConcurrencyLimiter,
    FailedScanTracker,
    InMemoryDailyCounter,
    InMemorySlidingWindowStore,
    MongoSlidingWindowStore,
    SlidingWindowStore,
)
from .stores import InMemoryQuotaStore, QuotaDecision, QuotaStore

__all__ = [
    "ConcurrencyLimiter",
    "FailedScanTracker",
    "InMemoryDailyCounter",
    "InMemoryQuotaStore",
    "InMemorySlidingWindowStore",
    "MongoSlidingWindowStore",
    "QuotaDecision",
    "QuotaEngine",
    "QuotaPolicy",
    "QuotaStore",
    "SlidingWindowStore",
    "build_policies",
]
