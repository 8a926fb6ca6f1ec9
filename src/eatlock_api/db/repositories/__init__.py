"""Repository classes for database access."""

from .quota_usage import QuotaUsageRepository

__all__ = ["QuotaUsageRepository"]
