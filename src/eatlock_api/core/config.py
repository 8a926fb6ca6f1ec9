"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "eatlock"

    # Identity provider (resolves bearer tokens to a user id)
    auth_base_url: str = "http://localhost:54321"
    auth_service_key: str = ""
    auth_timeout: float = 10.0

    # Vision model provider (OpenAI Responses API)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    vision_model: str = "gpt-4o-mini"
    model_timeout: float = 45.0

    # Uploads
    max_image_bytes: int = 5 * 1024 * 1024  # 5 MB
    upload_signing_secret: str = "change-me"
    signed_upload_ttl_seconds: int = 600
    upload_retention_minutes: int = 30
    upload_cleanup_enabled: bool = True
    upload_cleanup_interval_minutes: int = 10

    # Daily quotas per user (authoritative, persisted)
    verify_daily_limit: int = 30
    compare_daily_limit: int = 10
    nutrition_daily_limit: int = 10

    # Burst limits per user within burst_window_seconds (IP limit = user limit * multiplier)
    verify_burst_limit: int = 8
    compare_burst_limit: int = 6
    nutrition_burst_limit: int = 6
    burst_ip_multiplier: int = 2
    burst_window_seconds: float = 60.0

    # Concurrent in-flight model calls per user
    concurrency_limit: int = 3
    concurrency_window_seconds: float = 60.0

    # Upload handshake limits (window shared by both)
    signed_upload_user_limit: int = 18
    signed_upload_ip_limit: int = 40
    direct_upload_user_limit: int = 16
    direct_upload_ip_limit: int = 36
    upload_window_seconds: float = 120.0

    # Repeated non-food scans put verify into a cooldown
    failed_scan_limit: int = 10
    failed_scan_window_seconds: float = 600.0
    failed_scan_cooldown_seconds: float = 300.0

    # Secondary per-process daily counter (advisory, not shared across instances)
    memory_quota_enabled: bool = True
    # Keep burst hits in MongoDB so instances share them (best effort)
    shared_burst_store: bool = False

    # Re-run low-confidence UNVERIFIABLE comparisons once at high image detail
    compare_high_detail_escalation: bool = True
    compare_escalation_confidence: float = 0.55

    # App
    debug: bool = False
    app_name: str = "EatLock API"
    api_version: str = "1.0.0"

    @property
    def is_model_configured(self) -> bool:
        """Check if the vision model provider is configured."""
        return bool(self.openai_api_key)

    @property
    def is_auth_configured(self) -> bool:
        """Check if the identity provider is configured."""
        return bool(self.auth_service_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
