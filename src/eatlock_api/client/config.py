"""Client-side configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Settings for the device-side pipeline, read from EATLOCK_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="EATLOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_base_url: str = "http://localhost:8000"
    request_timeout: float = 45.0

    # A meal may only be finished this long after it started
    min_meal_duration_seconds: int = 300

    # Compression applied before every upload
    image_max_side: int = 768
    image_jpeg_quality: int = 65
    max_upload_bytes: int = 5 * 1024 * 1024  # 5 MB
