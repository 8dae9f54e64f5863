"""Environment-based configuration for NormalizeX."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from NORMALIZEX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="NORMALIZEX_",
        case_sensitive=False,
    )

    log_level: str = "INFO"

    # Output constraints (None = not configured)
    max_long_side_px: float | None = None
    target_max_bytes: float | None = None

    # Search tuning
    jpeg_quality_start: float = Field(default=0.95, gt=0.0, le=1.0)
    jpeg_min_quality: float = Field(default=0.65, gt=0.0, le=1.0)
    jpeg_quality_step: float = Field(default=0.05, gt=0.0, le=1.0)
    max_quality_iters: int = Field(default=8, ge=1)
    max_resize_passes: int = Field(default=4, ge=1)
    resize_down_factor: float = Field(default=0.9, gt=0.0, lt=1.0)

    # HEIC/HEIF decoding
    platform_heif: bool = True
    heic_decoder: str | None = Field(
        default=None,
        description="Import path ('module:attribute') of an external HEIC decoder",
    )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
