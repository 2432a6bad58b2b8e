# FILE: portrait_backend/config.py
"""
Configuration management for the portrait generation backend
Loads from environment variables with validation
"""
import os
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Backend server
    backend_host: str = Field(default="0.0.0.0", alias="BACKEND_HOST")
    backend_port: int = Field(default=8000, alias="BACKEND_PORT")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Image generation provider
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash-image-preview", alias="GEMINI_MODEL")
    dev_mode_skip_ai: bool = Field(
        default=False,
        alias="DEV_MODE_SKIP_AI",
        description="Echo the uploaded photo instead of calling the provider. Never allowed in production."
    )

    # Generation
    generation_max_retries: int = Field(
        default=0,
        alias="GENERATION_MAX_RETRIES",
        description="Extra provider attempts after a retryable failure. Each attempt is billed."
    )
    generation_retry_base_delay_ms: int = Field(default=1000, alias="GENERATION_RETRY_BASE_DELAY_MS")
    generation_timeout_seconds: float = Field(default=300.0, alias="GENERATION_TIMEOUT_SECONDS")
    generation_preview_cost: float = Field(default=0.039, alias="GENERATION_PREVIEW_COST")
    generation_full_cost: float = Field(default=0.039, alias="GENERATION_FULL_COST")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_profile: str = Field(
        default="production",
        alias="RATE_LIMIT_PROFILE",
        description="'production' (3 per 24h) or 'development' (50 per hour)"
    )
    rate_limit_paths: List[str] = Field(
        default=["/api/generate-preview"],
        alias="RATE_LIMIT_PATHS"
    )

    # Security
    body_size_limit_mb: int = Field(default=20, alias="BODY_SIZE_LIMIT_MB")

    # CORS
    cors_origins: List[str] = Field(default=["http://localhost:3000"], alias="CORS_ORIGINS")

    # Watermarking
    watermark_brand: str = Field(default="Portrait Banana", alias="WATERMARK_BRAND")
    full_watermark_enabled: bool = Field(
        default=False,
        alias="FULL_WATERMARK_ENABLED",
        description="Stamp a subtle attribution mark on paid full-resolution downloads"
    )

    # Payments
    payment_verifier: str = Field(default="stripe", alias="PAYMENT_VERIFIER")
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    download_price: int = Field(default=799, alias="DOWNLOAD_PRICE", description="Price in cents")
    currency: str = Field(default="usd", alias="CURRENCY")

    # Telemetry
    telemetry_enabled: bool = Field(default=True, alias="TELEMETRY_ENABLED")
    logs_dir: str = Field(default="./logs", alias="LOGS_DIR")

    # Validators
    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        if v not in ["development", "production", "test"]:
            raise ValueError("environment must be 'development', 'production', or 'test'")
        return v

    @field_validator("rate_limit_profile")
    @classmethod
    def validate_rate_limit_profile(cls, v):
        if v not in ["development", "production"]:
            raise ValueError("rate_limit_profile must be 'development' or 'production'")
        return v

    @field_validator("payment_verifier")
    @classmethod
    def validate_payment_verifier(cls, v):
        if v not in ["stripe", "dev"]:
            raise ValueError("payment_verifier must be 'stripe' or 'dev'")
        return v

    @field_validator("generation_max_retries")
    @classmethod
    def validate_generation_max_retries(cls, v):
        if v < 0:
            raise ValueError("generation_max_retries must be at least 0 (0 disables retries)")
        return v

    @field_validator("generation_timeout_seconds")
    @classmethod
    def validate_generation_timeout(cls, v):
        if v <= 0:
            raise ValueError("generation_timeout_seconds must be positive")
        return v

    def is_development(self) -> bool:
        return self.environment == "development"

    def is_production(self) -> bool:
        return self.environment == "production"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.telemetry_enabled:
            os.makedirs(self.logs_dir, exist_ok=True)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create singleton settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings (useful for testing)"""
    global _settings
    _settings = None
    return get_settings()
