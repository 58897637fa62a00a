"""
Configuration Management System
================================
Environment-driven configuration with type-safe validation and
hierarchical composition through Pydantic settings.

Architecture: Strategy Pattern + Singleton + Functional Composition
"""

from functools import lru_cache
from typing import Dict, Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """
    Content store database.

    When DATABASE_URL is unset, generated content is kept in process
    memory instead.
    """

    url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    pool_size: int = Field(default=10, ge=1, le=50, alias="DB_POOL_SIZE")
    max_overflow: int = Field(default=20, ge=0, le=100, alias="DB_MAX_OVERFLOW")
    pool_timeout: int = Field(default=30, ge=1, le=120, alias="DB_POOL_TIMEOUT")
    pool_recycle: int = Field(default=3600, ge=300, alias="DB_POOL_RECYCLE")
    echo_sql: bool = Field(default=False, alias="DB_ECHO_SQL")
    write_timeout: float = Field(default=10.0, gt=0, le=60, alias="DB_WRITE_TIMEOUT")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def is_sqlite(self) -> bool:
        return bool(self.url) and self.url.startswith("sqlite")

    @property
    def async_url(self) -> str:
        """Rewrite the configured URL onto an async driver."""
        if not self.url:
            raise ValueError("DATABASE_URL is not configured")
        scheme, sep, rest = self.url.partition("://")
        if scheme in ("postgres", "postgresql"):
            scheme = "postgresql+asyncpg"
        elif scheme == "sqlite":
            scheme = "sqlite+aiosqlite"
        return f"{scheme}{sep}{rest}"


class RedisSettings(BaseSettings):
    """
    Usage store Redis.

    When REDIS_URL is unset, usage counters are kept in process memory,
    which is only correct for a single worker process.
    """

    url: Optional[str] = Field(default=None, alias="REDIS_URL")
    max_connections: int = Field(default=50, ge=1, le=200, alias="REDIS_MAX_CONNECTIONS")
    socket_timeout: int = Field(default=5, ge=1, le=30, alias="REDIS_SOCKET_TIMEOUT")
    socket_connect_timeout: int = Field(
        default=5, ge=1, le=30, alias="REDIS_SOCKET_CONNECT_TIMEOUT"
    )
    key_prefix: str = Field(default="usage", alias="REDIS_KEY_PREFIX")
    guest_session_ttl: int = Field(default=86400 * 7, ge=60, alias="REDIS_GUEST_SESSION_TTL")
    max_transaction_attempts: int = Field(
        default=10, ge=1, le=50, alias="REDIS_MAX_TRANSACTION_ATTEMPTS"
    )

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    @property
    def enabled(self) -> bool:
        return bool(self.url)


class LLMSettings(BaseSettings):
    """LLM provider credentials, per-tier model names and call limits."""

    openai_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_OPENAI_API_KEY")
    openai_org_id: Optional[str] = Field(default=None, alias="LLM_OPENAI_ORG_ID")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_ANTHROPIC_API_KEY")

    openai_paid_model: str = Field(default="gpt-4o", alias="LLM_OPENAI_PAID_MODEL")
    openai_free_model: str = Field(default="gpt-4o-mini", alias="LLM_OPENAI_FREE_MODEL")
    anthropic_paid_model: str = Field(
        default="claude-sonnet-4-20250514", alias="LLM_ANTHROPIC_PAID_MODEL"
    )
    anthropic_free_model: str = Field(
        default="claude-haiku-4-5-20251001", alias="LLM_ANTHROPIC_FREE_MODEL"
    )

    request_timeout: float = Field(default=45.0, gt=0, le=300, alias="LLM_REQUEST_TIMEOUT")
    max_output_tokens: int = Field(default=1024, ge=64, le=8192, alias="LLM_MAX_OUTPUT_TOKENS")
    variations_max_output_tokens: int = Field(
        default=768, ge=64, le=8192, alias="LLM_VARIATIONS_MAX_OUTPUT_TOKENS"
    )

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    def model_overrides(self) -> Dict[str, str]:
        """Model names keyed by '<provider>:<tier>' for the model router."""
        return {
            "openai:paid": self.openai_paid_model,
            "openai:free": self.openai_free_model,
            "openai:guest": self.openai_free_model,
            "anthropic:paid": self.anthropic_paid_model,
            "anthropic:free": self.anthropic_free_model,
            "anthropic:guest": self.anthropic_free_model,
        }


class MediaSettings(BaseSettings):
    """Image and video augmentation providers."""

    gemini_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_GEMINI_API_KEY")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="MEDIA_GEMINI_BASE_URL",
    )
    video_concept_model: str = Field(default="gemini-1.5-flash", alias="MEDIA_VIDEO_CONCEPT_MODEL")
    video_placeholder_url: str = Field(
        default="https://sample-videos.com/zip/10/mp4/SampleVideo_1280x720_1mb.mp4",
        alias="MEDIA_VIDEO_PLACEHOLDER_URL",
    )

    image_model: str = Field(default="dall-e-3", alias="MEDIA_IMAGE_MODEL")
    image_size: Literal["1024x1024", "1792x1024", "1024x1792"] = Field(
        default="1024x1024", alias="MEDIA_IMAGE_SIZE"
    )
    image_quality: Literal["standard", "hd"] = Field(default="standard", alias="MEDIA_IMAGE_QUALITY")

    timeout: float = Field(default=90.0, gt=0, le=600, alias="MEDIA_TIMEOUT")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")


class UsageSettings(BaseSettings):
    """Admission control limits."""

    guest_limit: int = Field(default=1, ge=0, alias="USAGE_GUEST_LIMIT")
    free_limit: int = Field(default=5, ge=0, alias="USAGE_FREE_LIMIT")
    reset_period_days: int = Field(default=30, ge=1, alias="USAGE_RESET_PERIOD_DAYS")
    charge_more_variations: bool = Field(default=False, alias="USAGE_CHARGE_MORE_VARIATIONS")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")


class MonitoringSettings(BaseSettings):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")

    enable_strict_csp: bool = Field(
        default=True,
        description="Enable strict Content-Security-Policy (disable in dev for easier debugging)",
    )
    csp_report_only: bool = Field(
        default=False,
        description="Use CSP in report-only mode (logs violations without blocking)",
    )

    model_config = SettingsConfigDict(
        env_prefix="MONITORING_", case_sensitive=False, extra="ignore"
    )


class Settings(BaseSettings):
    """
    Master configuration.

    Composes the component settings and validates cross-cutting security
    requirements.
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    debug: bool = Field(default=False, alias="DEBUG")

    app_name: str = Field(default="Social Content Generator")
    app_version: str = Field(default="1.0.0")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    media: MediaSettings = Field(default_factory=MediaSettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    secret_key: SecretStr = Field(..., alias="SECRET_KEY", description="Application secret key")
    allowed_hosts: list[str] = Field(default=["localhost", "127.0.0.1", "testserver"])
    cors_origins: list[str] = Field(default=["http://localhost:3000"])
    jwt_issuer: str = Field(default="social-content-generator")
    jwt_audience: str = Field(default="api")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("debug")
    @classmethod
    def validate_debug_mode(cls, v: bool, info) -> bool:
        """Ensure debug mode is disabled in production."""
        if info.data.get("environment") == "production" and v:
            raise ValueError("Debug mode must be disabled in production")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: SecretStr, info) -> SecretStr:
        """Require strong, non-default secret key in production."""
        env = info.data.get("environment")
        key = v.get_secret_value()

        weak_secrets = [
            "change-this-to-a-secure-random-string-in-production",
            "change_me_in_production",
            "secret",
            "password",
            "12345",
        ]

        if key.lower() in weak_secrets:
            raise ValueError(
                "SECRET_KEY cannot be a default/weak value. "
                "Generate a secure key: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )

        if env == "production" and len(key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters in production")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Singleton factory for global settings access.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


settings = get_settings()

__all__ = [
    "Settings",
    "DatabaseSettings",
    "RedisSettings",
    "LLMSettings",
    "MediaSettings",
    "UsageSettings",
    "MonitoringSettings",
    "get_settings",
    "settings",
]
