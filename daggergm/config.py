"""
Centralized configuration management for DaggerGM.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Groups related settings (storage, payments, LLM, limits, logging)
- Exposes properties to check whether optional integrations are enabled
- Supports .env file loading

Usage:
    from daggergm.config import get_settings

    settings = get_settings()
    if settings.is_stripe_configured:
        # Enable credit purchases
        ...
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# Database Settings (Supabase)
# =============================================================================


class DatabaseSettings(BaseSettings):
    """Configuration for the Supabase backing store."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage_backend: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Where balances, counters and adventures are kept",
    )
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL",
    )
    supabase_service_role_key: Optional[SecretStr] = Field(
        default=None,
        description="Supabase service role key (ledger RPCs need it)",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return bool(self.supabase_url and self.supabase_service_role_key)


# =============================================================================
# Payment Settings (Stripe)
# =============================================================================


class StripeSettings(BaseSettings):
    """Configuration for Stripe credit purchases."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    stripe_secret_key: Optional[SecretStr] = Field(
        default=None,
        description="Stripe secret API key",
    )
    stripe_webhook_secret: Optional[SecretStr] = Field(
        default=None,
        description="Stripe webhook signing secret",
    )
    site_url: str = Field(
        default="http://localhost:3000",
        description="Frontend base URL used for checkout redirects",
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self.stripe_webhook_secret)


# =============================================================================
# LLM Provider Settings
# =============================================================================


class LLMSettings(BaseSettings):
    """Configuration for the adventure generation model."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model used for scaffolds and expansions",
    )
    llm_api_timeout: int = Field(
        default=60,
        ge=1,
        le=600,
        description="Timeout in seconds for LLM API requests",
    )
    llm_temperature: float = Field(
        default=0.8,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for generation",
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.openai_api_key)


# =============================================================================
# Rate Limiting Settings
# =============================================================================


class RateLimitSettings(BaseSettings):
    """Configuration for per-operation request rate limiting."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rate_limit_enabled: bool = Field(
        default=True,
        description="Enforce per-operation rate limits",
    )
    rate_limit_max_tracked_keys: int = Field(
        default=10000,
        ge=1,
        description="Live identity/operation window count above which a warning is logged",
    )
    rate_limit_fallback_ip: str = Field(
        default="127.0.0.1",
        description="Identity used for guests when no client IP header is present",
    )


# =============================================================================
# Regeneration Settings
# =============================================================================


class RegenerationSettings(BaseSettings):
    """Configuration for free regeneration budgets."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    regeneration_paid_fallback: bool = Field(
        default=True,
        description="Charge a credit once the free regeneration budget is spent",
    )


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Configuration for deployment environment and CORS."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        """Get parsed list of allowed origins."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )
    request_logging_enabled: bool = Field(
        default=True,
        description="Enable request logging middleware",
    )


# =============================================================================
# Monitoring Settings (Sentry)
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry transaction sample rate (0.0 to 1.0)",
    )
    sentry_release: Optional[str] = Field(
        default="daggergm-api@1.0.0",
        description="Sentry release version",
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration groups.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    regeneration: RegenerationSettings = Field(default_factory=RegenerationSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def uses_supabase(self) -> bool:
        """Check if the Supabase store backend is selected."""
        return self.database.storage_backend == "supabase"

    @property
    def is_supabase_configured(self) -> bool:
        return self.database.is_configured

    @property
    def is_stripe_configured(self) -> bool:
        return self.stripe.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        return self.sentry.is_configured

    @property
    def is_production(self) -> bool:
        return self.security.is_production

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        Never includes secrets.
        """
        return {
            "environment": self.security.environment,
            "storage_backend": self.database.storage_backend,
            "supabase_configured": self.is_supabase_configured,
            "stripe_configured": self.is_stripe_configured,
            "stripe_webhooks_enabled": self.stripe.has_webhook_secret,
            "llm_configured": self.llm.is_configured,
            "llm_model": self.llm.openai_model,
            "sentry_configured": self.is_sentry_configured,
            "rate_limiting_enabled": self.rate_limit.rate_limit_enabled,
            "paid_regeneration_fallback": self.regeneration.regeneration_paid_fallback,
            "allowed_origins": self.security.origins_list,
            "log_level": self.logging.log_level,
        }


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure settings are only loaded once.
    Call reload_settings() after changing the environment.
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the cached settings and load them again from the environment."""
    get_settings.cache_clear()
    return get_settings()
