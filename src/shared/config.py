"""
Shared Configuration - Application Settings and Environment Management
Centralized configuration management for the Agent Callback Relay.

This module provides:
- Environment-based configuration
- Type-safe settings with validation
- Database connection settings
- Webhook delivery and verification policy
- External service configuration (agent API, inbound email)

Settings are built once at process start and passed to the components
that need them; nothing reads the environment lazily on first use.
"""
from enum import Enum
from functools import lru_cache
from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseSettings(BaseSettings):
    """Database configuration settings for the job registry."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Primary database URL (takes precedence if set)
    database_url: Optional[str] = Field(None, description="Full SQLAlchemy async URL")

    # Individual database components (used if DATABASE_URL not set)
    db_host: str = Field("localhost")
    db_port: int = Field(5432)
    db_name: str = Field("relay")
    db_user: str = Field("relay")
    db_password: str = Field("relay_dev_password")

    # Connection pool settings
    db_pool_size: int = Field(10)
    db_max_overflow: int = Field(20)
    db_echo: bool = Field(False)

    @field_validator("db_port")
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("db_pool_size")
    @classmethod
    def validate_pool_size(cls, v):
        if v < 1:
            raise ValueError("Pool size must be at least 1")
        return v

    def get_database_url(self) -> str:
        """Get the complete database URL."""
        if self.database_url:
            return self.database_url

        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"


class DeliverySettings(BaseSettings):
    """Outbound webhook delivery policy."""

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    timeout_seconds: float = Field(15.0, description="Per-attempt timeout")
    max_attempts: int = Field(3, description="Attempts per notification, including the first")
    backoff_base_seconds: float = Field(1.0, description="Delay before the second attempt")
    backoff_cap_seconds: float = Field(10.0, description="Upper bound for any single delay")
    user_agent: str = Field("Agent-Callback-Relay/1.0", description="User-Agent sent with deliveries")

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0 or v > 300:
            raise ValueError("Timeout must be between 0 and 300 seconds")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v):
        if not 1 <= v <= 10:
            raise ValueError("Max attempts must be between 1 and 10")
        return v

    @field_validator("backoff_base_seconds", "backoff_cap_seconds")
    @classmethod
    def validate_backoff(cls, v):
        if v < 0:
            raise ValueError("Backoff delays cannot be negative")
        return v


class SecuritySettings(BaseSettings):
    """Inbound webhook verification policy."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Jobs registered before secrets existed have no secret on record.
    # False keeps accepting their callbacks (flagged as unauthenticated).
    reject_unsigned_webhooks: bool = Field(False)

    # When set, inbound callbacks must carry exactly this User-Agent.
    expected_user_agent: Optional[str] = Field(None)


class InboundEmailSettings(BaseSettings):
    """Inbound email (reply API) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="INBOUND_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    api_key: Optional[str] = Field(None)
    api_base_url: str = Field("https://inbound.new/api/v2")
    from_address: str = Field("Agent <agent@bg.inbound.new>")
    timeout_seconds: float = Field(15.0)


class AgentApiSettings(BaseSettings):
    """Coding-agent API configuration used by the status poller."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_API_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    api_key: Optional[str] = Field(None)
    base_url: str = Field("https://api.cursor.com")
    poll_interval_seconds: float = Field(30.0, description="0 disables background polling")
    track_lookback_hours: float = Field(72.0, description="Jobs registered this recently are re-tracked at startup")
    timeout_seconds: float = Field(15.0)


class MonitoringSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    log_level: LogLevel = Field(LogLevel.INFO)
    log_format: str = Field("colored", description="json, colored or standard")
    log_file: Optional[str] = Field(None)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "colored", "standard"):
            raise ValueError("Log format must be one of: json, colored, standard")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application settings
    environment: Environment = Field(Environment.DEVELOPMENT)
    debug: bool = Field(False)
    app_name: str = Field("Agent Callback Relay")
    app_version: str = Field("1.0.0")

    # Base URL the agent API uses to reach /api/agent-webhooks/{job_id}
    public_base_url: str = Field("http://localhost:8000")

    # Component settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    inbound_email: InboundEmailSettings = Field(default_factory=InboundEmailSettings)
    agent_api: AgentApiSettings = Field(default_factory=AgentApiSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("debug")
    @classmethod
    def validate_debug_in_production(cls, v, info):
        if info.data.get("environment") == Environment.PRODUCTION and v:
            raise ValueError("Debug mode should not be enabled in production")
        return v

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == Environment.TESTING

    def callback_url_for(self, job_id: str) -> str:
        """URL the external agent should POST its status change to."""
        return f"{self.public_base_url.rstrip('/')}/api/agent-webhooks/{job_id}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.
    This function can be used as a FastAPI dependency.
    """
    return Settings()


def validate_configuration(settings: Settings) -> List[str]:
    """
    Validate the configuration and return any warnings or errors.

    Args:
        settings: Settings instance to check

    Returns:
        List of validation messages
    """
    errors = []

    if not settings.database.get_database_url():
        errors.append("Database URL is not configured")

    if settings.is_production():
        if settings.debug:
            errors.append("Debug mode should be disabled in production")

        if not settings.security.reject_unsigned_webhooks:
            errors.append(
                "REJECT_UNSIGNED_WEBHOOKS is disabled: callbacks for jobs without a "
                "signing secret are accepted unauthenticated"
            )

    if not settings.inbound_email.api_key:
        errors.append("INBOUND_API_KEY is not set; email replies cannot be sent")

    return errors


def get_config_summary(settings: Settings) -> dict:
    """
    Get a summary of the configuration (without sensitive data).

    Returns:
        Dictionary with configuration summary
    """
    return {
        "environment": settings.environment,
        "debug": settings.debug,
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "delivery": {
            "timeout_seconds": settings.delivery.timeout_seconds,
            "max_attempts": settings.delivery.max_attempts,
            "backoff_base_seconds": settings.delivery.backoff_base_seconds,
            "backoff_cap_seconds": settings.delivery.backoff_cap_seconds,
        },
        "security": {
            "reject_unsigned_webhooks": settings.security.reject_unsigned_webhooks,
            "user_agent_pinned": bool(settings.security.expected_user_agent),
        },
        "external_services": {
            "inbound_email_configured": bool(settings.inbound_email.api_key),
            "agent_api_configured": bool(settings.agent_api.api_key),
        },
    }
