"""
Configuration management for the BI Portal access engine.

Provides centralized configuration loading and validation using Pydantic models.
Settings come from environment variables or a `.env` file and are grouped into
typed sub-configurations for the database, cache, authentication, access rules
and application runtime.
"""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bi_portal.utils.exceptions import ConfigurationError
from bi_portal.utils.logger import get_logger


logger = get_logger(__name__)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(..., description="SQLAlchemy database URL")
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=20, description="Pool overflow connections")
    echo: bool = Field(default=False, description="Log SQL statements")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError("Database URL is required")
        return v.strip()


class AuthConfig(BaseModel):
    """Bearer token configuration."""

    secret_key: str = Field(..., description="JWT signing secret")
    algorithm: str = Field(default="HS256", description="JWT algorithm")
    access_token_expire_minutes: int = Field(default=60 * 24, description="Token lifetime")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v):
        if not v or len(v.strip()) < 16:
            raise ValueError("SECRET_KEY must be at least 16 characters")
        return v


class AccessConfig(BaseModel):
    """Subscription and access rule configuration."""

    grace_period_days: int = Field(default=30, description="Days a canceled plan stays usable")
    default_trial_days: int = Field(default=7, description="Trial length when no end date is stored")
    status_timeout_seconds: float = Field(default=10.0, description="Budget for resolving role and status")
    retry_count: int = Field(default=3, description="Retries for transient fetch failures")
    retry_base_delay: float = Field(default=0.5, description="Base backoff delay in seconds")
    role_cache_ttl_seconds: int = Field(default=300, description="Role cache TTL")
    auth_route: str = Field(default="/auth", description="Authentication entry point")
    landing_route: str = Field(default="/home", description="Default landing route")
    plans_route: str = Field(default="/subscription", description="Plans and subscription route")

    @field_validator('grace_period_days', 'default_trial_days')
    @classmethod
    def validate_days(cls, v):
        if v < 0:
            raise ValueError("Day counts must not be negative")
        return v

    @field_validator('status_timeout_seconds')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class ApplicationConfig(BaseModel):
    """General application configuration."""

    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="./logs", description="Log directory")
    debug_mode: bool = Field(default=False, description="Enable debug mode")
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN")
    environment: str = Field(default="development", description="Deployment environment")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class PortalConfig(BaseSettings):
    """Main application configuration combining all sub-configurations."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(default="sqlite:///./bi_portal.db")
    database_pool_size: int = Field(default=10)
    database_max_overflow: int = Field(default=20)
    database_echo: bool = Field(default=False)

    redis_url: Optional[str] = Field(default=None)

    secret_key: str = Field(...)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24)

    grace_period_days: int = Field(default=30)
    default_trial_days: int = Field(default=7)
    access_status_timeout_seconds: float = Field(default=10.0)
    access_retry_count: int = Field(default=3)
    access_retry_base_delay: float = Field(default=0.5)
    role_cache_ttl_seconds: int = Field(default=300)
    auth_route: str = Field(default="/auth")
    landing_route: str = Field(default="/home")
    plans_route: str = Field(default="/subscription")

    log_level: str = Field(default="INFO")
    log_dir: str = Field(default="./logs")
    debug_mode: bool = Field(default=False)
    sentry_dsn: Optional[str] = Field(default=None)
    environment: str = Field(default="development")

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration."""
        return DatabaseConfig(
            url=self.database_url,
            pool_size=self.database_pool_size,
            max_overflow=self.database_max_overflow,
            echo=self.database_echo
        )

    @property
    def auth(self) -> AuthConfig:
        """Get bearer token configuration."""
        return AuthConfig(
            secret_key=self.secret_key,
            algorithm=self.jwt_algorithm,
            access_token_expire_minutes=self.access_token_expire_minutes
        )

    @property
    def access(self) -> AccessConfig:
        """Get access rule configuration."""
        return AccessConfig(
            grace_period_days=self.grace_period_days,
            default_trial_days=self.default_trial_days,
            status_timeout_seconds=self.access_status_timeout_seconds,
            retry_count=self.access_retry_count,
            retry_base_delay=self.access_retry_base_delay,
            role_cache_ttl_seconds=self.role_cache_ttl_seconds,
            auth_route=self.auth_route,
            landing_route=self.landing_route,
            plans_route=self.plans_route
        )

    @property
    def app(self) -> ApplicationConfig:
        """Get application configuration."""
        return ApplicationConfig(
            log_level=self.log_level,
            log_dir=self.log_dir,
            debug_mode=self.debug_mode,
            sentry_dsn=self.sentry_dsn,
            environment=self.environment
        )


# Global configuration instance
_config: Optional[PortalConfig] = None


def get_config() -> PortalConfig:
    """
    Get the global configuration instance.

    Returns:
        PortalConfig: Validated configuration instance.

    Raises:
        ConfigurationError: If configuration validation fails.
    """
    global _config

    if _config is None:
        try:
            _config = PortalConfig()
        except Exception as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    return _config


def reload_config() -> PortalConfig:
    """
    Reload configuration from environment variables.

    Returns:
        PortalConfig: New validated configuration instance.
    """
    global _config
    _config = None
    return get_config()


def validate_configuration() -> Dict[str, Any]:
    """
    Validate current configuration and return status information.

    Returns:
        Dict containing validation results and configuration summary.
    """
    try:
        config = get_config()

        return {
            "valid": True,
            "timestamp": datetime.now().isoformat(),
            "summary": {
                "database": {
                    "url_scheme": config.database.url.split(":", 1)[0],
                    "pool_size": config.database.pool_size,
                },
                "cache": {
                    "redis_enabled": bool(config.redis_url),
                    "role_cache_ttl_seconds": config.access.role_cache_ttl_seconds,
                },
                "auth": {
                    "algorithm": config.auth.algorithm,
                    "has_secret_key": bool(config.auth.secret_key),
                },
                "access": {
                    "grace_period_days": config.access.grace_period_days,
                    "default_trial_days": config.access.default_trial_days,
                    "status_timeout_seconds": config.access.status_timeout_seconds,
                    "retry_count": config.access.retry_count,
                },
                "application": {
                    "log_level": config.app.log_level,
                    "debug_mode": config.app.debug_mode,
                    "environment": config.app.environment,
                    "sentry_enabled": bool(config.app.sentry_dsn),
                }
            }
        }

    except Exception as e:
        logger.warning(f"Configuration validation failed: {e}")
        return {
            "valid": False,
            "error": str(e),
            "timestamp": datetime.now().isoformat()
        }
