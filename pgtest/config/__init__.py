"""Configuration management for pgtest.

Settings are read once from the process environment (and an optional
``.env`` file) when the module is imported.

Usage:
    from pgtest.config import settings

    # Grouped access
    settings.healthcheck.poll_interval_seconds
    settings.logging.log_format

    # Flat access
    settings.image_name
    settings.debug
"""

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .healthcheck import HealthcheckConfig, NANOSECONDS_PER_SECOND
from .logging import LoggingConfig

SSL_MODES = ("disable", "allow", "prefer", "require", "verify-ca", "verify-full")

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseSettings):
    """Process-wide settings with environment variable support.

    Every field maps to ``PGTEST_<FIELD>`` except ``debug``, which also
    honours the plain ``DEBUG`` variable.
    """

    model_config = SettingsConfigDict(
        env_prefix="PGTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Image and database defaults
    image_name: str = Field(default="postgres", min_length=1)
    container_port: int = Field(default=5432, ge=1, le=65535)
    default_database: str = Field(default="pgtest", min_length=1)
    default_username: str = Field(default="pgtest", min_length=1)
    default_sslmode: str = Field(default="disable")
    timezone: str = Field(default="UTC")
    host: str = Field(default="127.0.0.1")

    # Health check (daemon side) and polling (client side)
    healthcheck_interval_seconds: float = Field(default=1.0, gt=0)
    healthcheck_timeout_seconds: float = Field(default=1.0, gt=0)
    healthcheck_retries: int = Field(default=10, ge=1)
    poll_interval_seconds: float = Field(default=0.1, gt=0)
    readiness_timeout_seconds: Optional[float] = Field(
        default=60.0,
        gt=0,
        description="Overall deadline for readiness probes; None waits forever",
    )
    stop_timeout_seconds: int = Field(default=10, ge=0)

    # Teardown
    install_signal_handlers: bool = Field(default=True)
    cleanup_on_exit: bool = Field(default=True)

    # Docker daemon
    docker_host: Optional[str] = Field(
        default=None,
        description="Daemon base URL; the docker environment is used when unset",
    )

    # Logging
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("DEBUG", "PGTEST_DEBUG", "debug"),
    )
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug_flag(cls, v):
        """Accept any DEBUG value; only the usual truthy spellings enable it."""
        if isinstance(v, str):
            return v.strip().lower() in _TRUTHY
        return v

    @field_validator("readiness_timeout_seconds", "docker_host", mode="before")
    @classmethod
    def empty_as_none(cls, v):
        if isinstance(v, str) and v.strip().lower() in ("", "none"):
            return None
        return v

    @field_validator("default_sslmode")
    @classmethod
    def validate_sslmode(cls, v):
        if v not in SSL_MODES:
            raise ValueError(f"sslmode must be one of: {', '.join(SSL_MODES)}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v

    @property
    def healthcheck(self) -> HealthcheckConfig:
        """Access health check configuration group."""
        return HealthcheckConfig(
            healthcheck_interval_seconds=self.healthcheck_interval_seconds,
            healthcheck_timeout_seconds=self.healthcheck_timeout_seconds,
            healthcheck_retries=self.healthcheck_retries,
            poll_interval_seconds=self.poll_interval_seconds,
            readiness_timeout_seconds=self.readiness_timeout_seconds,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
            debug=self.debug,
        )

    def image_reference(self, version: str) -> str:
        """Get the ``<name>:<version>`` reference for a PostgreSQL version."""
        return f"{self.image_name}:{version}"


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "HealthcheckConfig",
    "LoggingConfig",
    "NANOSECONDS_PER_SECOND",
    "SSL_MODES",
]
