"""Logging configuration."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class LoggingConfig(BaseSettings):
    """structlog rendering settings."""

    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")
    debug: bool = Field(default=False)

    class Config:
        env_prefix = ""
        extra = "ignore"
