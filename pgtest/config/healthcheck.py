"""Container health check and readiness configuration."""

import shlex
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

NANOSECONDS_PER_SECOND = 1_000_000_000


class HealthcheckConfig(BaseSettings):
    """Daemon-side health check and client-side polling settings."""

    healthcheck_interval_seconds: float = Field(default=1.0, gt=0)
    healthcheck_timeout_seconds: float = Field(default=1.0, gt=0)
    healthcheck_retries: int = Field(default=10, ge=1)
    poll_interval_seconds: float = Field(default=0.1, gt=0)
    readiness_timeout_seconds: Optional[float] = Field(default=60.0, gt=0)

    def to_docker_healthcheck(self, username: str, port: int = 5432) -> dict:
        """Build the healthcheck mapping accepted by ``create_container``.

        Docker expects interval and timeout in nanoseconds. The check goes
        over TCP: the image's init-time server listens on the unix socket
        only, so it is not reported healthy before the final restart.
        """
        command = f"pg_isready -h 127.0.0.1 -p {port} -U {shlex.quote(username)}"
        return {
            "test": ["CMD-SHELL", command],
            "interval": int(self.healthcheck_interval_seconds * NANOSECONDS_PER_SECOND),
            "timeout": int(self.healthcheck_timeout_seconds * NANOSECONDS_PER_SECOND),
            "retries": self.healthcheck_retries,
        }

    class Config:
        env_prefix = ""
        extra = "ignore"
