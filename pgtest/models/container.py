"""Container configuration and handle models."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import SSL_MODES
from .errors import ConfigurationError

if TYPE_CHECKING:
    from ..services.container.manager import PostgresContainerManager


class ContainerConfig(BaseModel):
    """Per-call options for starting a PostgreSQL container.

    Every field is optional; unset values fall back to the process
    settings (database, username, sslmode) or a generated password.
    Empty strings count as unset.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    database: Optional[str] = Field(default=None, description="Database name")
    username: Optional[str] = Field(default=None, description="Superuser name")
    password: Optional[str] = Field(default=None, description="Superuser password")
    sslmode: Optional[str] = Field(default=None, description="libpq sslmode")
    debug: bool = Field(default=False, description="Verbose readiness logging")
    startup_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Readiness deadline in seconds, overrides the process setting",
    )

    @field_validator("database", "username", "password", "sslmode", mode="before")
    @classmethod
    def empty_as_unset(cls, v):
        if isinstance(v, str) and not v:
            return None
        return v

    @field_validator("sslmode")
    @classmethod
    def validate_sslmode(cls, v):
        if v is not None and v not in SSL_MODES:
            raise ValueError(f"sslmode must be one of: {', '.join(SSL_MODES)}")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        if v is not None and any(ch.isspace() for ch in v):
            raise ValueError("username must not contain whitespace")
        return v

    @classmethod
    def build(cls, **options: Any) -> "ContainerConfig":
        """Validate options, raising ConfigurationError instead of pydantic's error."""
        try:
            return cls(**options)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid container configuration: {e.error_count()} error(s)",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e


def build_connection_uri(
    username: str,
    password: str,
    host: str,
    port: int,
    database: str,
    sslmode: str,
) -> str:
    """Compose a libpq connection URI."""
    return (
        f"postgresql://{quote(username, safe='')}:{quote(password, safe='')}"
        f"@{host}:{port}/{quote(database, safe='')}?sslmode={sslmode}"
    )


@dataclass(frozen=True)
class ProvisionedContainer:
    """A running, ready PostgreSQL container.

    Returned by ``PostgresContainerManager.start``. The only mutating
    operation is ``shutdown``; the handle can also be used as an async
    context manager.
    """

    container_id: str
    password: str = field(repr=False)
    port: int
    connection_uri: str = field(repr=False)
    database: str
    username: str
    host: str = "127.0.0.1"
    sslmode: str = "disable"
    _manager: Optional["PostgresContainerManager"] = field(
        default=None, repr=False, compare=False
    )

    @property
    def short_id(self) -> str:
        return self.container_id[:12]

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments accepted by ``asyncpg.connect``."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "password": self.password,
            "database": self.database,
        }

    async def shutdown(self) -> None:
        """Stop and remove the container."""
        if self._manager is None:
            raise RuntimeError("Container handle is not bound to a manager")
        await self._manager.shutdown(self)

    async def __aenter__(self) -> "ProvisionedContainer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
