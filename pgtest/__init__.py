"""
pgtest - disposable PostgreSQL containers for test suites.

Usage:
    import pgtest

    container = await pgtest.start("15", sslmode="disable")
    ...  # connect to container.connection_uri
    await container.shutdown()
"""

__version__ = "0.1.0"

from typing import Any, List, Optional

from .config import Settings, settings
from .models import (
    AllocationError,
    ConfigurationError,
    ContainerConfig,
    DaemonOperationError,
    ErrorType,
    ImageResolutionError,
    PgTestException,
    ProvisionedContainer,
    ReadinessTimeoutError,
    UnhealthyContainerError,
)
from .services.container import CleanupRegistry, PostgresContainerManager, cleanup_registry

_default_manager: Optional[PostgresContainerManager] = None


def get_manager() -> PostgresContainerManager:
    """Get the process-wide manager bound to the global cleanup registry."""
    global _default_manager
    if _default_manager is None:
        _default_manager = PostgresContainerManager()
    return _default_manager


async def start(
    version: str, config: Optional[ContainerConfig] = None, **options: Any
) -> ProvisionedContainer:
    """Start a PostgreSQL ``version`` container with the default manager."""
    return await get_manager().start(version, config, **options)


async def cleanup(signum: Optional[int] = None) -> List[str]:
    """Stop and remove every container this process created and still tracks."""
    return await cleanup_registry.drain_and_cleanup(signum)


__all__ = [
    "start",
    "cleanup",
    "get_manager",
    "Settings",
    "settings",
    "ContainerConfig",
    "ProvisionedContainer",
    "PostgresContainerManager",
    "CleanupRegistry",
    "cleanup_registry",
    "ErrorType",
    "PgTestException",
    "ConfigurationError",
    "ImageResolutionError",
    "AllocationError",
    "DaemonOperationError",
    "UnhealthyContainerError",
    "ReadinessTimeoutError",
]
