"""Services for pgtest."""

from .container import (
    CleanupRegistry,
    ImageResolver,
    PostgresContainerManager,
    ReadinessProber,
    cleanup_registry,
)

__all__ = [
    "CleanupRegistry",
    "ImageResolver",
    "PostgresContainerManager",
    "ReadinessProber",
    "cleanup_registry",
]
