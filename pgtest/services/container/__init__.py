"""Container management services.

This package provides the ephemeral PostgreSQL container lifecycle split into:
- images.py: Image resolution (inspect, pull if absent)
- readiness.py: Health and reachability probes
- registry.py: Process-wide cleanup registry and signal hooks
- manager.py: Container lifecycle management
- utils.py: Shared utilities for container operations
"""

from .images import ImageResolver
from .manager import PostgresContainerManager
from .readiness import ReadinessProber
from .registry import CleanupRegistry, cleanup_registry
from .utils import run_in_executor

__all__ = [
    "ImageResolver",
    "PostgresContainerManager",
    "ReadinessProber",
    "CleanupRegistry",
    "cleanup_registry",
    "run_in_executor",
]
