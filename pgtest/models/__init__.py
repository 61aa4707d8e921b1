"""Data models for pgtest."""

from .container import ContainerConfig, ProvisionedContainer, build_connection_uri
from .errors import (
    ErrorType,
    PgTestException,
    ConfigurationError,
    ImageResolutionError,
    AllocationError,
    DaemonOperationError,
    UnhealthyContainerError,
    ReadinessTimeoutError,
)

__all__ = [
    # Container models
    "ContainerConfig",
    "ProvisionedContainer",
    "build_connection_uri",
    # Error models
    "ErrorType",
    "PgTestException",
    "ConfigurationError",
    "ImageResolutionError",
    "AllocationError",
    "DaemonOperationError",
    "UnhealthyContainerError",
    "ReadinessTimeoutError",
]
