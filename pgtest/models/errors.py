"""Error types and exception classes for pgtest."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error type enumeration."""

    CONFIGURATION = "configuration"
    IMAGE_RESOLUTION = "image_resolution"
    ALLOCATION = "allocation"
    DAEMON = "daemon"
    UNHEALTHY = "unhealthy"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class PgTestException(Exception):
    """Base exception for pgtest."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to a structured log payload."""
        payload: Dict[str, Any] = {
            "error": self.message,
            "error_type": self.error_type.value,
        }
        if self.details:
            payload["details"] = self.details
        if self.__cause__ is not None:
            payload["cause"] = repr(self.__cause__)
        return payload


class ConfigurationError(PgTestException):
    """Invalid container configuration."""

    def __init__(self, message: str = "Invalid configuration", **kwargs):
        super().__init__(message=message, error_type=ErrorType.CONFIGURATION, **kwargs)


class ImageResolutionError(PgTestException):
    """Image inspection failed for a reason other than not-found, or the pull failed."""

    def __init__(self, image: str, message: Optional[str] = None, **kwargs):
        self.image = image
        super().__init__(
            message=message or f"Failed to resolve image {image}",
            error_type=ErrorType.IMAGE_RESOLUTION,
            **kwargs,
        )


class AllocationError(PgTestException):
    """The OS could not supply a free port."""

    def __init__(self, message: str = "Failed to allocate a free port", **kwargs):
        super().__init__(message=message, error_type=ErrorType.ALLOCATION, **kwargs)


class DaemonOperationError(PgTestException):
    """A create/start/stop/remove call was rejected by the docker daemon."""

    def __init__(
        self,
        operation: str,
        container_id: Optional[str] = None,
        message: Optional[str] = None,
        **kwargs,
    ):
        self.operation = operation
        self.container_id = container_id
        if message is None:
            target = f" container {container_id[:12]}" if container_id else ""
            message = f"Docker daemon rejected {operation}{target}"
        super().__init__(message=message, error_type=ErrorType.DAEMON, **kwargs)


class UnhealthyContainerError(PgTestException):
    """The daemon reported the container as unhealthy."""

    def __init__(self, container_id: str, message: Optional[str] = None, **kwargs):
        self.container_id = container_id
        super().__init__(
            message=message or f"Container {container_id[:12]} is unhealthy",
            error_type=ErrorType.UNHEALTHY,
            **kwargs,
        )


class ReadinessTimeoutError(PgTestException, TimeoutError):
    """A readiness probe did not succeed before its deadline."""

    def __init__(self, probe: str, timeout: float, message: Optional[str] = None, **kwargs):
        self.probe = probe
        self.timeout = timeout
        super().__init__(
            message=message or f"{probe} did not succeed within {timeout:.1f}s",
            error_type=ErrorType.TIMEOUT,
            **kwargs,
        )
