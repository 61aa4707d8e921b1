"""Docker client management.

This module provides a shared, lazily created Docker client so the
lifecycle manager and the cleanup registry talk to the same daemon.
"""

import threading
from typing import Optional

import docker
import structlog
from docker.errors import DockerException

from ..config import settings
from ..models.errors import DaemonOperationError

logger = structlog.get_logger(__name__)


class DockerClientFactory:
    """Centralized Docker client holder.

    Usage:
        client = docker_client_factory.get_client()
        client.api.inspect_container(container_id)
    """

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        base_url: Optional[str] = None,
    ):
        self._client = client
        self._base_url = base_url
        # Re-entrant: the registry's signal handler calls get_client() on the main thread
        self._lock = threading.RLock()

    def _create_client(self) -> docker.DockerClient:
        """Connect to the daemon from the configured URL or the environment."""
        base_url = self._base_url or settings.docker_host
        try:
            if base_url:
                client = docker.DockerClient(base_url=base_url)
            else:
                client = docker.from_env()
        except DockerException as e:
            logger.error("Failed to connect to Docker daemon", error=str(e))
            raise DaemonOperationError(
                "connect",
                message=f"Docker daemon is not reachable: {e}",
            ) from e
        logger.debug("Docker client initialized", base_url=base_url or "environment")
        return client

    def get_client(self) -> docker.DockerClient:
        """Get the shared Docker client, connecting on first use."""
        with self._lock:
            if self._client is None:
                self._client = self._create_client()
            return self._client

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def close(self) -> None:
        """Close the client and release its HTTP connections."""
        with self._lock:
            if self._client is not None:
                try:
                    self._client.close()
                except Exception as e:
                    logger.warning("Failed to close Docker client", error=str(e))
                self._client = None


# Global Docker client factory
docker_client_factory = DockerClientFactory()
