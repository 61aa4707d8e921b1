"""Readiness probes for freshly started containers.

A container is usable only after both probes succeed, in order:

1. the daemon reports its health check as ``healthy``;
2. a raw TCP connection to the published host port succeeds.

Both loops poll at a fixed interval. Without a timeout they wait forever,
as the daemon offers no other "ready" signal; with one they raise
``ReadinessTimeoutError``. Both are plain coroutines and can be cancelled.
"""

import asyncio
from typing import Optional

import structlog
from docker.errors import DockerException

from ...core.docker import DockerClientFactory
from ...models.errors import (
    DaemonOperationError,
    ReadinessTimeoutError,
    UnhealthyContainerError,
)
from .utils import run_in_executor, short_id

logger = structlog.get_logger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"
TERMINAL_STATUSES = ("exited", "dead")


class ReadinessProber:
    """Polls container health and port reachability."""

    def __init__(
        self,
        client_factory: DockerClientFactory,
        poll_interval: float = 0.1,
        debug: bool = False,
    ):
        self._client_factory = client_factory
        self.poll_interval = poll_interval
        self.debug = debug

    async def wait_until_healthy(
        self, container_id: str, timeout: Optional[float] = None
    ) -> None:
        """Wait for the daemon to report the container healthy.

        Raises:
            UnhealthyContainerError: Health status is ``unhealthy`` or the
                container stopped running
            ReadinessTimeoutError: ``timeout`` elapsed first
        """
        await self._with_timeout(
            self._poll_health(container_id),
            timeout,
            probe=f"health check of container {short_id(container_id)}",
        )

    async def wait_until_connectable(
        self, host: str, port: int, timeout: Optional[float] = None
    ) -> None:
        """Wait until a TCP connection to ``host:port`` succeeds.

        Raises:
            ReadinessTimeoutError: ``timeout`` elapsed first
        """
        await self._with_timeout(
            self._poll_connect(host, port),
            timeout,
            probe=f"connection to {host}:{port}",
        )

    async def _with_timeout(self, coro, timeout: Optional[float], probe: str) -> None:
        if timeout is None:
            await coro
            return
        try:
            await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Readiness probe timed out", probe=probe, timeout=timeout)
            raise ReadinessTimeoutError(probe, timeout) from e

    async def _poll_health(self, container_id: str) -> None:
        client = self._client_factory.get_client()
        while True:
            try:
                info = await run_in_executor(client.api.inspect_container, container_id)
            except DockerException as e:
                raise DaemonOperationError("inspect", container_id) from e
            state = info.get("State") or {}
            health = (state.get("Health") or {}).get("Status")

            if self.debug:
                logger.info(
                    "Health state",
                    container_id=short_id(container_id),
                    health=health,
                    status=state.get("Status"),
                )

            if health == HEALTHY:
                return
            if health == UNHEALTHY:
                raise UnhealthyContainerError(container_id)
            if state.get("Status") in TERMINAL_STATUSES:
                raise UnhealthyContainerError(
                    container_id,
                    f"Container {short_id(container_id)} stopped before becoming "
                    f"healthy (status={state.get('Status')}, exit_code={state.get('ExitCode')})",
                )

            await asyncio.sleep(self.poll_interval)

    async def _poll_connect(self, host: str, port: int) -> None:
        while True:
            if self.debug:
                logger.info("Waiting for port", host=host, port=port)
            try:
                _, writer = await asyncio.open_connection(host, port)
            except OSError:
                await asyncio.sleep(self.poll_interval)
                continue

            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return
