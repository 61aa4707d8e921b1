"""PostgreSQL container lifecycle management."""

import asyncio
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from docker.errors import DockerException, NotFound

from ...config import Settings, settings as default_settings
from ...core.docker import DockerClientFactory, docker_client_factory
from ...models.container import ContainerConfig, ProvisionedContainer, build_connection_uri
from ...models.errors import DaemonOperationError, PgTestException
from ...utils.credentials import generate_password
from ...utils.ports import allocate_port
from .images import ImageResolver
from .readiness import ReadinessProber
from .registry import CleanupRegistry, cleanup_registry
from .utils import deadline_after, remaining_time, run_in_executor, short_id

logger = structlog.get_logger(__name__)

LABEL_PREFIX = "io.pgtest"


class PostgresContainerManager:
    """Starts, shuts down and cleans up ephemeral PostgreSQL containers.

    Lifecycle of one container::

        Unconfigured -> ImagePulling (if absent) -> Created -> Starting
        -> HealthPolling -> ReachabilityPolling -> Ready -> Stopped/Removed

    Only ``Ready`` containers are returned to the caller. Containers are
    registered with the cleanup registry right after creation so an
    interrupted process still tears them down.
    """

    def __init__(
        self,
        client_factory: Optional[DockerClientFactory] = None,
        registry: Optional[CleanupRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or default_settings
        self._client_factory = client_factory or docker_client_factory
        if registry is None:
            # A private daemon gets a private registry so cleanup targets the same daemon
            registry = cleanup_registry if client_factory is None else CleanupRegistry(client_factory)
        self._registry = registry
        self._image_resolver = ImageResolver(self._client_factory)

    @property
    def registry(self) -> CleanupRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(
        self,
        version: str,
        config: Optional[ContainerConfig] = None,
        **options: Any,
    ) -> ProvisionedContainer:
        """Start a PostgreSQL container and wait until it accepts connections.

        Args:
            version: Image tag, e.g. ``"15"``
            config: Container options; keyword ``options`` build one when omitted

        Returns:
            Handle for the ready container

        Raises:
            ConfigurationError: Invalid options
            ImageResolutionError: Image could not be inspected or pulled
            AllocationError: No free host port
            DaemonOperationError: Container create/start/inspect rejected
            UnhealthyContainerError: Health check reported unhealthy
            ReadinessTimeoutError: Readiness probes exceeded the startup timeout
        """
        if config is None:
            config = ContainerConfig.build(**options)
        elif options:
            config = ContainerConfig.build(**{**config.model_dump(), **options})

        self._install_process_hooks()

        debug = self._settings.debug or config.debug
        image = self._settings.image_reference(version)

        await run_in_executor(self._client_factory.get_client)
        await self._image_resolver.ensure_available(image, debug=debug)

        database = config.database or self._settings.default_database
        username = config.username or self._settings.default_username
        password = config.password or generate_password()
        sslmode = config.sslmode or self._settings.default_sslmode
        host = self._settings.host

        port = allocate_port()

        container_id = await self._create_container(
            image, database, username, password, port, version
        )
        self._registry.register(container_id)

        timeout = (
            config.startup_timeout
            if config.startup_timeout is not None
            else self._settings.readiness_timeout_seconds
        )

        try:
            await self._start_container(container_id)

            prober = ReadinessProber(
                self._client_factory,
                poll_interval=self._settings.poll_interval_seconds,
                debug=debug,
            )
            deadline = deadline_after(timeout)
            await prober.wait_until_healthy(container_id, timeout=remaining_time(deadline))
            await prober.wait_until_connectable(host, port, timeout=remaining_time(deadline))
        except (Exception, asyncio.CancelledError) as e:
            if isinstance(e, PgTestException):
                failure = e.to_dict()
            else:
                failure = {"error": str(e) or type(e).__name__}
            logger.error(
                "Error starting container", container_id=short_id(container_id), **failure
            )
            await self._rollback(container_id)
            raise

        connection_uri = build_connection_uri(
            username=username,
            password=password,
            host=host,
            port=port,
            database=database,
            sslmode=sslmode,
        )

        logger.info(
            "PostgreSQL container ready",
            container_id=short_id(container_id),
            image=image,
            port=port,
            database=database,
        )

        return ProvisionedContainer(
            container_id=container_id,
            password=password,
            port=port,
            connection_uri=connection_uri,
            database=database,
            username=username,
            host=host,
            sslmode=sslmode,
            _manager=self,
        )

    def _install_process_hooks(self) -> None:
        if not self._settings.install_signal_handlers:
            return
        self._registry.install_signal_handlers()
        self._registry.install_loop_exception_handler(asyncio.get_running_loop())
        if self._settings.cleanup_on_exit:
            self._registry.install_exit_hook()

    def _build_labels(self, version: str, database: str) -> Dict[str, str]:
        return {
            f"{LABEL_PREFIX}.managed": "true",
            f"{LABEL_PREFIX}.version": version,
            f"{LABEL_PREFIX}.database": database,
            f"{LABEL_PREFIX}.pid": str(os.getpid()),
            f"{LABEL_PREFIX}.created-at": datetime.now(timezone.utc).isoformat(),
        }

    async def _create_container(
        self,
        image: str,
        database: str,
        username: str,
        password: str,
        port: int,
        version: str,
    ) -> str:
        """Create the container and return its id."""
        client = self._client_factory.get_client()
        container_port = self._settings.container_port
        environment = [
            f"POSTGRES_DB={database}",
            f"POSTGRES_USER={username}",
            f"POSTGRES_PASSWORD={password}",
            f"TZ={self._settings.timezone}",
        ]

        try:
            host_config = client.api.create_host_config(
                port_bindings={f"{container_port}/tcp": port}
            )
            response = await run_in_executor(
                client.api.create_container,
                image,
                environment=environment,
                healthcheck=self._settings.healthcheck.to_docker_healthcheck(username, container_port),
                ports=[container_port],
                host_config=host_config,
                labels=self._build_labels(version, database),
            )
        except DockerException as e:
            raise DaemonOperationError(
                "create", message=f"Failed to create container from {image}: {e}"
            ) from e

        container_id = response["Id"]
        logger.info(
            "Created container",
            container_id=short_id(container_id),
            image=image,
            port=port,
        )
        return container_id

    async def _start_container(self, container_id: str) -> None:
        client = self._client_factory.get_client()
        try:
            await run_in_executor(client.api.start, container_id)
        except DockerException as e:
            raise DaemonOperationError("start", container_id) from e
        logger.debug("Started container", container_id=short_id(container_id))

    async def _rollback(self, container_id: str) -> None:
        """Best-effort teardown of a container that never became ready.

        The id stays registered unless the teardown succeeds, so the
        signal and exit hooks still cover it.
        """
        try:
            await self._stop_and_remove(container_id)
        except NotFound:
            pass
        except Exception as e:
            logger.warning(
                "Rollback failed; container left for registry cleanup",
                container_id=short_id(container_id),
                error=str(e),
            )
            return
        self._registry.discard(container_id)
        logger.info("Rolled back container", container_id=short_id(container_id))

    # ------------------------------------------------------------------
    # Shutdown and cleanup
    # ------------------------------------------------------------------

    async def _stop_and_remove(self, container_id: str) -> None:
        client = self._client_factory.get_client()
        await run_in_executor(
            client.api.stop, container_id, timeout=self._settings.stop_timeout_seconds
        )
        await run_in_executor(client.api.remove_container, container_id, v=True)

    async def shutdown(self, handle: ProvisionedContainer) -> None:
        """Stop and remove the handle's container.

        Raises:
            DaemonOperationError: The daemon rejected stop or remove,
                including when the container is already gone
        """
        container_id = handle.container_id
        try:
            await self._stop_and_remove(container_id)
        except NotFound as e:
            self._registry.discard(container_id)
            raise DaemonOperationError(
                "shutdown",
                container_id,
                message=f"Container {short_id(container_id)} no longer exists",
            ) from e
        except DockerException as e:
            raise DaemonOperationError("shutdown", container_id) from e

        self._registry.discard(container_id)
        logger.info("Shut down container", container_id=short_id(container_id))

    async def cleanup(self, signum: Optional[int] = None) -> List[str]:
        """Stop and remove every container in the registry."""
        removed = await self._registry.drain_and_cleanup(signum)
        logger.info("Cleanup finished", removed=len(removed))
        return removed

    def close(self) -> None:
        """Release the Docker client."""
        self._client_factory.close()
