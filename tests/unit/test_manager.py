"""Unit tests for PostgresContainerManager."""

import asyncio
import signal
from unittest.mock import call, patch
from urllib.parse import urlsplit

import pytest
from docker.errors import APIError, NotFound
from structlog.testing import capture_logs

from pgtest.config import Settings
from pgtest.models.container import ContainerConfig
from pgtest.models.errors import (
    ConfigurationError,
    DaemonOperationError,
    ReadinessTimeoutError,
    UnhealthyContainerError,
)
from pgtest.services.container.manager import LABEL_PREFIX, PostgresContainerManager
from pgtest.services.container.registry import cleanup_registry


class TestStart:
    """Test provisioning a ready container."""

    @pytest.mark.asyncio
    async def test_start_returns_ready_handle(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        handle = await manager.start("15", database="app", username="app_user", password="pw")

        assert handle.container_id == container_id
        assert handle.port == fixed_port
        assert handle.connection_uri == (
            f"postgresql://app_user:pw@127.0.0.1:{fixed_port}/app?sslmode=disable"
        )
        assert container_id in manager.registry
        mock_docker_client.api.start.assert_called_once_with(container_id)
        mock_open_connection.assert_called_once_with("127.0.0.1", fixed_port)

    @pytest.mark.asyncio
    async def test_generated_password_and_defaults(
        self, manager, mock_docker_client, mock_open_connection, fixed_port
    ):
        """Test unset options fall back to settings and a fresh password."""
        handle = await manager.start("15")

        uri = urlsplit(handle.connection_uri)
        assert uri.scheme == "postgresql"
        assert uri.username == "pgtest"
        assert uri.password == handle.password
        assert len(handle.password) == 32
        assert handle.password.isalpha()
        assert uri.port == fixed_port
        assert uri.path == "/pgtest"
        assert uri.query == "sslmode=disable"

        environment = mock_docker_client.api.create_container.call_args.kwargs["environment"]
        assert f"POSTGRES_PASSWORD={handle.password}" in environment
        assert "POSTGRES_DB=pgtest" in environment
        assert "POSTGRES_USER=pgtest" in environment

    @pytest.mark.asyncio
    async def test_config_object_and_overrides(
        self, manager, mock_open_connection, fixed_port
    ):
        config = ContainerConfig(database="app", sslmode="require")

        handle = await manager.start("15", config, username="override")

        assert handle.database == "app"
        assert handle.username == "override"
        assert handle.sslmode == "require"
        assert handle.connection_uri.endswith("/app?sslmode=require")

    @pytest.mark.asyncio
    async def test_container_definition(
        self, manager, mock_docker_client, mock_open_connection, fixed_port
    ):
        """Test image, port binding, health check and labels sent to the daemon."""
        await manager.start("16", username="app_user")

        mock_docker_client.api.inspect_image.assert_called_once_with("postgres:16")
        mock_docker_client.api.create_host_config.assert_called_once_with(
            port_bindings={"5432/tcp": fixed_port}
        )
        args, kwargs = mock_docker_client.api.create_container.call_args
        assert args == ("postgres:16",)
        assert kwargs["ports"] == [5432]
        assert kwargs["healthcheck"]["test"][0] == "CMD-SHELL"
        assert "pg_isready" in kwargs["healthcheck"]["test"][1]
        assert "-U app_user" in kwargs["healthcheck"]["test"][1]
        assert kwargs["labels"][f"{LABEL_PREFIX}.managed"] == "true"
        assert kwargs["labels"][f"{LABEL_PREFIX}.version"] == "16"
        assert "TZ=UTC" in kwargs["environment"]

    @pytest.mark.asyncio
    async def test_polls_health_until_healthy(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, make_inspect_result
    ):
        mock_docker_client.api.inspect_container.side_effect = [
            make_inspect_result("starting"),
            make_inspect_result("starting"),
            make_inspect_result("healthy"),
        ]

        await manager.start("15")

        assert mock_docker_client.api.inspect_container.call_count == 3
        mock_open_connection.assert_called_once()

    @pytest.mark.asyncio
    async def test_invalid_options_fail_before_docker(self, manager, mock_docker_client):
        with pytest.raises(ConfigurationError):
            await manager.start("15", sslmode="sometimes")

        mock_docker_client.api.inspect_image.assert_not_called()
        mock_docker_client.api.create_container.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_failure_registers_nothing(
        self, manager, mock_docker_client, fixed_port
    ):
        mock_docker_client.api.create_container.side_effect = APIError("port is already allocated")

        with pytest.raises(DaemonOperationError) as exc_info:
            await manager.start("15")

        assert exc_info.value.operation == "create"
        assert len(manager.registry) == 0
        mock_docker_client.api.stop.assert_not_called()


class TestStartFailures:
    """Test rollback of containers that never become ready."""

    @pytest.mark.asyncio
    async def test_unhealthy_container_is_rolled_back(
        self,
        manager,
        mock_docker_client,
        mock_open_connection,
        fixed_port,
        container_id,
        make_inspect_result,
    ):
        mock_docker_client.api.inspect_container.return_value = make_inspect_result("unhealthy")

        with pytest.raises(UnhealthyContainerError):
            await manager.start("15")

        mock_open_connection.assert_not_called()
        mock_docker_client.api.stop.assert_called_once_with(container_id, timeout=1)
        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)
        assert container_id not in manager.registry

    @pytest.mark.asyncio
    async def test_start_rejected_is_rolled_back(
        self, manager, mock_docker_client, fixed_port, container_id
    ):
        mock_docker_client.api.start.side_effect = APIError("driver failed programming")

        with pytest.raises(DaemonOperationError) as exc_info:
            await manager.start("15")

        assert exc_info.value.operation == "start"
        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)
        assert len(manager.registry) == 0

    @pytest.mark.asyncio
    async def test_start_failure_is_logged_with_error_payload(
        self, manager, mock_docker_client, fixed_port, container_id
    ):
        mock_docker_client.api.start.side_effect = APIError("driver failed programming")

        with capture_logs() as logs:
            with pytest.raises(DaemonOperationError):
                await manager.start("15")

        entry = next(log for log in logs if log["event"] == "Error starting container")
        assert entry["log_level"] == "error"
        assert entry["container_id"] == container_id[:12]
        assert entry["error_type"] == "daemon"
        assert "start" in entry["error"]
        assert "driver failed programming" in entry["cause"]

    @pytest.mark.asyncio
    async def test_failed_rollback_leaves_container_registered(
        self, manager, mock_docker_client, fixed_port, container_id
    ):
        """Test the registry still covers a container rollback could not remove."""
        mock_docker_client.api.start.side_effect = APIError("driver failed programming")
        mock_docker_client.api.stop.side_effect = APIError("daemon is shutting down")

        with pytest.raises(DaemonOperationError):
            await manager.start("15")

        assert manager.registry.container_ids == [container_id]

    @pytest.mark.asyncio
    async def test_startup_timeout(
        self,
        manager,
        mock_docker_client,
        mock_open_connection,
        fixed_port,
        container_id,
        make_inspect_result,
    ):
        mock_docker_client.api.inspect_container.return_value = make_inspect_result("starting")

        with pytest.raises(ReadinessTimeoutError):
            await manager.start("15", startup_timeout=0.05)

        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)
        assert len(manager.registry) == 0

    @pytest.mark.asyncio
    async def test_cancelled_start_is_rolled_back(
        self,
        manager,
        mock_docker_client,
        mock_open_connection,
        fixed_port,
        container_id,
        make_inspect_result,
    ):
        mock_docker_client.api.inspect_container.return_value = make_inspect_result("starting")

        task = asyncio.ensure_future(manager.start("15"))
        while not mock_docker_client.api.inspect_container.called:
            await asyncio.sleep(0.005)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)
        assert len(manager.registry) == 0


class TestShutdownAndCleanup:
    """Test explicit shutdown and registry cleanup."""

    @pytest.mark.asyncio
    async def test_shutdown_stops_and_removes_once(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        handle = await manager.start("15")

        await handle.shutdown()

        mock_docker_client.api.stop.assert_called_once_with(container_id, timeout=1)
        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)
        assert container_id not in manager.registry

        # Nothing left for the safety net
        assert manager.registry.cleanup_sync() == []
        assert mock_docker_client.api.stop.call_count == 1

    @pytest.mark.asyncio
    async def test_handle_as_async_context_manager(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        async with await manager.start("15") as handle:
            assert handle.container_id == container_id

        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)

    @pytest.mark.asyncio
    async def test_shutdown_of_missing_container(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        handle = await manager.start("15")
        mock_docker_client.api.stop.side_effect = NotFound("No such container")

        with pytest.raises(DaemonOperationError) as exc_info:
            await manager.shutdown(handle)

        assert exc_info.value.operation == "shutdown"
        assert container_id not in manager.registry

    @pytest.mark.asyncio
    async def test_shutdown_rejected_keeps_registration(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        handle = await manager.start("15")
        mock_docker_client.api.remove_container.side_effect = APIError("device busy")

        with pytest.raises(DaemonOperationError):
            await handle.shutdown()

        assert container_id in manager.registry

    @pytest.mark.asyncio
    async def test_signal_cleanup_removes_all_in_order(
        self,
        manager,
        mock_docker_client,
        mock_open_connection,
        fixed_port,
        container_id,
        other_container_id,
    ):
        """Test a termination signal tears down every started container."""
        mock_docker_client.api.create_container.side_effect = [
            {"Id": container_id},
            {"Id": other_container_id},
        ]
        await manager.start("15")
        await manager.start("16")

        removed = manager.registry.cleanup_sync(signal.SIGTERM)

        assert removed == [container_id, other_container_id]
        assert mock_docker_client.api.stop.call_args_list == [
            call(container_id, timeout=1),
            call(other_container_id, timeout=1),
        ]
        assert mock_docker_client.api.remove_container.call_args_list == [
            call(container_id, v=True),
            call(other_container_id, v=True),
        ]

    @pytest.mark.asyncio
    async def test_cleanup(
        self, manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        await manager.start("15")

        assert await manager.cleanup() == [container_id]
        assert len(manager.registry) == 0


class TestProcessHooks:
    """Test installation of the registry's process hooks."""

    @pytest.mark.asyncio
    async def test_hooks_installed_when_enabled(
        self, client_factory, registry, mock_open_connection, fixed_port
    ):
        settings = Settings(
            poll_interval_seconds=0.001,
            install_signal_handlers=True,
            cleanup_on_exit=True,
        )
        manager = PostgresContainerManager(client_factory, registry, settings)

        with patch.object(registry, "install_signal_handlers") as install_signals, patch.object(
            registry, "install_loop_exception_handler"
        ) as install_loop_handler, patch.object(registry, "install_exit_hook") as install_exit:
            await manager.start("15")

        install_signals.assert_called_once()
        install_loop_handler.assert_called_once_with(asyncio.get_running_loop())
        install_exit.assert_called_once()

    @pytest.mark.asyncio
    async def test_hooks_skipped_when_disabled(
        self, manager, registry, mock_open_connection, fixed_port
    ):
        with patch.object(registry, "install_signal_handlers") as install_signals:
            await manager.start("15")

        install_signals.assert_not_called()


class TestManagerWiring:
    def test_custom_factory_gets_private_registry(self, client_factory):
        manager = PostgresContainerManager(client_factory=client_factory)
        assert manager.registry is not cleanup_registry

    def test_default_manager_uses_global_registry(self):
        assert PostgresContainerManager().registry is cleanup_registry
