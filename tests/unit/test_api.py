"""Unit tests for the module-level start/cleanup API."""

import pytest

import pgtest
from pgtest.config import settings
from pgtest.core.docker import docker_client_factory
from pgtest.services.container.registry import cleanup_registry


@pytest.fixture
def default_manager(monkeypatch, mock_docker_client):
    """Point the process-wide manager and registry at the mock daemon."""
    monkeypatch.setattr(pgtest, "_default_manager", None)
    monkeypatch.setattr(docker_client_factory, "_client", mock_docker_client)
    monkeypatch.setattr(settings, "install_signal_handlers", False)
    monkeypatch.setattr(settings, "poll_interval_seconds", 0.001)
    yield pgtest.get_manager()
    for container_id in cleanup_registry.container_ids:
        cleanup_registry.discard(container_id)


class TestModuleApi:
    """Test ``pgtest.start`` and ``pgtest.cleanup``."""

    @pytest.mark.asyncio
    async def test_start_uses_default_manager_and_global_registry(
        self, default_manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        handle = await pgtest.start("15", database="app")

        assert pgtest.get_manager() is default_manager
        assert default_manager.registry is cleanup_registry
        assert handle.container_id == container_id
        assert handle.connection_uri.startswith(f"postgresql://pgtest:{handle.password}@")
        assert handle.connection_uri.endswith(f"127.0.0.1:{fixed_port}/app?sslmode=disable")
        assert container_id in cleanup_registry
        mock_docker_client.api.inspect_image.assert_called_once_with("postgres:15")

    @pytest.mark.asyncio
    async def test_cleanup_drains_global_registry(
        self, default_manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        await pgtest.start("15")

        removed = await pgtest.cleanup()

        assert removed == [container_id]
        assert container_id not in cleanup_registry
        mock_docker_client.api.remove_container.assert_called_once_with(container_id, v=True)
        assert await pgtest.cleanup() == []

    @pytest.mark.asyncio
    async def test_shutdown_through_handle(
        self, default_manager, mock_docker_client, mock_open_connection, fixed_port, container_id
    ):
        handle = await pgtest.start("15")

        await handle.shutdown()

        assert container_id not in cleanup_registry
        mock_docker_client.api.stop.assert_called_once()
