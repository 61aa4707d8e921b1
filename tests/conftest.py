"""Pytest configuration and shared fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Keep test runs independent of the developer's environment
os.environ.setdefault("PGTEST_INSTALL_SIGNAL_HANDLERS", "false")
os.environ.setdefault("PGTEST_CLEANUP_ON_EXIT", "false")

from pgtest.config import Settings
from pgtest.core.docker import DockerClientFactory
from pgtest.services.container.manager import PostgresContainerManager
from pgtest.services.container.registry import CleanupRegistry

CONTAINER_ID = "3f2a9c1d7b8e" + "0" * 52
OTHER_CONTAINER_ID = "9b1e4d2c6a0f" + "1" * 52


def inspect_result(health: str = "healthy", status: str = "running") -> dict:
    """Build a minimal ``inspect_container`` response."""
    return {
        "Id": CONTAINER_ID,
        "NetworkSettings": {"Ports": {}},
        "State": {
            "Status": status,
            "Running": status == "running",
            "ExitCode": 0,
            "Health": {"Status": health},
        },
    }


@pytest.fixture
def mock_docker_client():
    """Mock docker client exposing the low-level API used by pgtest."""
    client = MagicMock()

    client.api.inspect_image.return_value = {"Id": "sha256:postgres"}
    client.api.pull.return_value = iter([{"status": "Pull complete"}])
    client.api.create_host_config.return_value = {"PortBindings": {}}
    client.api.create_container.return_value = {"Id": CONTAINER_ID, "Warnings": []}
    client.api.start.return_value = None
    client.api.inspect_container.return_value = inspect_result("healthy")
    client.api.stop.return_value = None
    client.api.remove_container.return_value = None

    return client


@pytest.fixture
def client_factory(mock_docker_client):
    """Client factory bound to the mock docker client."""
    return DockerClientFactory(client=mock_docker_client)


@pytest.fixture
def registry(client_factory):
    """Fresh cleanup registry, isolated from the process-wide one."""
    return CleanupRegistry(client_factory, stop_timeout=1)


@pytest.fixture
def test_settings():
    """Settings with fast polling and no process hooks."""
    return Settings(
        poll_interval_seconds=0.001,
        readiness_timeout_seconds=5.0,
        stop_timeout_seconds=1,
        install_signal_handlers=False,
        cleanup_on_exit=False,
        debug=False,
    )


@pytest.fixture
def manager(client_factory, registry, test_settings):
    """Lifecycle manager wired to mocks."""
    return PostgresContainerManager(
        client_factory=client_factory,
        registry=registry,
        settings=test_settings,
    )


@pytest.fixture
def mock_open_connection():
    """Make every reachability probe connect immediately."""
    writer = MagicMock()
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    with patch(
        "pgtest.services.container.readiness.asyncio.open_connection",
        new=AsyncMock(return_value=(MagicMock(), writer)),
    ) as mock_connect:
        mock_connect.writer = writer
        yield mock_connect


@pytest.fixture
def fixed_port():
    """Pin the allocated host port."""
    with patch("pgtest.services.container.manager.allocate_port", return_value=54321):
        yield 54321


@pytest.fixture
def container_id():
    return CONTAINER_ID


@pytest.fixture
def other_container_id():
    return OTHER_CONTAINER_ID


@pytest.fixture
def make_inspect_result():
    """Factory for ``inspect_container`` responses."""
    return inspect_result
