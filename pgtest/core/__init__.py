"""Shared infrastructure for pgtest."""

from .docker import DockerClientFactory, docker_client_factory

__all__ = ["DockerClientFactory", "docker_client_factory"]
