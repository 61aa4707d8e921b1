"""Free host port allocation."""

import socket

import structlog

from ..models.errors import AllocationError

logger = structlog.get_logger(__name__)


def allocate_port(host: str = "") -> int:
    """Ask the OS for a free TCP port.

    Binds a transient socket to port 0, reads back the assigned port and
    closes the socket before returning, so the port can be handed to the
    docker daemon. There is no retry; the caller decides.

    Args:
        host: Interface to bind; all interfaces by default, matching the
            daemon's published port binding

    Returns:
        The allocated port number

    Raises:
        AllocationError: If binding fails or the address is malformed
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            address = sock.getsockname()
    except OSError as e:
        raise AllocationError(f"Failed to bind a free port: {e}") from e

    if not isinstance(address, tuple) or len(address) < 2:
        raise AllocationError(f"Invalid socket address: {address!r}")

    port = address[1]
    if not isinstance(port, int) or not 0 < port <= 65535:
        raise AllocationError(f"Invalid port in socket address: {address!r}")

    logger.debug("Allocated host port", port=port)
    return port
