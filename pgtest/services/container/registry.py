"""Process-wide registry of containers that must be torn down on exit.

Every container created by a lifecycle manager is registered here before it
is started. The registry is the safety net for abnormal termination: on
SIGINT, SIGHUP or SIGTERM, on an unhandled asyncio failure, and at
interpreter exit, it stops and removes every container still listed.
"""

import atexit
import os
import signal
import threading
import weakref
from typing import Dict, List, Optional

import structlog
from docker.errors import DockerException, NotFound

from ...config import settings
from ...core.docker import DockerClientFactory, docker_client_factory
from .utils import run_in_executor, short_id

logger = structlog.get_logger(__name__)

CLEANUP_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGINT", "SIGHUP", "SIGTERM")
    if hasattr(signal, name)
)


class CleanupRegistry:
    """Ordered set of container ids with process-level teardown hooks.

    The registry is injectable: tests and embedders can build their own
    instance with a dedicated client factory instead of using the global
    ``cleanup_registry``.
    """

    def __init__(
        self,
        client_factory: Optional[DockerClientFactory] = None,
        stop_timeout: Optional[int] = None,
    ):
        self._client_factory = client_factory or docker_client_factory
        self._stop_timeout = (
            stop_timeout if stop_timeout is not None else settings.stop_timeout_seconds
        )
        # Re-entrant: a signal handler may run while the main thread holds it
        self._lock = threading.RLock()
        self._container_ids: Dict[str, None] = {}

        self._signals_installed = False
        self._previous_handlers: Dict[int, object] = {}
        self._exit_hook_installed = False
        self._loops: "weakref.WeakSet" = weakref.WeakSet()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, container_id: str) -> None:
        """Track a newly created container."""
        with self._lock:
            self._container_ids[container_id] = None
        logger.debug("Registered container for cleanup", container_id=short_id(container_id))

    def discard(self, container_id: str) -> None:
        """Stop tracking a container that has been removed."""
        with self._lock:
            self._container_ids.pop(container_id, None)

    @property
    def container_ids(self) -> List[str]:
        """Snapshot of registered ids in registration order."""
        with self._lock:
            return list(self._container_ids)

    def __contains__(self, container_id: object) -> bool:
        with self._lock:
            return container_id in self._container_ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._container_ids)

    def _pop_next(self) -> Optional[str]:
        with self._lock:
            if not self._container_ids:
                return None
            container_id = next(iter(self._container_ids))
            del self._container_ids[container_id]
            return container_id

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def cleanup_sync(self, signum: Optional[int] = None) -> List[str]:
        """Stop and remove every registered container, in registration order.

        Entries are drained as they are processed, so each container is
        targeted at most once even if cleanup is triggered again. A
        container that is already gone counts as removed. Any other
        failure is logged and the remaining containers are still handled.

        Args:
            signum: Signal that triggered the cleanup, for logging

        Returns:
            Ids of containers that were removed or already gone
        """
        if not len(self):
            return []

        logger.info(
            "Cleaning up containers",
            signal=signal.Signals(signum).name if signum else None,
            count=len(self),
        )

        try:
            client = self._client_factory.get_client()
        except Exception as e:
            logger.error("Cannot reach Docker daemon for cleanup", error=str(e))
            return []

        removed: List[str] = []
        while True:
            container_id = self._pop_next()
            if container_id is None:
                break
            if self._stop_and_remove(client, container_id):
                removed.append(container_id)
        return removed

    def _stop_and_remove(self, client, container_id: str) -> bool:
        logger.info("Stopping and removing container", container_id=short_id(container_id))
        try:
            client.api.stop(container_id, timeout=self._stop_timeout)
            client.api.remove_container(container_id, v=True)
        except NotFound:
            logger.debug("Container already removed", container_id=short_id(container_id))
            return True
        except DockerException as e:
            logger.error(
                "Failed to remove container",
                container_id=short_id(container_id),
                error=str(e),
            )
            return False
        except Exception as e:
            logger.error(
                "Unexpected error removing container",
                container_id=short_id(container_id),
                error=str(e),
            )
            return False
        return True

    async def drain_and_cleanup(self, signum: Optional[int] = None) -> List[str]:
        """Async wrapper around ``cleanup_sync`` using the default executor."""
        return await run_in_executor(self.cleanup_sync, signum)

    # ------------------------------------------------------------------
    # Process hooks
    # ------------------------------------------------------------------

    def install_signal_handlers(self) -> bool:
        """Install cleanup handlers for SIGINT, SIGHUP and SIGTERM once.

        Must be called from the main thread.

        Returns:
            True if handlers are installed (now or previously)
        """
        with self._lock:
            if self._signals_installed:
                return True
            if threading.current_thread() is not threading.main_thread():
                logger.warning("Signal handlers can only be installed from the main thread")
                return False

            for signum in CLEANUP_SIGNALS:
                self._previous_handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handle_signal)
            self._signals_installed = True

        logger.debug(
            "Installed cleanup signal handlers",
            signals=[signal.Signals(s).name for s in CLEANUP_SIGNALS],
        )
        return True

    def restore_signal_handlers(self) -> None:
        """Put back the handlers that were active before installation."""
        with self._lock:
            if not self._signals_installed:
                return
            for signum, previous in self._previous_handlers.items():
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            self._previous_handlers.clear()
            self._signals_installed = False

    def _handle_signal(self, signum, frame) -> None:
        logger.warning("Caught signal", signal=signal.Signals(signum).name)
        self.cleanup_sync(signum)

        previous = self._previous_handlers.get(signum, signal.SIG_DFL)
        if callable(previous):
            # e.g. default_int_handler, which raises KeyboardInterrupt
            previous(signum, frame)
            return
        if previous == signal.SIG_IGN:
            return

        # Default disposition: restore it and re-deliver so the process terminates
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)

    def install_loop_exception_handler(self, loop) -> None:
        """Run cleanup when ``loop`` reports an unhandled exception.

        The previous handler (or the loop's default handler) still runs
        afterwards. Installed once per loop.

        Cleanup runs synchronously on the loop thread: this is a last-resort
        path, and each stop call may block for up to ``stop_timeout`` seconds
        while the loop is stalled.
        """
        with self._lock:
            if loop in self._loops:
                return
            self._loops.add(loop)
            previous = loop.get_exception_handler()

        def handle_exception(loop, context):
            exception = context.get("exception")
            if exception is not None:
                logger.error(
                    "Unhandled asynchronous failure",
                    message=context.get("message"),
                    error=repr(exception),
                )
                self.cleanup_sync()
            if previous is not None:
                previous(loop, context)
            else:
                loop.default_exception_handler(context)

        loop.set_exception_handler(handle_exception)

    def install_exit_hook(self) -> None:
        """Remove containers still registered when the interpreter exits."""
        with self._lock:
            if self._exit_hook_installed:
                return
            atexit.register(self.cleanup_sync)
            self._exit_hook_installed = True


# Global cleanup registry
cleanup_registry = CleanupRegistry()
