"""Image resolution: make sure an image exists locally, pulling it if needed."""

from typing import Iterable

import structlog
from docker.errors import DockerException, NotFound
from docker.utils import parse_repository_tag

from ...core.docker import DockerClientFactory
from ...models.errors import ImageResolutionError
from .utils import run_in_executor

logger = structlog.get_logger(__name__)


class ImageResolver:
    """Ensures image references are available to the local daemon."""

    def __init__(self, client_factory: DockerClientFactory):
        self._client_factory = client_factory

    async def ensure_available(self, reference: str, debug: bool = False) -> None:
        """Inspect ``reference`` locally and pull it when the daemon does not have it.

        Args:
            reference: Image reference such as ``postgres:15``
            debug: Log pull progress lines

        Raises:
            ImageResolutionError: If inspection fails for any reason other
                than not-found, or if the pull fails
        """
        client = self._client_factory.get_client()
        try:
            await run_in_executor(client.api.inspect_image, reference)
            logger.debug("Image present locally", image=reference)
            return
        except NotFound:
            pass
        except DockerException as e:
            raise ImageResolutionError(
                reference, f"Failed to inspect image {reference}: {e}"
            ) from e

        logger.info("Pulling image", image=reference)
        try:
            await run_in_executor(self._pull_blocking, client, reference, debug)
        except ImageResolutionError:
            raise
        except DockerException as e:
            raise ImageResolutionError(
                reference, f"Failed to pull image {reference}: {e}"
            ) from e
        logger.info("Pulled image", image=reference)

    def _pull_blocking(self, client, reference: str, debug: bool) -> None:
        """Start the pull and follow its progress stream until it ends."""
        repository, tag = parse_repository_tag(reference)
        stream = client.api.pull(repository, tag=tag or "latest", stream=True, decode=True)
        self._follow_progress(reference, stream, debug)

    @staticmethod
    def _follow_progress(reference: str, stream: Iterable[dict], debug: bool) -> None:
        for event in stream:
            if not isinstance(event, dict):
                continue
            error = event.get("error") or (event.get("errorDetail") or {}).get("message")
            if error:
                raise ImageResolutionError(
                    reference, f"Failed to pull image {reference}: {error}"
                )
            if debug:
                logger.info(
                    "Pull progress",
                    image=reference,
                    status=event.get("status"),
                    layer=event.get("id"),
                    progress=event.get("progress"),
                )
