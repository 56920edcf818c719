"""
Collaborator interfaces for the update engine.

The engine never talks to Docker, the compose service or the database
directly. It is handed implementations of these interfaces:

- ContainerRuntime: docker_monitor.container_runtime.DockerRuntime
- StackOrchestrator: deployment.compose_client.ComposeClient
- ConfigStore: database.ConfigStore
- Notifier: LoggingNotifier below (real channels live elsewhere)

Tests pass in-memory fakes (see tests/conftest.py).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from updates.types import LocalContainer, LocalImage, UpdateCandidate, UpdateRecord

logger = logging.getLogger(__name__)


class ContainerRuntime(ABC):
    """Read access to local images/containers plus pull and restart."""

    @abstractmethod
    async def list_images(self) -> List[LocalImage]:
        """One LocalImage per (repository, tag) pair present locally."""
        pass

    @abstractmethod
    async def list_containers(self) -> List[LocalContainer]:
        """All containers, running or not."""
        pass

    @abstractmethod
    async def resolve_image_id(self, image_ref: str) -> Optional[str]:
        """
        Image ID a reference currently points to locally.

        Returns:
            "sha256:..." or None if the image isn't present
        """
        pass

    @abstractmethod
    def pull_image(self, repository: str, tag: str) -> AsyncIterator[Dict[str, Any]]:
        """
        Pull an image, yielding the Engine API's structured progress events
        ({"status": ..., "id": ..., "progressDetail": {...}}).

        Raises on pull failure (including an {"error": ...} event).
        """
        pass

    @abstractmethod
    async def restart_container(self, container_id: str) -> None:
        pass


class StackOrchestrator(ABC):
    """Recreates the containers of a named application group."""

    @abstractmethod
    async def recreate(self, application_name: str, service_name: Optional[str] = None) -> None:
        """
        Recreate all services of an application, or only service_name.

        Raises on failure.
        """
        pass


class ConfigStore(ABC):
    """Key/value persistence for schedules and history."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass


class Notifier(ABC):
    """Outbound user notifications."""

    @abstractmethod
    async def notify_updates_available(
        self,
        candidates: List[UpdateCandidate],
        schedule_name: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    async def notify_update_succeeded(self, record: UpdateRecord) -> None:
        pass

    @abstractmethod
    async def notify_update_failed(self, record: UpdateRecord) -> None:
        pass


class LoggingNotifier(Notifier):
    """Notifier that only writes to the log."""

    async def notify_updates_available(self, candidates, schedule_name=None):
        if not candidates:
            return
        images = ", ".join(c.key for c in candidates)
        source = f" (schedule '{schedule_name}')" if schedule_name else ""
        logger.info(f"{len(candidates)} update(s) available{source}: {images}")

    async def notify_update_succeeded(self, record):
        logger.info(
            f"Updated {record.image}: {len(record.restarted_containers)} of "
            f"{record.affected_containers} container(s) restarted"
        )

    async def notify_update_failed(self, record):
        logger.warning(f"Update of {record.image} failed: {record.error}")
