"""
Update Executor Service

Applies one update candidate:
1. Discover the containers running the image
2. Pull the new image (registry candidates only)
3. Recreate affected application groups, one orchestrator call per group
4. Restart standalone containers in place
5. Record the outcome in UpdateHistory and notify

Progress is exposed as an async iterator of ProgressEvents. Work is strictly
sequential: one application is never touched by two recreate calls at once.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from config.settings import AppConfig
from updates.types import (
    LocalContainer,
    ProgressEvent,
    PullProgress,
    RestartedContainer,
    UpdateCandidate,
    UpdateRecord,
    UpdateStatus,
    UpdateType,
)
from utils.image_pull_progress import PullProgressTracker
from utils.image_ref import is_bare_image_id, normalize_image_ref

logger = logging.getLogger(__name__)

STANDALONE_RESTART_WARNING = (
    "Container {name} is not part of an application and was restarted in place; "
    "a restart does not switch it to the new image, recreate it to finish the update"
)


def is_affected(container: LocalContainer, image_key: str) -> bool:
    """True if container runs (or was created from) image_key."""
    ref = container.bound_image_ref
    if is_bare_image_id(ref):
        ref = container.creation_ref
    return normalize_image_ref(ref) == image_key


def group_by_application(containers: List[LocalContainer]):
    """
    Split containers into application groups and standalone containers.

    Returns:
        (groups, standalone) where groups maps application name to its
        containers, both in discovery order.
    """
    groups: Dict[str, List[LocalContainer]] = {}
    standalone: List[LocalContainer] = []
    for container in containers:
        if container.application_name:
            groups.setdefault(container.application_name, []).append(container)
        else:
            standalone.append(container)
    return groups, standalone


def recreate_scope(containers: List[LocalContainer]) -> Optional[str]:
    """Service to scope a group recreate to, or None for the whole application."""
    services = {c.service_name for c in containers}
    if len(services) == 1:
        return services.pop()
    return None


class UpdateExecutor:
    """
    Pulls images and recreates the containers that use them.

    Args:
        runtime: ContainerRuntime
        orchestrator: StackOrchestrator
        history: UpdateHistory terminal records are appended to (optional)
        notifier: Notifier (optional)
        pull_timeout: seconds allowed for a pull (default DOCKPILOT_PULL_TIMEOUT)
    """

    def __init__(self, runtime, orchestrator, history=None, notifier=None, pull_timeout: Optional[int] = None):
        self.runtime = runtime
        self.orchestrator = orchestrator
        self.history = history
        self.notifier = notifier
        self.pull_timeout = pull_timeout or AppConfig.PULL_TIMEOUT

    async def execute(self, candidate: UpdateCandidate, restart: bool = False) -> UpdateRecord:
        """Run an update to completion. Never raises; failures end up in the record."""
        record = None
        async for event in self.execute_with_progress(candidate, restart=restart):
            if event.record is not None:
                record = event.record
        return record

    async def execute_many(self, candidates: List[UpdateCandidate], restart: bool = False) -> List[UpdateRecord]:
        """Update candidates one after another. A failure never stops the rest."""
        records = []
        for candidate in candidates:
            records.append(await self.execute(candidate, restart=restart))
        completed = sum(1 for r in records if r.status == UpdateStatus.COMPLETED)
        logger.info(f"Batch update finished: {completed}/{len(records)} succeeded")
        return records

    async def execute_with_progress(
        self,
        candidate: UpdateCandidate,
        restart: bool = False
    ) -> AsyncIterator[ProgressEvent]:
        """
        Run an update, yielding ProgressEvents.

        The last event is "completed" or "failed" and carries the terminal
        UpdateRecord.
        """
        image = candidate.key
        record = UpdateRecord(image=image)
        logger.info(f"Starting update for {image} ({candidate.update_type.value}, restart={restart})")
        yield ProgressEvent(kind="started", image=image, message=f"Updating {image}")

        try:
            # Discover before pulling: afterwards the old containers list a bare image ID
            affected = await self.discover_containers(image)
            record.affected_containers = len(affected)

            if candidate.update_type == UpdateType.REGISTRY:
                async for progress in self._pull(candidate):
                    yield ProgressEvent(kind="pull", image=image, message=progress.summary, pull=progress)
                record.status = UpdateStatus.PULLED
                yield ProgressEvent(kind="pulled", image=image, message=f"Pulled {image}")

            if restart and affected:
                record.status = UpdateStatus.RECREATING
                yield ProgressEvent(
                    kind="recreating",
                    image=image,
                    message=f"Recreating {len(affected)} container(s)"
                )
                async for event in self._recreate_affected(record, affected):
                    yield event

            failures = [c for c in record.restarted_containers if c.error]
            if failures:
                record.status = UpdateStatus.FAILED
                record.error = "; ".join(
                    f"{c.application or c.name}: {c.error}" for c in _unique_failures(failures)
                )
            else:
                record.status = UpdateStatus.COMPLETED

        except Exception as e:
            logger.error(f"Update of {image} failed: {e}")
            record.status = UpdateStatus.FAILED
            record.error = str(e)

        await self._finish(record)

        if record.status == UpdateStatus.COMPLETED:
            yield ProgressEvent(kind="completed", image=image, message=f"Updated {image}", record=record)
        else:
            yield ProgressEvent(kind="failed", image=image, message=record.error or "Update failed", record=record)

    async def discover_containers(self, image_key: str) -> List[LocalContainer]:
        """Containers whose image reference is image_key, in runtime order."""
        containers = await self.runtime.list_containers()
        affected = [c for c in containers if is_affected(c, image_key)]
        logger.debug(f"{len(affected)} container(s) use {image_key}")
        return affected

    async def _pull(self, candidate: UpdateCandidate) -> AsyncIterator[PullProgress]:
        """Pull with a deadline, yielding aggregated progress."""
        image = candidate.key
        tracker = PullProgressTracker(image)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.pull_timeout

        logger.info(f"Pulling {image}")
        stream = self.runtime.pull_image(candidate.repository, candidate.tag)
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise TimeoutError(f"Image pull exceeded {self.pull_timeout} seconds")
                try:
                    line = await asyncio.wait_for(stream.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise TimeoutError(f"Image pull exceeded {self.pull_timeout} seconds")

                progress = tracker.update(line)
                if progress is not None:
                    yield progress
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        yield tracker.finish()

    async def _recreate_affected(
        self,
        record: UpdateRecord,
        affected: List[LocalContainer]
    ) -> AsyncIterator[ProgressEvent]:
        """One recreate per application group, in-place restart for the rest."""
        groups, standalone = group_by_application(affected)

        for application, members in groups.items():
            service = recreate_scope(members)
            scope = f"service {service}" if service else "all services"
            error = None
            try:
                logger.info(f"Recreating application {application} ({scope}) for {record.image}")
                await self.orchestrator.recreate(application, service)
            except Exception as e:
                logger.error(f"Failed to recreate application {application}: {e}")
                error = str(e)

            for container in members:
                record.restarted_containers.append(RestartedContainer(
                    id=container.id,
                    name=container.name,
                    type="stack",
                    application=application,
                    error=error,
                ))
            yield ProgressEvent(
                kind="container",
                image=record.image,
                message=f"Application {application}: {error or 'recreated'}",
            )

        for container in standalone:
            error = None
            try:
                logger.info(f"Restarting standalone container {container.name}")
                await self.runtime.restart_container(container.id)
                record.warnings.append(STANDALONE_RESTART_WARNING.format(name=container.name))
            except Exception as e:
                logger.error(f"Failed to restart container {container.name}: {e}")
                error = str(e)

            record.restarted_containers.append(RestartedContainer(
                id=container.id,
                name=container.name,
                type="container",
                error=error,
            ))
            yield ProgressEvent(
                kind="container",
                image=record.image,
                message=f"Container {container.name}: {error or 'restarted'}",
            )

    async def _finish(self, record: UpdateRecord):
        """Store the terminal record and notify. Notifier errors are only logged."""
        if self.history is not None:
            self.history.add(record)

        if record.status == UpdateStatus.COMPLETED:
            logger.info(f"Update completed for {record.image}")
        else:
            logger.warning(f"Update failed for {record.image}: {record.error}")

        if self.notifier is None:
            return
        try:
            if record.status == UpdateStatus.COMPLETED:
                await self.notifier.notify_update_succeeded(record)
            else:
                await self.notifier.notify_update_failed(record)
        except Exception as e:
            logger.error(f"Failed to send update notification for {record.image}: {e}")


def _unique_failures(failures: List[RestartedContainer]) -> List[RestartedContainer]:
    """One failure per application (a group failure is recorded per member)."""
    seen = set()
    unique = []
    for failure in failures:
        key = failure.application or failure.id
        if key in seen:
            continue
        seen.add(key)
        unique.append(failure)
    return unique
