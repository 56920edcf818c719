"""
Update Scanner

Finds images and containers that can be updated.

Two passes run side by side under one bounded worker pool:
1. Registry pass: every tagged local image is compared against what its
   registry currently serves for the tag.
2. Outdated-container pass: every container whose image reference now
   resolves locally to a different image than the one it runs (the tag was
   pulled again but the container was never recreated).

Results are deduplicated by repository:tag, registry candidates winning.
Any single failing check is logged and skipped, never the whole scan.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from config.settings import AppConfig
from updates import digest
from updates.registry_client import (
    ManifestParseError,
    RegistryAuthError,
    RegistryError,
    RegistryNotFound,
    RegistryRateLimited,
)
from updates.types import LocalContainer, LocalImage, UpdateCandidate, UpdateType
from updates.version_extractor import version_from_labels
from utils.image_ref import is_bare_image_id, normalize_image_ref, short_image_id, split_image_ref

logger = logging.getLogger(__name__)


def dedupe_candidates(candidates: List[UpdateCandidate]) -> List[UpdateCandidate]:
    """
    One candidate per repository:tag, first-seen order.

    A registry candidate replaces a container candidate for the same key,
    never the other way around.
    """
    by_key = {}
    for candidate in candidates:
        existing = by_key.get(candidate.key)
        if existing is None:
            by_key[candidate.key] = candidate
        elif existing.update_type == UpdateType.CONTAINER and candidate.update_type == UpdateType.REGISTRY:
            by_key[candidate.key] = candidate
    return list(by_key.values())


class UpdateScanner:
    """
    Scans local images and containers for available updates.

    Args:
        runtime: ContainerRuntime
        registry_adapter: object with get_remote_info(repository, tag)
        concurrency: max checks in flight (default DOCKPILOT_SCAN_CONCURRENCY)
    """

    def __init__(self, runtime, registry_adapter, concurrency: Optional[int] = None):
        self.runtime = runtime
        self.registry = registry_adapter
        self.concurrency = concurrency or AppConfig.SCAN_CONCURRENCY

    async def scan(self) -> List[UpdateCandidate]:
        """
        Run both passes and return deduplicated candidates.

        Never raises.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        registry_candidates, container_candidates = await asyncio.gather(
            self._registry_pass(semaphore),
            self._container_pass(semaphore),
        )

        candidates = dedupe_candidates(registry_candidates + container_candidates)
        logger.info(
            f"Update scan complete: {len(candidates)} update(s) "
            f"({len(registry_candidates)} from registry, {len(container_candidates)} outdated container(s))"
        )
        return candidates

    async def _registry_pass(self, semaphore: asyncio.Semaphore) -> List[UpdateCandidate]:
        try:
            images = await self.runtime.list_images()
        except Exception as e:
            logger.error(f"Failed to list local images, skipping registry pass: {e}")
            return []

        tagged = [image for image in images if image.is_tagged]
        logger.debug(f"Checking {len(tagged)} tagged image(s) against their registries")

        results = await asyncio.gather(*(self._check_image(image, semaphore) for image in tagged))
        return [candidate for candidate in results if candidate]

    async def _check_image(self, image: LocalImage, semaphore: asyncio.Semaphore) -> Optional[UpdateCandidate]:
        key = image.key
        async with semaphore:
            try:
                remote = await self.registry.get_remote_info(image.repository, image.tag)
            except asyncio.TimeoutError:
                logger.warning(f"Timeout checking {key} against registry")
                return None
            except ManifestParseError as e:
                logger.debug(f"Skipping {key}: {e}")
                return None
            except RegistryRateLimited as e:
                logger.warning(f"Skipping {key}: {e}")
                return None
            except (RegistryNotFound, RegistryAuthError) as e:
                # Local-only and private images end up here
                logger.info(f"Skipping {key}: {e}")
                return None
            except (RegistryError, aiohttp.ClientError) as e:
                logger.warning(f"Error checking {key}: {e}")
                return None
            except Exception as e:
                logger.error(f"Unexpected error checking {key}: {e}", exc_info=True)
                return None

        if remote is None or not remote.manifest_digest:
            return None

        if image.repo_digests:
            if digest.matches(image.repo_digests, remote.manifest_digest):
                logger.debug(f"{key} is up to date")
                return None
            current = image.repo_digests[0]
        else:
            # Built or loaded locally: nothing proves it matches the registry
            current = image.id

        logger.info(f"Update available for {key}: {digest.short(current)} → {digest.short(remote.manifest_digest)}")
        return UpdateCandidate(
            repository=image.repository,
            tag=image.tag,
            current_digest=digest.short(current),
            latest_digest=digest.short(remote.manifest_digest),
            update_type=UpdateType.REGISTRY,
            size=image.size_bytes,
            current_version=version_from_labels(image.labels),
            new_version=remote.version,
            current_created=image.created_at,
            new_created=remote.created_at,
        )

    async def _container_pass(self, semaphore: asyncio.Semaphore) -> List[UpdateCandidate]:
        try:
            containers = await self.runtime.list_containers()
        except Exception as e:
            logger.error(f"Failed to list containers, skipping outdated-container pass: {e}")
            return []

        results = await asyncio.gather(*(self._check_container(c, semaphore) for c in containers))
        return [candidate for candidate in results if candidate]

    async def _check_container(
        self,
        container: LocalContainer,
        semaphore: asyncio.Semaphore
    ) -> Optional[UpdateCandidate]:
        ref = container.bound_image_ref
        if is_bare_image_id(ref):
            # Tag moved on; fall back to what the container was created from
            ref = container.creation_ref

        image_key = normalize_image_ref(ref)
        if not image_key:
            logger.debug(f"Skipping container {container.name}: image {ref!r} can't be pulled by tag")
            return None

        async with semaphore:
            try:
                local_id = await self.runtime.resolve_image_id(image_key)
            except Exception as e:
                logger.warning(f"Failed to inspect {image_key} for container {container.name}: {e}")
                return None

        if not local_id or local_id == container.bound_image_id:
            return None

        repository, tag = split_image_ref(image_key)
        logger.info(
            f"Container {container.name} runs an outdated {image_key} "
            f"({short_image_id(container.bound_image_id)} → {short_image_id(local_id)})"
        )
        return UpdateCandidate(
            repository=repository,
            tag=tag,
            current_digest=short_image_id(container.bound_image_id),
            latest_digest=short_image_id(local_id),
            update_type=UpdateType.CONTAINER,
            container_id=container.id,
            container_name=container.name,
        )
