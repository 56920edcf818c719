"""
Registry Adapter for Docker Image Update Detection

Answers "what does the registry serve for repository:tag right now?" by
driving endpoint resolution, the registry client, manifest resolution and
version extraction for one image.

Nothing is cached: every scan sees the registry's current state.
"""

import asyncio
import logging
from typing import Optional, Tuple

import aiohttp

from updates import manifest_resolver, registry_endpoints
from updates.registry_client import RegistryClient, RegistryError
from updates.types import RegistryTarget, RemoteManifestInfo
from updates.version_extractor import VersionExtractor, config_labels, parse_config_blob

logger = logging.getLogger(__name__)


class RegistryAdapter:
    """
    Remote inspection of one image at a time.

    Errors on the primary manifest request propagate to the caller (the
    scanner decides how to log and skip). Errors while fetching version
    metadata only drop the metadata.
    """

    def __init__(
        self,
        client: Optional[RegistryClient] = None,
        version_extractor: Optional[VersionExtractor] = None,
    ):
        self.client = client or RegistryClient()
        self.version_extractor = version_extractor or VersionExtractor(self.client)

    @classmethod
    def from_settings(cls, settings) -> "RegistryAdapter":
        """Adapter whose client uses the timeouts and Docker config path of settings."""
        client = RegistryClient(
            docker_config_path=settings.DOCKER_CONFIG_PATH,
            token_timeout=settings.TOKEN_TIMEOUT,
            manifest_timeout=settings.MANIFEST_TIMEOUT,
            blob_timeout=settings.BLOB_TIMEOUT,
        )
        return cls(client, VersionExtractor(client, release_timeout=settings.RELEASE_LOOKUP_TIMEOUT))

    async def close(self):
        await self.client.close()

    async def get_remote_info(self, repository: str, tag: str) -> Optional[RemoteManifestInfo]:
        """
        Resolve repository:tag against its registry.

        Args:
            repository: e.g. "nginx", "ghcr.io/org/app"
            tag: e.g. "latest"

        Returns:
            RemoteManifestInfo, or None when the registry didn't assert a
            content digest for the tag.

        Raises:
            RegistryError (and subclasses), asyncio.TimeoutError,
            aiohttp.ClientError from the manifest request
        """
        target = registry_endpoints.resolve(repository)
        token = await self.client.get_auth_token(target)

        manifest = await self.client.fetch_manifest(target, tag, token=token)
        if not manifest.digest:
            logger.debug(f"{repository}:{tag}: registry sent no Docker-Content-Digest, skipping")
            return None

        resolution = manifest_resolver.resolve(manifest.body, manifest.digest)
        info = RemoteManifestInfo(
            manifest_digest=resolution.manifest_digest,
            platform_digest=resolution.platform_digest,
            config_digest=resolution.config_digest,
        )

        version, created = await self._fetch_metadata(target, token, info)
        info.version = version
        info.created_at = created

        logger.debug(f"Resolved {repository}:{tag} → {info.manifest_digest[:19]}")
        return info

    async def _fetch_metadata(
        self,
        target: RegistryTarget,
        token: Optional[str],
        info: RemoteManifestInfo,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Version and created timestamp from the config blob. (None, None) on failure."""
        try:
            config_digest = info.config_digest
            if not config_digest and info.platform_digest:
                platform_manifest = await self.client.fetch_manifest(
                    target, info.platform_digest, token=token
                )
                resolution = manifest_resolver.resolve(platform_manifest.body, platform_manifest.digest)
                config_digest = resolution.config_digest
                info.config_digest = config_digest

            if not config_digest:
                return None, None

            blob = await self.client.fetch_blob(target, config_digest, token=token)
            config = parse_config_blob(blob)
            if config is None:
                return None, None

            version = await self.version_extractor.extract(config_labels(config))
            return version, config.get("created")

        except asyncio.TimeoutError:
            logger.debug(f"Timeout fetching metadata for {target.image_path}")
        except (RegistryError, aiohttp.ClientError) as e:
            logger.debug(f"No version metadata for {target.image_path}: {e}")

        return None, None
