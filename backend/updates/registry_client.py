"""
Registry HTTP Client

Read-only client for the Docker Registry v2 / OCI Distribution API:
token, manifest and blob requests against a resolved RegistryTarget.

Every request carries a hard timeout so a single unresponsive registry
can't stall a scan. Docker Hub credentials (if `docker login` was run on
the host) are attached to the token request only, never to manifest or
blob requests.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from config.settings import AppConfig
from updates.types import RegistryTarget
from utils.registry_credentials import encode_basic_auth, get_registry_credentials

logger = logging.getLogger(__name__)

MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"
MEDIA_TYPE_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"

# Order matters: list types first so multi-arch tags return the list digest
MANIFEST_ACCEPT = [
    MEDIA_TYPE_OCI_INDEX,
    MEDIA_TYPE_MANIFEST_LIST,
    MEDIA_TYPE_MANIFEST_V2,
    MEDIA_TYPE_OCI_MANIFEST,
]

RATE_LIMIT_MARKER = "TOOMANYREQUESTS"


class RegistryError(Exception):
    """Base error for registry requests."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RegistryAuthError(RegistryError):
    """401/403 from the registry."""


class RegistryNotFound(RegistryError):
    """404: repository, tag or blob does not exist."""


class RegistryRateLimited(RegistryError):
    """429 from the registry."""


class ManifestParseError(RegistryError):
    """Manifest body is not a manifest we understand."""


@dataclass
class ManifestResponse:
    """A fetched manifest plus the headers that matter."""
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    digest: Optional[str] = None        # Docker-Content-Digest header
    media_type: Optional[str] = None


def _raise_for_status(status: int, url: str, text: str = "") -> None:
    if 200 <= status < 300:
        return
    detail = text[:200] if text else ""
    if status in (401, 403):
        raise RegistryAuthError(f"Unauthorized ({status}) for {url}", status)
    if status == 404:
        raise RegistryNotFound(f"Not found: {url}", status)
    if status == 429:
        raise RegistryRateLimited(f"Rate limited by registry: {url}", status)
    raise RegistryError(f"Registry returned {status} for {url}: {detail}", status)


class RegistryClient:
    """
    Async registry client owning one aiohttp session.

    Usage:
        async with RegistryClient() as client:
            token = await client.get_auth_token(target)
            manifest = await client.fetch_manifest(target, "latest", token=token)
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        docker_config_path: Optional[str] = None,
        token_timeout: Optional[float] = None,
        manifest_timeout: Optional[float] = None,
        blob_timeout: Optional[float] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self.docker_config_path = docker_config_path or AppConfig.DOCKER_CONFIG_PATH
        self.token_timeout = token_timeout or AppConfig.TOKEN_TIMEOUT
        self.manifest_timeout = manifest_timeout or AppConfig.MANIFEST_TIMEOUT
        self.blob_timeout = blob_timeout or AppConfig.BLOB_TIMEOUT

    async def __aenter__(self) -> "RegistryClient":
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get_auth_token(self, target: RegistryTarget) -> Optional[str]:
        """
        Fetch an anonymous (or Docker Hub authenticated) pull token.

        Returns:
            Token string, or None when the registry has no token endpoint or
            the request failed. None means "proceed unauthenticated".
        """
        if not target.supports_token_auth:
            return None

        params = {"scope": f"repository:{target.image_path}:pull"}
        if target.auth_service:
            params["service"] = target.auth_service

        headers = {}
        creds = get_registry_credentials(target, self.docker_config_path)
        if creds:
            headers["Authorization"] = encode_basic_auth(creds)

        try:
            session = self._get_session()
            async with session.get(
                target.auth_token_url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.token_timeout)
            ) as response:
                raw = await response.read()
                if RATE_LIMIT_MARKER in raw.decode("utf-8", "replace"):
                    logger.warning(
                        f"Rate limited by {target.original_host} while fetching token for "
                        f"{target.image_path} - run 'docker login' to raise the limit"
                    )
                    return None
                if response.status != 200:
                    logger.debug(f"Token request to {target.auth_token_url} failed with status {response.status}")
                    return None
                try:
                    data = json.loads(raw)
                except ValueError:
                    logger.debug(f"Token endpoint {target.auth_token_url} returned non-JSON body")
                    return None
                if not isinstance(data, dict):
                    return None
                token = data.get("token") or data.get("access_token")
                if not token:
                    logger.debug(f"Token endpoint {target.auth_token_url} returned no token")
                    return None
                return token

        except asyncio.TimeoutError:
            logger.warning(f"Timeout fetching token from {target.auth_token_url}")
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Error fetching token from {target.auth_token_url}: {e}")

        return None

    async def fetch_manifest(
        self,
        target: RegistryTarget,
        ref: str,
        accept: Optional[List[str]] = None,
        token: Optional[str] = None,
    ) -> ManifestResponse:
        """
        GET a manifest by tag or digest.

        Raises:
            RegistryAuthError, RegistryNotFound, RegistryRateLimited,
            RegistryError: non-2xx responses
            ManifestParseError: body is not a JSON object
            asyncio.TimeoutError, aiohttp.ClientError: network failures
        """
        url = f"{target.base_url}/v2/{target.image_path}/manifests/{ref}"
        headers = {"Accept": ", ".join(accept or MANIFEST_ACCEPT)}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        session = self._get_session()
        async with session.get(
            url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.manifest_timeout)
        ) as response:
            raw = await response.read()
            _raise_for_status(response.status, url, raw[:200].decode("utf-8", "replace"))
            try:
                body = json.loads(raw)
            except ValueError as e:
                raise ManifestParseError(f"Manifest for {url} is not JSON: {e}")
            if not isinstance(body, dict):
                raise ManifestParseError(f"Manifest for {url} is not a JSON object")

            response_headers = dict(response.headers)
            digest = response.headers.get("Docker-Content-Digest")
            media_type = body.get("mediaType") or response.headers.get("Content-Type")

        return ManifestResponse(
            body=body,
            headers=response_headers,
            digest=digest.strip() if digest else None,
            media_type=media_type,
        )

    async def fetch_blob(
        self,
        target: RegistryTarget,
        digest: str,
        token: Optional[str] = None,
    ) -> bytes:
        """
        GET a blob by digest, following redirects to blob storage.

        Raises the same errors as fetch_manifest (except ManifestParseError).
        """
        url = f"{target.base_url}/v2/{target.image_path}/blobs/{digest}"
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        session = self._get_session()
        async with session.get(
            url,
            headers=headers,
            allow_redirects=True,
            timeout=aiohttp.ClientTimeout(total=self.blob_timeout)
        ) as response:
            data = await response.read()
            _raise_for_status(response.status, url, data[:200].decode("utf-8", "replace"))
            return data

    async def get_json(self, url: str, timeout: Optional[float] = None) -> Optional[Any]:
        """GET a JSON document. Returns None on any failure."""
        try:
            session = self._get_session()
            async with session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=timeout or AppConfig.RELEASE_LOOKUP_TIMEOUT)
            ) as response:
                if response.status != 200:
                    logger.debug(f"GET {url} returned {response.status}")
                    return None
                return await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.debug(f"Timeout fetching {url}")
        except (aiohttp.ClientError, ValueError) as e:
            logger.debug(f"Error fetching {url}: {e}")
        return None
