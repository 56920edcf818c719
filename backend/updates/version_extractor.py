"""
Version Extraction

Derives a human-readable version for an image from its config labels,
falling back to the latest GitHub release when the image only declares
its source repository.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Checked in order, first non-empty wins
VERSION_LABELS = (
    "org.opencontainers.image.version",
    "version",
    "VERSION",
)
SOURCE_LABEL = "org.opencontainers.image.source"

GITHUB_RELEASE_URL = "https://api.github.com/repos/{owner}/{repo}/releases/latest"

_RATE_LIMIT_MARKERS = ("TOOMANYREQUESTS", "rate limit")

_SEMVER = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?")


def version_from_labels(labels: Optional[Dict[str, str]]) -> Optional[str]:
    """First non-empty version label, or None."""
    if not labels:
        return None
    for key in VERSION_LABELS:
        value = labels.get(key)
        if value and str(value).strip():
            return str(value).strip()
    return None


def github_repo_from_url(source_url: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    (owner, repo) for a github.com source URL.

    Examples:
        >>> github_repo_from_url("https://github.com/linuxserver/docker-sonarr")
        ("linuxserver", "docker-sonarr")
        >>> github_repo_from_url("https://github.com/org/app.git")
        ("org", "app")
    """
    if not source_url:
        return None
    parsed = urlparse(source_url.strip())
    host = (parsed.hostname or "").lower()
    if host not in ("github.com", "www.github.com"):
        return None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        return None
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[:-4]
    if not owner or not repo:
        return None
    return owner, repo


def has_rate_limit_marker(text: str) -> bool:
    lowered = text.lower()
    return any(marker.lower() in lowered for marker in _RATE_LIMIT_MARKERS)


def parse_config_blob(data: bytes) -> Optional[Dict[str, Any]]:
    """
    Decode an image config blob.

    Returns None for rate-limit responses disguised as blobs and for
    anything that isn't a JSON object.
    """
    text = data.decode("utf-8", "replace") if isinstance(data, (bytes, bytearray)) else str(data)
    try:
        config = json.loads(text)
    except ValueError:
        if has_rate_limit_marker(text):
            logger.warning("Registry rate limit hit while fetching image config, skipping version metadata")
        else:
            logger.debug("Image config blob is not JSON")
        return None

    if not isinstance(config, dict):
        return None
    if "errors" in config and has_rate_limit_marker(text):
        logger.warning("Registry rate limit hit while fetching image config, skipping version metadata")
        return None
    return config


def config_labels(config: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Labels from an image config (config.Labels, may be null)."""
    if not config:
        return {}
    inner = config.get("config") or {}
    return inner.get("Labels") or {}


def parse_semver(version: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """
    Leading semver triple of a version string, or None.

    Examples:
        >>> parse_semver("v1.25.3")
        (1, 25, 3)
        >>> parse_semver("1.2-alpine")
        (1, 2, 0)
        >>> parse_semver("latest")
        None
    """
    if not version:
        return None
    match = _SEMVER.match(version.strip())
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


class VersionExtractor:
    """Version lookup with GitHub release fallback."""

    def __init__(self, client, release_timeout: Optional[float] = None):
        """
        Args:
            client: RegistryClient (only get_json is used)
            release_timeout: Timeout for the release lookup
        """
        self.client = client
        self.release_timeout = release_timeout

    async def latest_release(self, source_url: str) -> Optional[str]:
        repo = github_repo_from_url(source_url)
        if not repo:
            return None
        owner, name = repo
        url = GITHUB_RELEASE_URL.format(owner=owner, repo=name)
        data = await self.client.get_json(url, timeout=self.release_timeout)
        if not isinstance(data, dict):
            return None
        tag = data.get("tag_name")
        if tag:
            logger.debug(f"Latest release for {owner}/{name}: {tag}")
        return tag or None

    async def extract(self, labels: Optional[Dict[str, str]]) -> Optional[str]:
        """
        Version from labels, else the source repository's latest release.

        The release lookup only runs when there's no version label and the
        source label points at github.com.
        """
        version = version_from_labels(labels)
        if version:
            return version
        source = (labels or {}).get(SOURCE_LABEL)
        if not source:
            return None
        return await self.latest_release(source)
