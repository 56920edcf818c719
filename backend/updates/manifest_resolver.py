"""
Manifest Resolution

Interprets a registry manifest response: single-platform manifest or
multi-arch list (OCI index / Docker manifest list).

The digest compared against local RepoDigests is always the one the
registry returned for the original tag request. For a multi-arch tag that
is the list digest, which is what the Docker daemon records when it pulls
the tag. The platform sub-manifest is only needed to reach its config blob.
"""

import logging
import platform
from typing import Any, Dict, List, Optional

from config.settings import AppConfig
from updates.registry_client import ManifestParseError
from updates.types import ManifestResolution

logger = logging.getLogger(__name__)

# buildx attaches provenance/SBOM manifests with this annotation
ATTESTATION_ANNOTATION = "vnd.docker.reference.type"

# platform.machine() → OCI architecture
_MACHINE_TO_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "i386": "386",
    "i686": "386",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_MACHINE_TO_VARIANT = {
    "armv7l": "v7",
    "armv6l": "v6",
}


def host_architecture() -> str:
    """OCI architecture name of this host (override: DOCKPILOT_PLATFORM_ARCH)."""
    if AppConfig.PLATFORM_ARCH:
        return AppConfig.PLATFORM_ARCH
    machine = platform.machine().lower()
    return _MACHINE_TO_ARCH.get(machine, machine or "amd64")


def host_variant() -> Optional[str]:
    """CPU variant (v7 on 32-bit ARM), or None when it doesn't matter."""
    if AppConfig.PLATFORM_VARIANT:
        return AppConfig.PLATFORM_VARIANT
    if AppConfig.PLATFORM_ARCH:
        return None
    return _MACHINE_TO_VARIANT.get(platform.machine().lower())


def is_attestation(entry: Dict[str, Any]) -> bool:
    annotations = entry.get("annotations") or {}
    return ATTESTATION_ANNOTATION in annotations


def select_platform(
    manifests: List[Dict[str, Any]],
    os_name: str = "linux",
    architecture: Optional[str] = None,
    variant: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Pick the manifest-list entry for a platform.

    Exact {os, architecture[, variant]} match first, ignoring attestation
    entries. Otherwise the first non-attestation entry whose architecture
    is known.
    """
    architecture = architecture or host_architecture()
    candidates = [
        m for m in manifests
        if isinstance(m, dict) and not is_attestation(m)
    ]

    for entry in candidates:
        plat = entry.get("platform") or {}
        if plat.get("os") != os_name or plat.get("architecture") != architecture:
            continue
        if variant and plat.get("variant") and plat.get("variant") != variant:
            continue
        return entry

    for entry in candidates:
        plat = entry.get("platform") or {}
        if plat.get("architecture") and plat.get("architecture") != "unknown":
            logger.debug(f"No {os_name}/{architecture} manifest, falling back to {plat.get('architecture')}")
            return entry

    return None


def resolve(raw_manifest: Any, content_digest: Optional[str]) -> ManifestResolution:
    """
    Classify a manifest body.

    Args:
        raw_manifest: Parsed manifest JSON
        content_digest: Docker-Content-Digest of the response that produced it

    Returns:
        ManifestResolution. manifest_digest is always content_digest.

    Raises:
        ManifestParseError: neither a manifest list nor an image manifest
    """
    if not isinstance(raw_manifest, dict):
        raise ManifestParseError("Manifest is not a JSON object")

    manifests = raw_manifest.get("manifests")
    if isinstance(manifests, list):
        entry = select_platform(
            manifests,
            os_name=AppConfig.PLATFORM_OS,
            architecture=host_architecture(),
            variant=host_variant(),
        )
        platform_digest = entry.get("digest") if entry else None
        if not platform_digest:
            logger.debug("Manifest list has no usable platform entry")
        return ManifestResolution(
            is_multi_arch=True,
            manifest_digest=content_digest or "",
            platform_digest=platform_digest,
        )

    config = raw_manifest.get("config")
    if isinstance(config, dict):
        return ManifestResolution(
            is_multi_arch=False,
            manifest_digest=content_digest or "",
            config_digest=config.get("digest"),
        )

    raise ManifestParseError(
        f"Unrecognized manifest (mediaType={raw_manifest.get('mediaType')}, "
        f"schemaVersion={raw_manifest.get('schemaVersion')})"
    )
