"""
Image Reference Utilities

Docker image references come in multiple formats:
- "nginx"                              → nginx:latest
- "nginx:1.25"                         → nginx:1.25
- "registry.example.com:5000/app"      → registry.example.com:5000/app:latest
- "ghcr.io/org/app@sha256:abc..."      → pinned by digest (can't re-pull by tag)
- "sha256:abc..." / 64 hex chars       → bare image ID (tag has moved on)

This module provides consistent parsing so scanner and executor agree on
what "the same image" means.
"""

import re
from typing import Optional, Tuple

_HEX_ID = re.compile(r"^[a-f0-9]{64}$")


def is_bare_image_id(ref: Optional[str]) -> bool:
    """
    True if ref is an image ID rather than a name.

    Examples:
        >>> is_bare_image_id("sha256:0d1c...")
        True
        >>> is_bare_image_id("nginx:latest")
        False
    """
    if not ref:
        return False
    value = ref.strip().lower()
    if value.startswith('sha256:'):
        return True
    return bool(_HEX_ID.match(value))


def is_digest_pinned(ref: Optional[str]) -> bool:
    """True for repo@sha256:... references."""
    return bool(ref) and '@' in ref


def split_image_ref(ref: str) -> Tuple[str, str]:
    """
    Split an image reference into (repository, tag).

    The tag separator is the last ":" after the last "/", so registry ports
    are never mistaken for tags. Digest pins are dropped.

    Examples:
        >>> split_image_ref("nginx")
        ("nginx", "latest")
        >>> split_image_ref("registry.example.com:5000/app:v1")
        ("registry.example.com:5000/app", "v1")
    """
    value = ref.strip()
    if '@' in value:
        value = value.split('@', 1)[0]

    last_slash = value.rfind('/')
    last_colon = value.rfind(':')
    if last_colon > last_slash:
        return value[:last_colon], value[last_colon + 1:] or 'latest'
    return value, 'latest'


def normalize_image_ref(ref: Optional[str]) -> Optional[str]:
    """
    Normalize to "repository:tag", or None if ref can't be pulled by tag.

    Examples:
        >>> normalize_image_ref("redis")
        "redis:latest"
        >>> normalize_image_ref("sha256:abc...")
        None
    """
    if not ref or is_bare_image_id(ref) or is_digest_pinned(ref):
        return None
    repository, tag = split_image_ref(ref)
    return f"{repository}:{tag}"


def short_image_id(image_id: Optional[str]) -> str:
    """12-char image ID without the sha256: prefix."""
    return (image_id or '').replace('sha256:', '')[:12]
