"""
Digest Normalization and Comparison

Registries and the local runtime disagree on how they spell a digest:
- Registry header:   "sha256:abc123..."
- RepoDigests entry: "nginx@sha256:abc123..."
- Image ID:          "sha256:abc123..." or bare "abc123..."

Everything here is string-level. No hashing is computed.
"""

from typing import Iterable, Optional

SHORT_DIGEST_LENGTH = 12


def normalize(digest: Optional[str]) -> str:
    """
    Strip whitespace, an optional "repo@" prefix and the algorithm prefix.

    Idempotent: normalize(normalize(d)) == normalize(d)

    Examples:
        >>> normalize("sha256:abc")
        "abc"
        >>> normalize(" nginx@sha256:abc\\r\\n")
        "abc"
        >>> normalize("abc")
        "abc"
    """
    if not digest:
        return ""
    value = digest.strip()
    if "@" in value:
        value = value.rsplit("@", 1)[1]
    if ":" in value:
        value = value.split(":", 1)[1]
    return value.strip()


def matches(local_repo_digests: Iterable[str], remote_digest: Optional[str]) -> bool:
    """
    True iff any local RepoDigest refers to the remote digest.

    An empty local list never matches (locally built images have no
    RepoDigests, so they can't be proven up to date). Hex case is ignored.
    """
    remote = normalize(remote_digest).lower()
    if not remote:
        return False
    return any(normalize(pair).lower() == remote for pair in local_repo_digests or [])


def short(digest: Optional[str], length: int = SHORT_DIGEST_LENGTH) -> str:
    """Display form: first 12 chars of the normalized digest."""
    return normalize(digest)[:length]
