"""
Shared types for the update engine.

Dataclasses passed between the scanner, the registry adapter and the
executor. Snapshots coming from the container runtime are read-only; the
engine never mutates them.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, List, Any


class UpdateType(str, Enum):
    """Where an update candidate was detected."""
    REGISTRY = "registry"     # Registry has a newer digest than the local image
    CONTAINER = "container"   # Local tag moved, container still runs the old image


class UpdateStatus(str, Enum):
    """States of an UpdateRecord."""
    PENDING = "pending"
    PULLED = "pulled"
    RECREATING = "recreating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UpdateStatus.COMPLETED, UpdateStatus.FAILED)


class CredentialStrategy(str, Enum):
    """How registry credentials are looked up for a target."""
    NONE = "none"
    DOCKER_HUB = "docker_hub"


@dataclass(frozen=True)
class LocalImage:
    """Image snapshot from the container runtime."""
    repository: str
    tag: str
    id: str
    repo_digests: List[str] = field(default_factory=list)  # ["nginx@sha256:abc..."]
    size_bytes: int = 0
    labels: Dict[str, str] = field(default_factory=dict)
    created_at: Optional[str] = None

    @property
    def key(self) -> str:
        return make_image_key(self.repository, self.tag)

    @property
    def is_tagged(self) -> bool:
        return bool(self.repository) and bool(self.tag) and '<none>' not in (self.repository, self.tag)


@dataclass(frozen=True)
class LocalContainer:
    """Container snapshot from the container runtime."""
    id: str
    name: str
    bound_image_ref: str              # What the runtime lists now (bare id once the tag moved)
    bound_image_id: str
    application_name: Optional[str] = None  # Compose project
    service_name: Optional[str] = None      # Compose service
    running: bool = False
    creation_ref: Optional[str] = None      # Config.Image - reference used at creation


@dataclass(frozen=True)
class RegistryTarget:
    """Where and how to query a registry for one repository."""
    base_url: str
    auth_token_url: Optional[str]
    auth_service: Optional[str]
    image_path: str
    original_host: str
    credential_strategy: CredentialStrategy = CredentialStrategy.NONE

    @property
    def supports_token_auth(self) -> bool:
        return self.auth_token_url is not None


@dataclass(frozen=True)
class ManifestResolution:
    """Outcome of interpreting a manifest or manifest list."""
    is_multi_arch: bool
    manifest_digest: str                    # Always the digest of the original request
    platform_digest: Optional[str] = None   # Sub-manifest digest (multi-arch only)
    config_digest: Optional[str] = None     # Known directly for single-arch manifests


@dataclass
class RemoteManifestInfo:
    """What the registry currently serves for a tag. Built fresh every scan."""
    manifest_digest: str
    platform_digest: Optional[str] = None
    config_digest: Optional[str] = None
    version: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class UpdateCandidate:
    """An image (or container) that can be updated."""
    repository: str
    tag: str
    current_digest: str
    latest_digest: str
    update_type: UpdateType = UpdateType.REGISTRY
    size: Optional[int] = None
    current_version: Optional[str] = None
    new_version: Optional[str] = None
    current_created: Optional[str] = None
    new_created: Optional[str] = None
    container_id: Optional[str] = None
    container_name: Optional[str] = None

    @property
    def key(self) -> str:
        return make_image_key(self.repository, self.tag)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['update_type'] = self.update_type.value
        return data


@dataclass
class RestartedContainer:
    """Outcome for one container touched by an update."""
    id: str
    name: str
    type: str                          # "stack" or "container"
    application: Optional[str] = None
    error: Optional[str] = None


@dataclass
class UpdateRecord:
    """
    Execution record for one candidate.

    Mutated through the state machine while the update runs, then appended
    to UpdateHistory once terminal and never touched again.
    """
    image: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    status: UpdateStatus = UpdateStatus.PENDING
    restarted_containers: List[RestartedContainer] = field(default_factory=list)
    affected_containers: int = 0
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UpdateRecord':
        return cls(
            image=data['image'],
            timestamp=data.get('timestamp') or datetime.now(timezone.utc).isoformat(),
            status=UpdateStatus(data.get('status', UpdateStatus.FAILED.value)),
            restarted_containers=[
                RestartedContainer(**c) for c in data.get('restarted_containers', [])
            ],
            affected_containers=data.get('affected_containers', 0),
            error=data.get('error'),
            warnings=list(data.get('warnings', [])),
        )


@dataclass
class PullProgress:
    """Aggregated progress of an image pull."""
    overall_percent: int = 0
    layers_total: int = 0
    layers_complete: int = 0
    downloading: int = 0
    extracting: int = 0
    bytes_downloaded: int = 0
    bytes_total: int = 0
    summary: str = ""
    digest: Optional[str] = None


@dataclass
class ProgressEvent:
    """
    One step of an update, as yielded by UpdateExecutor.execute_with_progress.

    kind: started | pull | pulled | recreating | container | completed | failed
    """
    kind: str
    image: str
    message: str = ""
    pull: Optional[PullProgress] = None
    record: Optional[UpdateRecord] = None


def make_image_key(repository: str, tag: str) -> str:
    """Candidate key: repository:tag"""
    return f"{repository}:{tag or 'latest'}"
