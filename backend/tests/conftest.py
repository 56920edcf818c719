"""
Shared pytest fixtures for DockPilot tests.

Fixtures provided:
- fake_runtime: in-memory ContainerRuntime (images, containers, pull streams)
- fake_orchestrator: StackOrchestrator recording recreate calls
- memory_store: dict-backed ConfigStore
- recording_notifier: Notifier recording every notification
- make_image / make_container: snapshot builders
- test_db: temporary SQLite DatabaseManager

Nothing here touches Docker, the network or the compose service.
"""

import os
import sys
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from database import DatabaseManager
from updates.collaborators import ConfigStore, ContainerRuntime, Notifier, StackOrchestrator
from updates.types import LocalContainer, LocalImage


class FakeRuntime(ContainerRuntime):
    """ContainerRuntime over plain lists."""

    def __init__(self):
        self.images: List[LocalImage] = []
        self.containers: List[LocalContainer] = []
        self.image_ids: Dict[str, str] = {}        # "repo:tag" → image id
        self.pull_events: List[dict] = [
            {'status': 'Pulling from library/nginx', 'id': 'latest'},
            {'status': 'Downloading', 'id': 'layer1', 'progressDetail': {'current': 50, 'total': 100}},
            {'status': 'Pull complete', 'id': 'layer1'},
            {'status': 'Digest: sha256:bbbbbbbbbbbbbbbb'},
        ]
        self.pull_error: Optional[Exception] = None
        self.pulled: List[str] = []
        self.restarted: List[str] = []
        self.restart_errors: Dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None

    async def list_images(self):
        if self.list_error:
            raise self.list_error
        return list(self.images)

    async def list_containers(self):
        if self.list_error:
            raise self.list_error
        return list(self.containers)

    async def resolve_image_id(self, image_ref):
        return self.image_ids.get(image_ref)

    async def pull_image(self, repository, tag):
        self.pulled.append(f"{repository}:{tag}")
        for event in self.pull_events:
            yield event
        if self.pull_error:
            raise self.pull_error

    async def restart_container(self, container_id):
        if container_id in self.restart_errors:
            raise self.restart_errors[container_id]
        self.restarted.append(container_id)


class FakeOrchestrator(StackOrchestrator):
    """Records recreate calls; applications in `failing` raise."""

    def __init__(self):
        self.calls = []
        self.failing: Dict[str, Exception] = {}

    async def recreate(self, application_name, service_name=None):
        self.calls.append((application_name, service_name))
        if application_name in self.failing:
            raise self.failing[application_name]


class MemoryConfigStore(ConfigStore):
    def __init__(self, data=None):
        self.data = dict(data or {})

    def get(self, key, default=None):
        return self.data.get(key, default)

    def set(self, key, value):
        self.data[key] = value


class RecordingNotifier(Notifier):
    def __init__(self):
        self.available = []
        self.succeeded = []
        self.failed = []

    async def notify_updates_available(self, candidates, schedule_name=None):
        self.available.append((list(candidates), schedule_name))

    async def notify_update_succeeded(self, record):
        self.succeeded.append(record)

    async def notify_update_failed(self, record):
        self.failed.append(record)


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def fake_orchestrator():
    return FakeOrchestrator()


@pytest.fixture
def memory_store():
    return MemoryConfigStore()


@pytest.fixture
def recording_notifier():
    return RecordingNotifier()


@pytest.fixture
def make_image():
    """Build a LocalImage with sensible defaults."""
    def _make(repository='nginx', tag='latest', digest='aaaaaaaaaaaaaaaa', **kwargs):
        defaults = {
            'id': f"sha256:{'1' * 64}",
            'repo_digests': [f"{repository}@sha256:{digest}"] if digest else [],
            'size_bytes': 1024,
            'labels': {},
            'created_at': '2024-01-01T00:00:00Z',
        }
        defaults.update(kwargs)
        return LocalImage(repository=repository, tag=tag, **defaults)
    return _make


@pytest.fixture
def make_container():
    """Build a LocalContainer with sensible defaults."""
    def _make(container_id, name=None, image='nginx:latest', image_id=f"sha256:{'1' * 64}", **kwargs):
        defaults = {
            'application_name': None,
            'service_name': None,
            'running': True,
            'creation_ref': None,
        }
        defaults.update(kwargs)
        return LocalContainer(
            id=container_id,
            name=name or container_id,
            bound_image_ref=image,
            bound_image_id=image_id,
            **defaults,
        )
    return _make


@pytest.fixture(scope="function")
def test_db(tmp_path):
    """
    Temporary SQLite database for testing.

    Each test gets its own file, so tests don't affect each other.
    """
    return DatabaseManager(str(tmp_path / "dockpilot.db"))
