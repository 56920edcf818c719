"""
End-to-end engine tests over in-memory collaborators.
"""

from unittest.mock import patch

import pytest

from config.settings import AppConfig
from updates import UpdateEngine, UpdateStatus, create_engine
from updates.types import RemoteManifestInfo


class StaticRegistryAdapter:
    def __init__(self, responses):
        self.responses = responses
        self.closed = False

    async def get_remote_info(self, repository, tag):
        return self.responses.get(f"{repository}:{tag}")

    async def close(self):
        self.closed = True


@pytest.fixture
def engine(fake_runtime, fake_orchestrator, memory_store, recording_notifier):
    adapter = StaticRegistryAdapter({
        "nginx:latest": RemoteManifestInfo(manifest_digest="sha256:" + "b" * 64),
    })
    return UpdateEngine(
        fake_runtime,
        fake_orchestrator,
        memory_store,
        registry_adapter=adapter,
        notifier=recording_notifier,
    )


@pytest.mark.unit
class TestUpdateEngine:

    @pytest.mark.asyncio
    async def test_scan_then_apply(self, engine, fake_runtime, fake_orchestrator, make_image, make_container):
        fake_runtime.images = [make_image("nginx", "latest", digest="a" * 64)]
        fake_runtime.containers = [make_container("a", application_name="web", service_name="web")]

        candidates = await engine.scan()
        records = await engine.execute_many(candidates, restart=True)

        assert [c.key for c in candidates] == ["nginx:latest"]
        assert records[0].status == UpdateStatus.COMPLETED
        assert fake_runtime.pulled == ["nginx:latest"]
        assert fake_orchestrator.calls == [("web", "web")]
        assert engine.history() == records

    @pytest.mark.asyncio
    async def test_history_persisted_in_store(self, engine, fake_runtime, memory_store, make_image):
        fake_runtime.images = [make_image("nginx", "latest", digest="a" * 64)]
        candidate = (await engine.scan())[0]

        await engine.execute(candidate)

        assert memory_store.data["updateHistory"][0]["image"] == "nginx:latest"

        engine.clear_history()
        assert engine.history() == []

    @pytest.mark.asyncio
    async def test_start_and_close(self, engine, memory_store):
        memory_store.data["updateSchedules"] = [
            {"id": "s1", "name": "nightly", "cronExpression": "0 4 * * *"},
        ]

        await engine.start()
        assert set(engine.scheduler._tasks) == {"s1"}

        await engine.close()
        assert engine.scheduler._tasks == {}
        assert engine.registry_adapter.closed is True


@pytest.mark.unit
def test_create_engine_wires_production_collaborators(tmp_path):
    with patch.object(AppConfig, "DATABASE_PATH", str(tmp_path / "dockpilot.db")):
        engine = create_engine(configure_logging=False)

    from database import SQLiteConfigStore
    from deployment.compose_client import ComposeClient
    from docker_monitor.container_runtime import DockerRuntime

    assert isinstance(engine.runtime, DockerRuntime)
    assert isinstance(engine.orchestrator, ComposeClient)
    assert isinstance(engine.config_store, SQLiteConfigStore)
    assert engine.config_store.get("updateSchedules", []) == []


@pytest.mark.unit
def test_default_registry_client_follows_settings(fake_runtime, fake_orchestrator, memory_store):
    class Settings(AppConfig):
        DOCKER_CONFIG_PATH = "/srv/docker/config.json"
        TOKEN_TIMEOUT = 3.0
        MANIFEST_TIMEOUT = 4.0
        BLOB_TIMEOUT = 5.0
        RELEASE_LOOKUP_TIMEOUT = 6.0

    engine = UpdateEngine(fake_runtime, fake_orchestrator, memory_store, settings=Settings)

    client = engine.registry_adapter.client
    assert client.docker_config_path == "/srv/docker/config.json"
    assert (client.token_timeout, client.manifest_timeout, client.blob_timeout) == (3.0, 4.0, 5.0)
    assert engine.registry_adapter.version_extractor.release_timeout == 6.0
