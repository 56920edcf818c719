"""
Tests for the Docker-backed container runtime.

The Docker SDK client is a MagicMock; only the low-level API surface the
runtime touches is configured.
"""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest
from docker.errors import NotFound

from docker_monitor.container_runtime import DockerRuntime, images_from_inspect

OLD_ID = "sha256:" + "1" * 64
NEW_ID = "sha256:" + "2" * 64


@pytest.fixture
def docker_client():
    return MagicMock()


@pytest.fixture
def runtime(docker_client):
    return DockerRuntime(client=docker_client)


@pytest.mark.unit
class TestImagesFromInspect:

    def test_one_image_per_tag_with_matching_digests(self):
        attrs = {
            "Id": OLD_ID,
            "RepoTags": ["nginx:latest", "registry.example.com/nginx:1.25", "<none>:<none>"],
            "RepoDigests": [
                "nginx@sha256:aaa",
                "registry.example.com/nginx@sha256:bbb",
            ],
            "Size": 2048,
            "Config": {"Labels": {"org.opencontainers.image.version": "1.25.0"}},
            "Created": "2024-01-01T00:00:00Z",
        }

        images = images_from_inspect(attrs)

        assert [(i.repository, i.tag) for i in images] == [
            ("nginx", "latest"),
            ("registry.example.com/nginx", "1.25"),
        ]
        assert images[0].repo_digests == ["nginx@sha256:aaa"]
        assert images[1].repo_digests == ["registry.example.com/nginx@sha256:bbb"]
        assert images[0].labels["org.opencontainers.image.version"] == "1.25.0"
        assert images[0].size_bytes == 2048

    def test_dangling_image(self):
        assert images_from_inspect({"Id": OLD_ID, "RepoTags": None}) == []


@pytest.mark.unit
class TestListing:

    @pytest.mark.asyncio
    async def test_list_images(self, runtime, docker_client):
        docker_client.api.images.return_value = [{
            "Id": OLD_ID,
            "RepoTags": ["nginx:latest"],
            "RepoDigests": ["nginx@sha256:aaa"],
            "Size": 10,
            "Labels": {},
            "Created": 1704067200,
        }]

        images = await runtime.list_images()

        assert len(images) == 1
        assert images[0].created_at.startswith("2024-01-01T00:00:00")
        docker_client.api.inspect_image.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_images_inspects_when_labels_missing(self, runtime, docker_client):
        docker_client.api.images.return_value = [{"Id": OLD_ID, "RepoTags": ["nginx:latest"], "Labels": None}]
        docker_client.api.inspect_image.return_value = {
            "Id": OLD_ID,
            "RepoTags": ["nginx:latest"],
            "Config": {"Labels": {"a": "b"}},
        }

        images = await runtime.list_images()

        assert images[0].labels == {"a": "b"}

    @pytest.mark.asyncio
    async def test_list_containers(self, runtime, docker_client):
        docker_client.api.containers.return_value = [
            {
                "Id": "c1" * 32,
                "Names": ["/web-frontend-1"],
                "Image": "nginx:latest",
                "ImageID": NEW_ID,
                "State": "running",
                "Labels": {
                    "com.docker.compose.project": "web",
                    "com.docker.compose.service": "frontend",
                },
            },
            {
                "Id": "c2" * 32,
                "Names": ["/old"],
                "Image": OLD_ID,
                "ImageID": OLD_ID,
                "State": "exited",
                "Labels": {},
            },
        ]
        docker_client.api.inspect_container.return_value = {"Config": {"Image": "nginx:latest"}}

        containers = await runtime.list_containers()

        docker_client.api.containers.assert_called_once_with(all=True)
        web, old = containers
        assert web.name == "web-frontend-1"
        assert web.application_name == "web"
        assert web.service_name == "frontend"
        assert web.running is True
        assert web.creation_ref is None
        assert old.creation_ref == "nginx:latest"
        assert old.running is False
        docker_client.api.inspect_container.assert_called_once_with("c2" * 32)

    @pytest.mark.asyncio
    async def test_resolve_image_id(self, runtime, docker_client):
        docker_client.api.inspect_image.return_value = {"Id": NEW_ID}
        assert await runtime.resolve_image_id("nginx:latest") == NEW_ID

        docker_client.api.inspect_image.side_effect = NotFound("no such image")
        assert await runtime.resolve_image_id("nginx:gone") is None


@pytest.mark.unit
class TestPullAndRestart:

    @pytest.mark.asyncio
    async def test_pull_streams_events(self, runtime, docker_client):
        events = [
            {"status": "Pulling from library/nginx", "id": "latest"},
            {"status": "Digest: sha256:abc"},
        ]
        docker_client.api.pull.return_value = iter(events)

        received = [e async for e in runtime.pull_image("nginx", "latest")]

        assert received == events
        docker_client.api.pull.assert_called_once_with("nginx", tag="latest", stream=True, decode=True)

    @pytest.mark.asyncio
    async def test_pull_error_propagates(self, runtime, docker_client):
        docker_client.api.pull.side_effect = NotFound("pull access denied")

        with pytest.raises(NotFound):
            async for _ in runtime.pull_image("private/app", "latest"):
                pass

    @pytest.mark.asyncio
    async def test_closing_stream_early_stops_worker(self, runtime, docker_client):
        released = threading.Event()
        finished = threading.Event()
        produced = []

        def slow_pull(*args, **kwargs):
            try:
                yield {"status": "Pulling fs layer", "id": "l1"}
                released.wait(timeout=5)
                produced.append("second")
                yield {"status": "Downloading", "id": "l1"}
                produced.append("third")
                yield {"status": "Downloading", "id": "l1"}
            finally:
                finished.set()

        docker_client.api.pull.side_effect = slow_pull

        stream = runtime.pull_image("nginx", "latest")
        first = await stream.__anext__()
        await stream.aclose()
        released.set()

        assert await asyncio.to_thread(finished.wait, 5) is True
        assert first["status"] == "Pulling fs layer"
        assert produced == ["second"]

    @pytest.mark.asyncio
    async def test_restart(self, runtime, docker_client):
        await runtime.restart_container("c1")

        docker_client.api.restart.assert_called_once_with("c1")
