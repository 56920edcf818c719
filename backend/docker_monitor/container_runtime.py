"""
Docker Engine runtime for the update engine.

Implements the ContainerRuntime interface on top of the Docker SDK's
low-level API client. All blocking SDK calls run through async_docker_call.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import docker
from docker.errors import NotFound

from config.settings import AppConfig
from updates.collaborators import ContainerRuntime
from updates.types import LocalContainer, LocalImage
from utils.async_docker import async_docker_call
from utils.image_ref import is_bare_image_id, split_image_ref

logger = logging.getLogger(__name__)

COMPOSE_PROJECT_LABEL = 'com.docker.compose.project'
COMPOSE_SERVICE_LABEL = 'com.docker.compose.service'

_PULL_DONE = object()


def _log_worker_failure(future: asyncio.Future):
    if not future.cancelled() and future.exception() is not None:
        logger.warning(f"Image pull worker failed after the stream was closed: {future.exception()}")


def _iso_created(value) -> Optional[str]:
    """The list endpoint reports Created as a unix timestamp, inspect as ISO 8601."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    return value


def images_from_inspect(attrs: Dict[str, Any]) -> List[LocalImage]:
    """
    One LocalImage per RepoTag of an inspected image.

    RepoDigests are narrowed to the tag's repository, so an image tagged under
    two names is compared against the right registry digest for each.
    """
    repo_tags = attrs.get('RepoTags') or []
    repo_digests = attrs.get('RepoDigests') or []
    labels = (attrs.get('Config') or {}).get('Labels') or {}

    images = []
    for repo_tag in repo_tags:
        if repo_tag == '<none>:<none>':
            continue
        repository, tag = split_image_ref(repo_tag)
        images.append(LocalImage(
            repository=repository,
            tag=tag,
            id=attrs.get('Id', ''),
            repo_digests=[d for d in repo_digests if d.split('@', 1)[0] == repository],
            size_bytes=attrs.get('Size') or 0,
            labels=dict(labels),
            created_at=attrs.get('Created'),
        ))
    return images


class DockerRuntime(ContainerRuntime):
    """
    ContainerRuntime backed by a Docker daemon.

    Args:
        client: docker.DockerClient (created from DOCKER_HOST when omitted)
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.DockerClient(base_url=AppConfig.DOCKER_HOST)
        return self._client

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    async def list_images(self) -> List[LocalImage]:
        api = self.client.api
        summaries = await async_docker_call(api.images)
        images = []
        for summary in summaries:
            # The list endpoint omits Config.Labels on older daemons
            labels = summary.get('Labels')
            attrs = {
                'Id': summary.get('Id'),
                'RepoTags': summary.get('RepoTags'),
                'RepoDigests': summary.get('RepoDigests'),
                'Size': summary.get('Size'),
                'Config': {'Labels': labels},
                'Created': _iso_created(summary.get('Created')),
            }
            if labels is None and summary.get('RepoTags'):
                try:
                    attrs = await async_docker_call(api.inspect_image, summary.get('Id'))
                except NotFound:
                    continue
            images.extend(images_from_inspect(attrs))
        return images

    async def list_containers(self) -> List[LocalContainer]:
        api = self.client.api
        summaries = await async_docker_call(api.containers, all=True)
        containers = []
        for summary in summaries:
            container_id = summary.get('Id', '')
            labels = summary.get('Labels') or {}
            names = summary.get('Names') or []
            bound_ref = summary.get('Image', '')

            creation_ref = None
            if is_bare_image_id(bound_ref):
                # Tag moved on after creation: the list shows the image ID
                try:
                    inspected = await async_docker_call(api.inspect_container, container_id)
                    creation_ref = (inspected.get('Config') or {}).get('Image')
                except NotFound:
                    continue

            containers.append(LocalContainer(
                id=container_id,
                name=names[0].lstrip('/') if names else container_id[:12],
                bound_image_ref=bound_ref,
                bound_image_id=summary.get('ImageID', ''),
                application_name=labels.get(COMPOSE_PROJECT_LABEL),
                service_name=labels.get(COMPOSE_SERVICE_LABEL),
                running=summary.get('State') == 'running',
                creation_ref=creation_ref,
            ))
        return containers

    async def resolve_image_id(self, image_ref: str) -> Optional[str]:
        try:
            attrs = await async_docker_call(self.client.api.inspect_image, image_ref)
        except NotFound:
            return None
        return attrs.get('Id')

    async def pull_image(self, repository: str, tag: str) -> AsyncIterator[Dict[str, Any]]:
        """
        Pull repository:tag, yielding the daemon's decoded progress events.

        The SDK stream is consumed in a worker thread and handed over through
        an asyncio.Queue.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        api = self.client.api
        stop = threading.Event()

        def _stream():
            try:
                for line in api.pull(repository, tag=tag, stream=True, decode=True):
                    if stop.is_set():
                        break
                    loop.call_soon_threadsafe(queue.put_nowait, line)
            except Exception as e:
                loop.call_soon_threadsafe(queue.put_nowait, e)
            finally:
                loop.call_soon_threadsafe(queue.put_nowait, _PULL_DONE)

        worker = asyncio.ensure_future(async_docker_call(_stream))
        try:
            while True:
                item = await queue.get()
                if item is _PULL_DONE:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
            await worker
        finally:
            # Consumer gave up early: the thread stops at its next line
            stop.set()
            worker.add_done_callback(_log_worker_failure)

    async def restart_container(self, container_id: str) -> None:
        await async_docker_call(self.client.api.restart, container_id)
