"""
Async wrappers for the blocking Docker SDK.

docker-py is synchronous. Every call made from the event loop goes through
async_docker_call so a slow daemon never blocks other coroutines.
"""

import asyncio
from typing import Any, Callable


async def async_docker_call(func: Callable, *args, **kwargs) -> Any:
    """
    Run a blocking Docker SDK call in a worker thread.

    Example:
        containers = await async_docker_call(client.containers.list, all=True)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
