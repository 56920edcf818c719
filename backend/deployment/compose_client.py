"""
Python client for the compose service.

Talks to the compose service over its Unix socket. The update engine uses
it as its stack orchestrator: after an image update, each affected compose
project is recreated with a single request, optionally scoped to one
service.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from config.settings import AppConfig
from updates.collaborators import StackOrchestrator

logger = logging.getLogger(__name__)

# Compose recreates can pull and wait on healthchecks
DEFAULT_RECREATE_TIMEOUT = 600


class ComposeServiceError(Exception):
    """Error from the compose service."""

    def __init__(
        self,
        message: str,
        category: str = "internal",
        partial_success: bool = False,
        services: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.partial_success = partial_success
        self.services = services or {}
        self.retryable = retryable


class ComposeServiceUnavailable(Exception):
    """Compose service is not available."""

    pass


@dataclass
class RecreateResult:
    """Result from a recreate request."""

    project_name: str
    success: bool
    partial_success: bool = False
    services: Optional[Dict[str, Any]] = None
    failed_services: Optional[List[str]] = None
    error: Optional[str] = None
    error_category: Optional[str] = None


class ComposeClient(StackOrchestrator):
    """
    Client for the compose service.

    Args:
        socket_path: Path to the Unix socket (default: DOCKPILOT_COMPOSE_SOCKET)
        timeout: Seconds a recreate may take
        transport: httpx transport override (tests)
    """

    def __init__(
        self,
        socket_path: Optional[str] = None,
        timeout: int = DEFAULT_RECREATE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.socket_path = socket_path or AppConfig.COMPOSE_SOCKET_PATH
        self.timeout = timeout
        self._transport = transport

    def _make_transport(self) -> httpx.AsyncBaseTransport:
        if self._transport is not None:
            return self._transport
        return httpx.AsyncHTTPTransport(uds=self.socket_path)

    async def recreate(self, application_name: str, service_name: Optional[str] = None) -> None:
        """
        Recreate a compose project, or one of its services.

        Raises:
            ComposeServiceUnavailable: socket not reachable
            ComposeServiceError: the service reported a failure
        """
        result = await self.recreate_project(application_name, service_name)
        if not result.success:
            raise ComposeServiceError(
                result.error or f"Recreate of {application_name} failed",
                category=result.error_category or "internal",
                partial_success=result.partial_success,
                services=result.services,
            )

    async def recreate_project(self, project_name: str, service_name: Optional[str] = None) -> RecreateResult:
        request = {
            "project_name": project_name,
            "services": [service_name] if service_name else [],
            "force_recreate": True,
            "pull_images": False,
            "timeout": self.timeout,
        }

        # HTTP timeout = operation timeout + 60s buffer
        http_timeout = self.timeout + 60

        try:
            async with httpx.AsyncClient(
                transport=self._make_transport(),
                timeout=httpx.Timeout(
                    connect=10.0,
                    read=float(http_timeout),
                    write=10.0,
                    pool=10.0,
                ),
            ) as client:
                response = await client.post(
                    "http://localhost/recreate",
                    json=request,
                )

                if response.status_code != 200:
                    raise ComposeServiceError(
                        f"Compose service error: HTTP {response.status_code}"
                    )

                data = response.json()
                return self._parse_result(project_name, data)

        except httpx.ConnectError:
            raise ComposeServiceUnavailable(
                f"Cannot connect to compose service at {self.socket_path}"
            )
        except httpx.TimeoutException:
            raise ComposeServiceError(
                f"Recreate of {project_name} timed out after {http_timeout} seconds",
                category="timeout",
                retryable=True,
            )

    def _parse_result(self, project_name: str, data: Dict[str, Any]) -> RecreateResult:
        """Parse JSON response into RecreateResult."""
        error_msg = None
        error_category = None

        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                error_msg = error.get("message", str(error))
                error_category = error.get("category")
            else:
                error_msg = str(error)

        return RecreateResult(
            project_name=data.get("project_name", project_name),
            success=data.get("success", False),
            partial_success=data.get("partial_success", False),
            services=data.get("services"),
            failed_services=data.get("failed_services"),
            error=error_msg,
            error_category=error_category,
        )
