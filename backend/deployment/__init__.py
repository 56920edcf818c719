"""
Deployment module for DockPilot

Stack orchestration through the compose service: after an image update,
affected compose projects are recreated so their containers pick up the
new image.

Components:
    - compose_client: Unix-socket client for the compose service
"""

from .compose_client import (
    ComposeClient,
    ComposeServiceError,
    ComposeServiceUnavailable,
    RecreateResult,
)

__all__ = [
    "ComposeClient",
    "ComposeServiceError",
    "ComposeServiceUnavailable",
    "RecreateResult",
]
