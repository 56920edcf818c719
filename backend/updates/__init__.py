"""
Updates Module

Image freshness detection and update orchestration.

Architecture:
- UpdateScanner: compares local images/containers with their registries
- UpdateExecutor: pulls images and recreates the containers using them
- Scheduler: cron-driven scan + notify/apply runs
- UpdateEngine: wires the above around injected collaborators
"""

from updates.engine import UpdateEngine, create_engine
from updates.update_checker import UpdateScanner
from updates.update_executor import UpdateExecutor
from updates.types import UpdateCandidate, UpdateRecord, UpdateStatus, UpdateType

__all__ = [
    'UpdateEngine',
    'create_engine',
    'UpdateScanner',
    'UpdateExecutor',
    'UpdateCandidate',
    'UpdateRecord',
    'UpdateStatus',
    'UpdateType',
]
