"""
Update Engine

Wires scanner, executor, history and scheduler around injected
collaborators. There are no module-level singletons: build one engine per
process with create_engine(), or construct UpdateEngine directly with fakes.
"""

import logging
from typing import AsyncIterator, List, Optional

from updates.collaborators import LoggingNotifier
from updates.registry_adapter import RegistryAdapter
from updates.scheduler import Scheduler
from updates.types import ProgressEvent, UpdateCandidate, UpdateRecord
from updates.update_checker import UpdateScanner
from updates.update_executor import UpdateExecutor
from updates.update_history import DEFAULT_LIST_LIMIT, UpdateHistory

logger = logging.getLogger(__name__)


class UpdateEngine:
    """
    Image update detection and orchestration.

    Args:
        runtime: ContainerRuntime
        orchestrator: StackOrchestrator
        config_store: ConfigStore for schedules and history
        registry_adapter: remote inspection (default RegistryAdapter.from_settings(settings))
        notifier: Notifier (default LoggingNotifier())
        settings: settings class (default config.settings.AppConfig)
    """

    def __init__(
        self,
        runtime,
        orchestrator,
        config_store,
        registry_adapter=None,
        notifier=None,
        settings=None,
    ):
        if settings is None:
            from config.settings import AppConfig
            settings = AppConfig

        self.settings = settings
        self.runtime = runtime
        self.orchestrator = orchestrator
        self.config_store = config_store
        self.registry_adapter = registry_adapter or RegistryAdapter.from_settings(settings)
        self.notifier = notifier or LoggingNotifier()

        self.update_history = UpdateHistory(config_store, capacity=settings.HISTORY_LIMIT)
        self.scanner = UpdateScanner(
            runtime,
            self.registry_adapter,
            concurrency=settings.SCAN_CONCURRENCY,
        )
        self.executor = UpdateExecutor(
            runtime,
            orchestrator,
            history=self.update_history,
            notifier=self.notifier,
            pull_timeout=settings.PULL_TIMEOUT,
        )
        self.scheduler = Scheduler(
            self.scanner,
            self.executor,
            config_store,
            notifier=self.notifier,
            self_image=settings.SELF_IMAGE,
        )

    async def scan(self) -> List[UpdateCandidate]:
        return await self.scanner.scan()

    async def execute(self, candidate: UpdateCandidate, restart: bool = False) -> UpdateRecord:
        return await self.executor.execute(candidate, restart=restart)

    def execute_with_progress(self, candidate: UpdateCandidate, restart: bool = False) -> AsyncIterator[ProgressEvent]:
        return self.executor.execute_with_progress(candidate, restart=restart)

    async def execute_many(self, candidates: List[UpdateCandidate], restart: bool = False) -> List[UpdateRecord]:
        return await self.executor.execute_many(candidates, restart=restart)

    def history(self, limit: Optional[int] = DEFAULT_LIST_LIMIT) -> List[UpdateRecord]:
        return self.update_history.list(limit)

    def clear_history(self):
        self.update_history.clear()

    async def start(self):
        await self.scheduler.start()

    async def close(self):
        """Stop schedules and release HTTP sessions."""
        await self.scheduler.stop()
        close = getattr(self.registry_adapter, "close", None)
        if close is not None:
            await close()


def create_engine(settings=None, configure_logging: bool = True) -> UpdateEngine:
    """
    Build an engine with the production collaborators:
    Docker daemon, compose service socket and the SQLite config store.
    """
    from config.settings import AppConfig, setup_logging
    from database import DatabaseManager, SQLiteConfigStore
    from deployment.compose_client import ComposeClient
    from docker_monitor.container_runtime import DockerRuntime

    settings = settings or AppConfig
    settings.validate()
    if configure_logging:
        setup_logging(settings.LOG_LEVEL)

    db = DatabaseManager(settings.DATABASE_PATH)
    engine = UpdateEngine(
        runtime=DockerRuntime(),
        orchestrator=ComposeClient(socket_path=settings.COMPOSE_SOCKET_PATH),
        config_store=SQLiteConfigStore(db),
        settings=settings,
    )
    logger.info(f"Update engine ready (database {settings.DATABASE_PATH})")
    return engine
