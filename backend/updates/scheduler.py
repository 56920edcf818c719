"""
Update Scheduler

Cron-triggered update runs. Each enabled schedule gets one asyncio task
that sleeps until the next cron time (croniter) and then:
1. Scans for updates
2. Drops excluded images and our own image (self-update is never automatic)
3. Notifies only (checkOnly), or applies the updates (all / minor)

Schedules are stored in the config store under "updateSchedules".
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

from croniter import croniter
from pydantic import ValidationError

from config.settings import AppConfig
from models.schedule_models import Schedule
from updates.types import UpdateCandidate, UpdateRecord
from updates.version_extractor import parse_semver
from utils.image_ref import split_image_ref

logger = logging.getLogger(__name__)

SCHEDULES_KEY = "updateSchedules"


@dataclass
class ScheduleRunResult:
    """Outcome of one schedule tick."""
    schedule_id: Optional[str]
    candidates: List[UpdateCandidate] = field(default_factory=list)
    records: List[UpdateRecord] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    error: Optional[str] = None


def is_major_bump(candidate: UpdateCandidate) -> bool:
    """True only when both versions are semver and the major differs."""
    current = parse_semver(candidate.current_version)
    new = parse_semver(candidate.new_version)
    if current is None or new is None:
        return False
    return current[0] != new[0]


def next_run_time(cron_expression: str, now: Optional[datetime] = None) -> datetime:
    return croniter(cron_expression, now or datetime.now()).get_next(datetime)


class Scheduler:
    """
    Runs update schedules.

    Args:
        scanner: UpdateScanner
        executor: UpdateExecutor
        config_store: ConfigStore holding the schedules
        notifier: Notifier for checkOnly runs (optional)
        self_image: our own image reference (default DOCKPILOT_SELF_IMAGE)
    """

    def __init__(self, scanner, executor, config_store, notifier=None, self_image: Optional[str] = None):
        self.scanner = scanner
        self.executor = executor
        self.config_store = config_store
        self.notifier = notifier
        self.self_image = self_image if self_image is not None else AppConfig.SELF_IMAGE
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running = False

    # Schedule management

    def get_schedules(self) -> List[Schedule]:
        stored = self.config_store.get(SCHEDULES_KEY, []) or []
        schedules = []
        for item in stored:
            try:
                schedules.append(Schedule.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Ignoring invalid stored schedule {item.get('id') if isinstance(item, dict) else item}: {e}")
        return schedules

    def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        for schedule in self.get_schedules():
            if schedule.id == schedule_id:
                return schedule
        return None

    def _store(self, schedules: List[Schedule]):
        self.config_store.set(SCHEDULES_KEY, [s.to_store() for s in schedules])

    def _new_id(self, existing: List[Schedule]) -> str:
        taken = {s.id for s in existing}
        stamp = int(time.time() * 1000)
        while f"schedule_{stamp}" in taken:
            stamp += 1
        return f"schedule_{stamp}"

    def save_schedule(self, schedule: Union[Schedule, dict]) -> Schedule:
        """
        Create or replace a schedule and (re)arm its task.

        Raises:
            pydantic.ValidationError: invalid schedule data
        """
        if not isinstance(schedule, Schedule):
            schedule = Schedule.model_validate(schedule)

        schedules = self.get_schedules()
        if not schedule.id:
            schedule = schedule.model_copy(update={"id": self._new_id(schedules)})

        for index, existing in enumerate(schedules):
            if existing.id == schedule.id:
                schedules[index] = schedule
                break
        else:
            schedules.append(schedule)

        self._store(schedules)
        logger.info(f"Saved update schedule '{schedule.name}' ({schedule.id}, {schedule.cron_expression})")

        if self._running:
            self._arm(schedule)
        return schedule

    def delete_schedule(self, schedule_id: str) -> bool:
        schedules = self.get_schedules()
        remaining = [s for s in schedules if s.id != schedule_id]
        if len(remaining) == len(schedules):
            return False
        self._store(remaining)
        self._disarm(schedule_id)
        logger.info(f"Deleted update schedule {schedule_id}")
        return True

    # Clock

    async def start(self):
        """Arm every enabled schedule."""
        self._running = True
        for schedule in self.get_schedules():
            self._arm(schedule)
        logger.info(f"Update scheduler started ({len(self._tasks)} active schedule(s))")

    async def stop(self):
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Update scheduler stopped")

    def _arm(self, schedule: Schedule):
        self._disarm(schedule.id)
        if not schedule.enabled:
            return
        self._tasks[schedule.id] = asyncio.create_task(
            self._run_loop(schedule),
            name=f"update-schedule-{schedule.id}"
        )

    def _disarm(self, schedule_id: str):
        task = self._tasks.pop(schedule_id, None)
        if task is not None:
            task.cancel()

    async def _run_loop(self, schedule: Schedule):
        while True:
            next_run = next_run_time(schedule.cron_expression)
            wait_seconds = max((next_run - datetime.now()).total_seconds(), 0)
            logger.info(f"Schedule '{schedule.name}' next runs at {next_run.strftime('%Y-%m-%d %H:%M:%S')}")
            await asyncio.sleep(wait_seconds)
            await self.run_schedule(schedule)

    # One tick

    def _is_self_image(self, candidate: UpdateCandidate) -> bool:
        if not self.self_image:
            return False
        self_repository, _ = split_image_ref(self.self_image)
        return candidate.repository.lower() == self_repository.lower()

    def filter_candidates(self, candidates: List[UpdateCandidate], schedule: Schedule) -> List[UpdateCandidate]:
        """Apply exclusions, self-image protection and the schedule mode."""
        excluded = set(schedule.excluded_images)
        kept = []
        for candidate in candidates:
            if candidate.key in excluded:
                logger.debug(f"Schedule '{schedule.name}': {candidate.key} is excluded")
                continue
            if self._is_self_image(candidate):
                logger.debug(f"Schedule '{schedule.name}': skipping own image {candidate.key}")
                continue
            if schedule.mode == "minor" and is_major_bump(candidate):
                logger.info(
                    f"Schedule '{schedule.name}': skipping major update of {candidate.key} "
                    f"({candidate.current_version} → {candidate.new_version})"
                )
                continue
            kept.append(candidate)
        return kept

    async def run_schedule(self, schedule: Schedule) -> ScheduleRunResult:
        """Run one tick of schedule. Never raises."""
        result = ScheduleRunResult(schedule_id=schedule.id)
        logger.info(f"Running update schedule '{schedule.name}' (mode={schedule.mode})")

        try:
            found = await self.scanner.scan()
            candidates = self.filter_candidates(found, schedule)
            result.candidates = candidates
            result.excluded = [c.key for c in found if c not in candidates]

            if not candidates:
                logger.info(f"Schedule '{schedule.name}': no updates to apply")
                return result

            if schedule.check_only:
                if self.notifier is not None:
                    await self.notifier.notify_updates_available(candidates, schedule_name=schedule.name)
                return result

            result.records = await self.executor.execute_many(
                candidates,
                restart=schedule.restart_containers
            )

        except Exception as e:
            logger.error(f"Update schedule '{schedule.name}' failed: {e}", exc_info=True)
            result.error = str(e)

        return result
