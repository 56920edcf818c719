"""
Update Schedule Models

Pydantic model for scheduled update runs. Schedules are persisted in the
config store under "updateSchedules" using the camelCase field names the
store has always used (cronExpression, excludedImages, ...), so every field
carries an alias and accepts either spelling on input.
"""

import re
from typing import List, Optional

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator


SCHEDULE_MODES = ('all', 'minor', 'checkOnly')


def _validate_cron(v: Optional[str]) -> str:
    """Validate cron expression (5 fields)."""
    if v is None or not v.strip():
        raise ValueError('Cron expression cannot be empty')
    v = v.strip()
    parts = v.split()
    if len(parts) != 5:
        raise ValueError('Cron expression must have 5 fields (minute hour day month weekday)')
    if not croniter.is_valid(v):
        raise ValueError(f'Invalid cron expression: {v}')
    return v


class Schedule(BaseModel):
    """A cron-triggered update run."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    cron_expression: str = Field(..., alias='cronExpression', max_length=100)
    enabled: bool = True
    excluded_images: List[str] = Field(default_factory=list, alias='excludedImages')
    mode: str = Field(default='all', alias='updateType')
    restart_containers: bool = Field(default=False, alias='restartContainers')

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Name cannot be empty')
        return re.sub(r'[<>"\']', '', v)

    @field_validator('cron_expression')
    @classmethod
    def validate_cron(cls, v: str) -> str:
        return _validate_cron(v)

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in SCHEDULE_MODES:
            raise ValueError(f"Mode must be one of {', '.join(SCHEDULE_MODES)}")
        return v

    @property
    def check_only(self) -> bool:
        return self.mode == 'checkOnly'

    def to_store(self) -> dict:
        """Serialize with the config store's field names."""
        return self.model_dump(by_alias=True)
