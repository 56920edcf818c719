"""
Update History

Bounded, newest-first log of terminal UpdateRecords. Optionally persisted
in the config store under "updateHistory".
"""

import logging
from typing import List, Optional

from config.settings import AppConfig
from updates.types import UpdateRecord

logger = logging.getLogger(__name__)

HISTORY_KEY = "updateHistory"
DEFAULT_LIST_LIMIT = 50


class UpdateHistory:
    """
    Newest-first update records, evicting the oldest beyond capacity.

    Args:
        config_store: ConfigStore to load from and save to (optional)
        capacity: max records kept (default DOCKPILOT_HISTORY_LIMIT)
    """

    def __init__(self, config_store=None, capacity: Optional[int] = None):
        self.config_store = config_store
        self.capacity = capacity or AppConfig.HISTORY_LIMIT
        self._records: List[UpdateRecord] = []
        self._load()

    def _load(self):
        if self.config_store is None:
            return
        try:
            stored = self.config_store.get(HISTORY_KEY, []) or []
        except Exception as e:
            logger.error(f"Failed to load update history: {e}")
            return

        records = []
        for item in stored:
            try:
                records.append(UpdateRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping unreadable update history entry: {e}")
        self._records = records[:self.capacity]
        logger.debug(f"Loaded {len(self._records)} update history record(s)")

    def _save(self):
        if self.config_store is None:
            return
        try:
            self.config_store.set(HISTORY_KEY, [r.to_dict() for r in self._records])
        except Exception as e:
            logger.error(f"Failed to save update history: {e}")

    def add(self, record: UpdateRecord):
        """Prepend a terminal record."""
        self._records.insert(0, record)
        del self._records[self.capacity:]
        self._save()

    def list(self, limit: Optional[int] = DEFAULT_LIST_LIMIT) -> List[UpdateRecord]:
        """Newest first, at most limit records (all of them when limit is None)."""
        if limit is None:
            return list(self._records)
        return list(self._records[:max(limit, 0)])

    def clear(self):
        self._records = []
        self._save()
        logger.info("Update history cleared")

    def __len__(self):
        return len(self._records)
