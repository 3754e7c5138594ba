"""Open counts per path, used as a ranking signal."""

from __future__ import annotations

import logging
from typing import Dict

from deskfinder.index.storage import SQLiteFileStore

LOGGER = logging.getLogger(__name__)


class UsageCounter:
    """Persistent ``path -> open count`` map backed by the store."""

    def __init__(self, store: SQLiteFileStore) -> None:
        self.store = store

    def increment(self, path: str) -> None:
        self.store.increment_usage(path)
        LOGGER.debug("Usage recorded for %s", path)

    def snapshot(self) -> Dict[str, int]:
        return self.store.usage_counts()
