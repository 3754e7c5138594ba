"""Per-extension icon cache population."""

from __future__ import annotations

import logging
from typing import Callable

from deskfinder.index.storage import SQLiteFileStore

LOGGER = logging.getLogger(__name__)

IconExtractor = Callable[[str], str]


class IconScanner:
    """Looks up one icon per file extension not cached yet.

    ``extract_icon(path)`` returns an encoded image or ``""``; it is called
    with one sample file of each extension.
    """

    def __init__(self, store: SQLiteFileStore, extract_icon: IconExtractor) -> None:
        self.store = store
        self.extract_icon = extract_icon

    def run(self) -> int:
        missing = self.store.extensions_missing_icons()
        LOGGER.info("Looking up icons for %d extensions", len(missing))
        cached = 0
        for extension, sample in missing.items():
            try:
                icon = self.extract_icon(sample)
            except Exception as exc:
                LOGGER.warning("Icon lookup failed for %s (%s): %s", extension, sample, exc)
                continue
            if not icon:
                continue
            self.store.set_extension_icon(extension, icon)
            cached += 1
        LOGGER.info("Cached %d extension icons", cached)
        return cached
