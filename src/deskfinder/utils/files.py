"""Utility helpers for working with files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FileEntry:
    path: str
    name: str
    modified_time: int

    @property
    def extension(self) -> str:
        return file_extension(self.name)


def file_extension(name: str) -> str:
    """Return the extension of ``name`` including the dot, as written on disk."""
    return os.path.splitext(name)[1]


def walk_files(
    root: str | Path, prune: Callable[[str, str], bool] | None = None
) -> Iterator[FileEntry]:
    """Yield every regular file under ``root`` depth-first.

    ``prune(dir_path, dir_name)`` returning true skips a directory and all of
    its descendants. Entries that cannot be read (permission denied, removed
    during the walk) are skipped.
    """
    stack = [os.fspath(root)]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            LOGGER.debug("Cannot list %s: %s", current, exc)
            continue

        subdirs: list[str] = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if prune is None or not prune(entry.path, entry.name):
                        subdirs.append(entry.path)
                    continue
                if not entry.is_file(follow_symlinks=False):
                    continue
                stat = entry.stat(follow_symlinks=False)
            except OSError as exc:
                LOGGER.debug("Skipping %s: %s", entry.path, exc)
                continue
            yield FileEntry(entry.path, entry.name, int(stat.st_mtime))

        # Reversed so the alphabetically first directory is visited next
        stack.extend(reversed(subdirs))
