"""Map note titles onto collision-free vault paths."""

from __future__ import annotations

import logging
import re
from typing import Protocol

from .models import FOLDER_SEPARATE, FeedConfig, GlobalConfig
from .vault import normalize_path

logger = logging.getLogger(__name__)

NOTE_EXTENSION = ".md"
EMPTY_STEM = "Untitled"


class NoteStore(Protocol):
    def exists(self, path: str) -> bool: ...

    def create_folder(self, path: str) -> None: ...

    def create_file(self, path: str, content: str) -> None: ...


def sanitize_filename(title: str) -> str:
    """Reduce a title to a filename stem of letters, digits, ``-``, ``_`` and hyphenated spaces."""
    stem = re.sub(r"[^A-Za-z0-9\-_ ]", "", title)
    stem = re.sub(r"\s+", "-", stem)
    return stem or EMPTY_STEM


def resolve_target_folder(config: GlobalConfig, feed: FeedConfig) -> str:
    if config.folder_structure == FOLDER_SEPARATE:
        return feed.folder or feed.name
    return config.shared_folder


def resolve_note_path(title: str, folder: str, store: NoteStore) -> str:
    """Return an unused path for a note, creating the folder when missing.

    Not safe under concurrent writers to the same folder; callers process
    notes one at a time.
    """
    folder_path = normalize_path(folder)
    if not store.exists(folder_path):
        logger.info("Creating folder %s", folder_path)
        store.create_folder(folder_path)

    stem = sanitize_filename(title)
    candidate = normalize_path(f"{folder_path}/{stem}{NOTE_EXTENSION}")
    counter = 1
    while store.exists(candidate):
        candidate = normalize_path(f"{folder_path}/{stem}-{counter}{NOTE_EXTENSION}")
        counter += 1
    return candidate
