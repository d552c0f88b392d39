"""Local-directory filesystem used as the note destination."""

from __future__ import annotations

import logging
import re
import unicodedata
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class FilesystemError(Exception):
    """Raised when a folder or note cannot be created."""


def normalize_path(path: str) -> str:
    """Return a vault-relative path with forward slashes and no stray separators."""
    path = unicodedata.normalize("NFC", path.replace("\\", "/"))
    path = re.sub(r"/+", "/", path)
    path = path.replace("\u00a0", " ").strip()
    path = path.strip("/")
    return path or "/"


class LocalVault:
    """Notes are stored as files under a root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        relative = normalize_path(path)
        if relative == "/":
            return self.root
        return self.root / relative

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def create_folder(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Could not create folder {path}: {exc}") from exc
        logger.debug("Created folder %s", target)

    def create_file(self, path: str, content: str) -> None:
        """Create a new note; an existing file is never overwritten."""
        target = self._resolve(path)
        try:
            with target.open("x", encoding="utf-8") as handle:
                handle.write(content)
        except FileExistsError as exc:
            raise FilesystemError(f"File already exists: {path}") from exc
        except OSError as exc:
            raise FilesystemError(f"Could not write {path}: {exc}") from exc
        logger.debug("Wrote note %s", target)
