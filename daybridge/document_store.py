from __future__ import annotations

import os
from pathlib import Path

from daybridge.errors import DocumentNotFoundError
from daybridge.fileio import atomic_write_text


NOTE_SUFFIX = ".md"


class DocumentStore:
    """Daily notes stored as markdown files under one vault directory."""

    def __init__(self, vault_path: str | os.PathLike[str]) -> None:
        self.vault_path = Path(vault_path).expanduser().resolve()

    def path_for(self, name: str) -> Path:
        filename = name if name.endswith(NOTE_SUFFIX) else f"{name}{NOTE_SUFFIX}"
        path = (self.vault_path / filename).resolve()
        if path != self.vault_path and self.vault_path not in path.parents:
            raise DocumentNotFoundError(f"Note is outside the vault: {name}")
        return path

    def read(self, name: str) -> str:
        path = self.path_for(name)
        if not path.is_file():
            raise DocumentNotFoundError(f"Note not found: {name}")
        return path.read_text(encoding="utf-8")

    def write(self, name: str, text: str) -> None:
        atomic_write_text(self.path_for(name), text)
