from __future__ import annotations

import errno
from pathlib import Path


def atomic_write_text(path: Path, text: str) -> None:
    """Write through a sibling ``.tmp`` file and swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    try:
        tmp_path.replace(path)
    except OSError as exc:
        # Some bind-mounted single files in containers cannot be atomically replaced.
        if exc.errno != errno.EBUSY:
            raise
        path.write_text(text, encoding="utf-8")
        if tmp_path.exists():
            tmp_path.unlink()
