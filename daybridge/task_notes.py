from __future__ import annotations

import re


START_MARKER_PATTERN = re.compile(r"^\[(\d{1,2}:\d{2})\]\s*(?:\n|$)")


def compose_notes(start_marker: str | None, notes: str | None) -> str | None:
    """Prefix task notes with the bracketed start time of the parent entry."""
    if not start_marker:
        return notes
    if notes:
        return f"[{start_marker}]\n{notes}"
    return f"[{start_marker}]"


def split_notes(text: str | None) -> tuple[str, str]:
    if not text:
        return "", ""
    match = START_MARKER_PATTERN.match(text)
    if not match:
        return "", text
    return match.group(1), text[match.end() :]
