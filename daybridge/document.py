from __future__ import annotations

import re
from datetime import date, datetime, tzinfo
from pathlib import PurePath
from typing import Iterable

from daybridge.grammar import (
    ClassifiedLine,
    LineKind,
    classify_line,
    render_checkbox,
    render_description,
    render_heading,
    render_list_item,
    render_timed,
    strip_trailing_tag,
)
from daybridge.models import DocumentConfig, EventRecord, TimedEntry, TodoItem


DATE_PREFIX_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})")
UNTITLED = "(untitled)"


def _split(text: str) -> tuple[list[str], bool]:
    if not text:
        return [], False
    trailing_newline = text.endswith("\n")
    if trailing_newline:
        text = text[:-1]
    return text.split("\n"), trailing_newline


def _join(lines: list[str], trailing_newline: bool) -> str:
    joined = "\n".join(lines)
    if trailing_newline:
        return joined + "\n"
    return joined


def _body_lines(body: str) -> list[str]:
    if not body:
        return []
    return body.split("\n")


def _heading_matches(line: ClassifiedLine, section_header: str) -> bool:
    return line.kind is LineKind.HEADING and section_header in line.title


def _find_heading(lines: list[str], section_header: str, start: int = 0) -> int | None:
    for index in range(start, len(lines)):
        if _heading_matches(classify_line(lines[index]), section_header):
            return index
    return None


def _next_heading(lines: list[str], start: int) -> int:
    for index in range(start, len(lines)):
        if classify_line(lines[index]).kind is LineKind.HEADING:
            return index
    return len(lines)


def extract_date_from_name(name: str) -> date | None:
    match = DATE_PREFIX_PATTERN.match(PurePath(name).name)
    if not match:
        return None
    try:
        return date.fromisoformat(match.group(1))
    except ValueError:
        return None


# Parsing


def parse_section(
    text: str,
    section_header: str,
    default_store_name: str | None = None,
    with_todos: bool = False,
) -> list[TimedEntry]:
    """Parse every timed line under headings containing ``section_header``.

    Each timed line owns the contiguous run of indented child lines below it.
    With ``with_todos`` checkbox children become ``TodoItem``s, otherwise they
    are kept as description text.
    """
    lines, _ = _split(text)
    entries: list[TimedEntry] = []
    in_section = False
    index = 0
    while index < len(lines):
        line = classify_line(lines[index])
        if line.kind is LineKind.HEADING:
            in_section = section_header in line.title
            index += 1
            continue
        if not in_section or line.kind is not LineKind.TIMED:
            index += 1
            continue

        entry = TimedEntry(
            start_time=line.start_time,
            end_time=line.end_time,
            title=line.title,
            store_name=line.tag or default_store_name or "",
            source_line=line.raw,
        )
        index += 1
        while index < len(lines):
            child = classify_line(lines[index])
            if child.kind is LineKind.CHECKBOX and with_todos:
                entry.todos.append(
                    TodoItem(
                        title=child.title,
                        completed=child.checked,
                        parent_start=entry.start_time,
                        parent_end=entry.end_time,
                    )
                )
            elif child.is_child:
                entry.description_lines.append(child.text)
            else:
                break
            index += 1
        entries.append(entry)
    return entries


def parse_plan(text: str, config: DocumentConfig) -> list[TimedEntry]:
    entries = parse_section(
        text,
        config.plan_section,
        default_store_name=config.plan_calendar_name,
        with_todos=True,
    )
    for entry in entries:
        # Plan lines are untagged; a stray tag is dropped rather than routed.
        entry.title = strip_trailing_tag(entry.title)
        entry.store_name = config.plan_calendar_name
    return entries


def parse_log(text: str, config: DocumentConfig) -> list[TimedEntry]:
    return parse_section(text, config.log_section)


def collect_section_todos(text: str, section_header: str) -> dict[str, bool]:
    """Map every checkbox title inside the section to its completion state."""
    lines, _ = _split(text)
    todos: dict[str, bool] = {}
    in_section = False
    for raw in lines:
        line = classify_line(raw)
        if line.kind is LineKind.HEADING:
            in_section = section_header in line.title
            continue
        if in_section and line.kind is LineKind.CHECKBOX:
            todos.setdefault(line.title, line.checked)
    return todos


def _minutes(hhmm: str) -> int:
    hours, _, minutes = hhmm.partition(":")
    return int(hours or 0) * 60 + int(minutes or 0)


def compare_entries_by_time(left: TimedEntry, right: TimedEntry) -> int:
    return _minutes(left.start_time) - _minutes(right.start_time)


def sort_entries(entries: Iterable[TimedEntry]) -> list[TimedEntry]:
    return sorted(entries, key=lambda entry: _minutes(entry.start_time))


# Rendering


def _single_line(text: str) -> str:
    collapsed = " ".join(part.strip() for part in (text or "").splitlines() if part.strip())
    return collapsed or UNTITLED


def _description_lines(description: str) -> list[str]:
    return [line for line in (description or "").splitlines() if line.strip()]


def render_entries(entries: Iterable[TimedEntry], include_tag: bool = True) -> str:
    lines: list[str] = []
    for entry in entries:
        tag = entry.store_name if include_tag else None
        lines.append(render_timed(entry.start_time, entry.end_time, entry.title, tag))
        lines.extend(render_description(text) for text in entry.description_lines)
        lines.extend(render_checkbox(todo.title, todo.completed) for todo in entry.todos)
    return "\n".join(lines)


def format_time(value: datetime, tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%H:%M")


def render_events(
    events: Iterable[EventRecord],
    tz: tzinfo,
    include_tag: bool = True,
    include_description: bool = True,
    todos_by_uid: dict[str, list[TodoItem]] | None = None,
) -> str:
    todos_by_uid = todos_by_uid or {}
    lines: list[str] = []
    for event in events:
        if event.all_day or event.start is None or event.end is None:
            continue
        tag = event.calendar_name if include_tag else None
        lines.append(
            render_timed(format_time(event.start, tz), format_time(event.end, tz), _single_line(event.summary), tag)
        )
        if include_description:
            lines.extend(render_description(text) for text in _description_lines(event.description))
        lines.extend(render_checkbox(todo.title, todo.completed) for todo in todos_by_uid.get(event.uid, []))
    return "\n".join(lines)


def build_unassigned_block(title: str, items: Iterable[tuple[str, bool]]) -> str:
    lines = [render_list_item(title)]
    lines.extend(render_checkbox(item_title, completed) for item_title, completed in items)
    return "\n".join(lines)


# Rewriting


def update_section(text: str, section_header: str, new_body: str) -> str:
    """Replace the rendered body under every heading containing ``section_header``.

    The body is the run of list items, indented children and blank lines right
    after a heading. The new body goes under the first matching heading and
    later matching headings are left empty, so the note parses back to exactly
    ``new_body``. Heading lines and everything of any other shape are kept.
    """
    lines, trailing_newline = _split(text)
    body = _body_lines(new_body)
    result: list[str] = []
    placed = False
    index = 0
    while index < len(lines):
        raw = lines[index]
        result.append(raw)
        index += 1
        if not _heading_matches(classify_line(raw), section_header):
            continue
        while index < len(lines) and classify_line(lines[index]).is_section_body:
            index += 1
        if not placed:
            result.extend(body)
            placed = True
        if index < len(lines):
            result.append("")
    if not placed:
        result.extend(["", render_heading(section_header)] + body)
    return _join(result, trailing_newline)


def append_to_section(text: str, section_header: str, block: str) -> str:
    """Insert ``block`` after the last non-blank line of the section."""
    lines, trailing_newline = _split(text)
    block_lines = _body_lines(block)
    if not block_lines:
        return text
    heading_index = _find_heading(lines, section_header)
    if heading_index is None:
        return _join(lines + ["", render_heading(section_header)] + block_lines, trailing_newline)

    insert_at = _next_heading(lines, heading_index + 1)
    next_heading = insert_at
    while insert_at > heading_index + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    if insert_at == next_heading and next_heading < len(lines):
        block_lines = block_lines + [""]
    return _join(lines[:insert_at] + block_lines + lines[insert_at:], trailing_newline)


def set_todo_state(text: str, section_header: str, title: str, completed: bool) -> str:
    lines, trailing_newline = _split(text)
    in_section = False
    for index, raw in enumerate(lines):
        line = classify_line(raw)
        if line.kind is LineKind.HEADING:
            in_section = section_header in line.title
            continue
        if in_section and line.kind is LineKind.CHECKBOX and line.title == title:
            lines[index] = render_checkbox(title, completed)
    return _join(lines, trailing_newline)
