from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


HEADING_MARKER = "## "
LIST_MARKER = "- "
CHILD_MARKER = "\t- "

TAGGED_TIMED_PATTERN = re.compile(r"^- (\d{1,2}:\d{2}) - (\d{1,2}:\d{2}) (.+?) \[(.+?)\]$")
TIMED_PATTERN = re.compile(r"^- (\d{1,2}:\d{2}) - (\d{1,2}:\d{2}) (.+)$")
CHECKBOX_PATTERN = re.compile(r"^\t- \[([ x])\] (.+)$")
DESCRIPTION_PATTERN = re.compile(r"^\t- (.+)$")
TRAILING_TAG_PATTERN = re.compile(r"\s*\[.+?\]$")


class LineKind(str, Enum):
    HEADING = "heading"
    TIMED = "timed"
    DESCRIPTION = "description"
    CHECKBOX = "checkbox"
    BLANK = "blank"
    OTHER = "other"


@dataclass(frozen=True)
class ClassifiedLine:
    kind: LineKind
    raw: str
    start_time: str = ""
    end_time: str = ""
    title: str = ""
    tag: str | None = None
    text: str = ""
    checked: bool = False

    @property
    def is_child(self) -> bool:
        return self.kind in (LineKind.DESCRIPTION, LineKind.CHECKBOX)

    @property
    def is_section_body(self) -> bool:
        # Lines a rendered section body is made of.
        return (
            self.kind in (LineKind.TIMED, LineKind.DESCRIPTION, LineKind.CHECKBOX, LineKind.BLANK)
            or self.raw.startswith(LIST_MARKER)
        )


def classify_line(line: str) -> ClassifiedLine:
    if line.startswith(HEADING_MARKER):
        return ClassifiedLine(kind=LineKind.HEADING, raw=line, title=line[len(HEADING_MARKER) :])

    match = TAGGED_TIMED_PATTERN.match(line)
    if match:
        start_time, end_time, title, tag = match.groups()
        return ClassifiedLine(
            kind=LineKind.TIMED,
            raw=line,
            start_time=start_time,
            end_time=end_time,
            title=title,
            tag=tag,
        )
    match = TIMED_PATTERN.match(line)
    if match:
        start_time, end_time, title = match.groups()
        return ClassifiedLine(
            kind=LineKind.TIMED,
            raw=line,
            start_time=start_time,
            end_time=end_time,
            title=title,
        )

    match = CHECKBOX_PATTERN.match(line)
    if match:
        return ClassifiedLine(
            kind=LineKind.CHECKBOX,
            raw=line,
            title=match.group(2),
            text=line[len(CHILD_MARKER) :],
            checked=match.group(1) == "x",
        )
    match = DESCRIPTION_PATTERN.match(line)
    if match:
        return ClassifiedLine(kind=LineKind.DESCRIPTION, raw=line, text=match.group(1))

    if not line.strip():
        return ClassifiedLine(kind=LineKind.BLANK, raw=line)
    return ClassifiedLine(kind=LineKind.OTHER, raw=line)


def strip_trailing_tag(title: str) -> str:
    return TRAILING_TAG_PATTERN.sub("", title)


def render_heading(name: str) -> str:
    return f"{HEADING_MARKER}{name}"


def render_timed(start_time: str, end_time: str, title: str, tag: str | None = None) -> str:
    if tag:
        return f"{LIST_MARKER}{start_time} - {end_time} {title} [{tag}]"
    return f"{LIST_MARKER}{start_time} - {end_time} {title}"


def render_description(text: str) -> str:
    return f"{CHILD_MARKER}{text}"


def render_checkbox(title: str, completed: bool) -> str:
    mark = "x" if completed else " "
    return f"{CHILD_MARKER}[{mark}] {title}"


def render_list_item(text: str) -> str:
    return f"{LIST_MARKER}{text}"
