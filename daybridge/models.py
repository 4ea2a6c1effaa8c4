from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_PLAN_SECTION = "Daily Plan"
DEFAULT_LOG_SECTION = "Daily Log"
DEFAULT_PLAN_CALENDAR_NAME = "Plan"
DEFAULT_UNASSIGNED_TITLE = "Unassigned Tasks"
DEFAULT_TASK_LIST_NAME = "Tasks"


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


def date_to_datetime(value: datetime | date | None, is_end: bool = False) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    if is_end:
        return datetime.combine(value, time.max, tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_window(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return start, end


def _clean_list(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [str(x).strip() for x in values if str(x).strip()]


@dataclass
class CalDAVConfig:
    base_url: str = ""
    username: str = ""
    password: str = ""
    password_env: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalDAVConfig":
        data = data or {}
        return cls(
            base_url=str(data.get("base_url", "")).strip(),
            username=str(data.get("username", "")).strip(),
            password=str(data.get("password", "")).strip(),
            password_env=str(data.get("password_env", "")).strip(),
        )


@dataclass
class SyncConfig:
    timezone: str = "UTC"
    excluded_calendar_keywords: list[str] = field(default_factory=lambda: ["holiday"])

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncConfig":
        data = data or {}
        keywords = data.get("excluded_calendar_keywords", ["holiday"])
        return cls(
            timezone=str(data.get("timezone", "UTC")).strip() or "UTC",
            excluded_calendar_keywords=_clean_list(keywords),
        )

    def tzinfo(self) -> tzinfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return timezone.utc


@dataclass
class DocumentConfig:
    vault_path: str = "."
    plan_section: str = DEFAULT_PLAN_SECTION
    log_section: str = DEFAULT_LOG_SECTION
    plan_calendar_name: str = DEFAULT_PLAN_CALENDAR_NAME
    plan_calendar_id: str = ""
    unassigned_title: str = DEFAULT_UNASSIGNED_TITLE
    plan_descriptions: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DocumentConfig":
        data = data or {}
        return cls(
            vault_path=str(data.get("vault_path", ".")).strip() or ".",
            plan_section=str(data.get("plan_section", DEFAULT_PLAN_SECTION)).strip() or DEFAULT_PLAN_SECTION,
            log_section=str(data.get("log_section", DEFAULT_LOG_SECTION)).strip() or DEFAULT_LOG_SECTION,
            plan_calendar_name=str(data.get("plan_calendar_name", DEFAULT_PLAN_CALENDAR_NAME)).strip()
            or DEFAULT_PLAN_CALENDAR_NAME,
            plan_calendar_id=str(data.get("plan_calendar_id", "")).strip(),
            unassigned_title=str(data.get("unassigned_title", DEFAULT_UNASSIGNED_TITLE)).strip()
            or DEFAULT_UNASSIGNED_TITLE,
            plan_descriptions=bool(data.get("plan_descriptions", True)),
        )


@dataclass
class TasksConfig:
    enabled: bool = True
    list_name: str = DEFAULT_TASK_LIST_NAME

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TasksConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", True)),
            list_name=str(data.get("list_name", DEFAULT_TASK_LIST_NAME)).strip() or DEFAULT_TASK_LIST_NAME,
        )


@dataclass
class AppConfig:
    caldav: CalDAVConfig = field(default_factory=CalDAVConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    document: DocumentConfig = field(default_factory=DocumentConfig)
    tasks: TasksConfig = field(default_factory=TasksConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            caldav=CalDAVConfig.from_dict(data.get("caldav")),
            sync=SyncConfig.from_dict(data.get("sync")),
            document=DocumentConfig.from_dict(data.get("document")),
            tasks=TasksConfig.from_dict(data.get("tasks")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CalendarInfo:
    calendar_id: str
    name: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TodoItem:
    title: str
    completed: bool = False
    parent_start: str = ""
    parent_end: str = ""

    @property
    def parent_time_window(self) -> str:
        return f"{self.parent_start} - {self.parent_end}"


@dataclass
class TimedEntry:
    """A timed line parsed from a note section, with its indented children."""

    start_time: str
    end_time: str
    title: str
    store_name: str = ""
    description_lines: list[str] = field(default_factory=list)
    source_line: str = ""
    todos: list[TodoItem] = field(default_factory=list)

    @property
    def description(self) -> str:
        return "\n".join(self.description_lines)


@dataclass
class EventRecord:
    calendar_id: str
    uid: str
    calendar_name: str = ""
    summary: str = ""
    description: str = ""
    start: datetime | None = None
    end: datetime | None = None
    all_day: bool = False
    href: str = ""
    etag: str = ""
    # Set on one occurrence of a recurring series.
    recurrence_id: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["start"] = serialize_datetime(self.start)
        payload["end"] = serialize_datetime(self.end)
        payload["recurrence_id"] = serialize_datetime(self.recurrence_id)
        return payload


@dataclass
class TaskRecord:
    uid: str
    title: str = ""
    completed: bool = False
    due: datetime | None = None
    notes: str = ""
    start_marker: str = ""
    href: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["due"] = serialize_datetime(self.due)
        return payload


@dataclass
class SyncResult:
    status: str
    message: str
    action: str
    document: str
    duration_ms: int
    created: int = 0
    updated: int = 0
    deleted: int = 0
    tasks_created: int = 0
    tasks_updated: int = 0
    todos_updated: int = 0
    todos_added: int = 0
    skipped: list[str] = field(default_factory=list)
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def changes_applied(self) -> int:
        return (
            self.created
            + self.updated
            + self.deleted
            + self.tasks_created
            + self.tasks_updated
            + self.todos_updated
            + self.todos_added
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "action": self.action,
            "document": self.document,
            "duration_ms": self.duration_ms,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "tasks_created": self.tasks_created,
            "tasks_updated": self.tasks_updated,
            "todos_updated": self.todos_updated,
            "todos_added": self.todos_added,
            "skipped": list(self.skipped),
            "run_at": serialize_datetime(self.run_at),
        }


def default_app_config() -> AppConfig:
    return AppConfig()
