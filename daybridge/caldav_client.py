from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from icalendar import Calendar as ICalendar
from icalendar import Event as ICEvent
from icalendar import Todo as ICTodo

from daybridge.credentials import resolve_password
from daybridge.errors import RemoteError
from daybridge.models import CalDAVConfig, CalendarInfo, EventRecord, TaskRecord, date_to_datetime
from daybridge.task_notes import compose_notes, split_notes

try:
    import caldav
except ImportError:  # pragma: no cover - dependency managed by pyproject
    caldav = None


logger = logging.getLogger(__name__)

PRODID = "-//daybridge//Daily Note Sync//EN"


def _data_hash(raw_ical: str) -> str:
    return hashlib.sha1(raw_ical.encode("utf-8")).hexdigest()  # nosec B324


def _coerce_datetime(value: Any, is_end: bool = False) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return date_to_datetime(value, is_end=is_end)
    return None


def _first_component(calendar_obj: ICalendar, name: str) -> Any:
    for component in calendar_obj.walk():
        if component.name == name:
            return component
    return None


def _decode_raw_ical(raw_data: Any) -> str:
    if isinstance(raw_data, bytes):
        return raw_data.decode("utf-8", errors="replace")
    return str(raw_data)


def _extract_uid_from_raw_ical(raw_data: Any, component_name: str) -> str:
    try:
        calendar_obj = ICalendar.from_ical(_decode_raw_ical(raw_data))
    except ValueError:
        return ""
    component = _first_component(calendar_obj, component_name)
    if component is None:
        return ""
    return str(component.get("UID", "")).strip()


def _recurrence_id(component: Any) -> datetime | None:
    if component.get("RECURRENCE-ID") is None:
        return None
    return _coerce_datetime(component.decoded("RECURRENCE-ID"))


def _series_master(calendar_obj: ICalendar) -> Any:
    for component in calendar_obj.walk("VEVENT"):
        if component.get("RECURRENCE-ID") is None:
            return component
    return None


def _drop_override(calendar_obj: ICalendar, recurrence_id: datetime) -> None:
    calendar_obj.subcomponents = [
        component
        for component in calendar_obj.subcomponents
        if not (component.name == "VEVENT" and _recurrence_id(component) == recurrence_id)
    ]


def _new_calendar() -> ICalendar:
    calendar_obj = ICalendar()
    calendar_obj.add("PRODID", PRODID)
    calendar_obj.add("VERSION", "2.0")
    return calendar_obj


class CalDAVService:
    """Events and tasks for one CalDAV account.

    The calendar directory is fetched on first use and kept until
    ``clear_cache`` is called.
    """

    def __init__(
        self,
        config: CalDAVConfig,
        task_list_name: str = "Tasks",
        password_resolver: Callable[[CalDAVConfig], str] = resolve_password,
    ) -> None:
        self.config = config
        self.task_list_name = task_list_name
        self._password_resolver = password_resolver
        self._client: Any = None
        self._principal: Any = None
        self._calendars: list[CalendarInfo] | None = None
        self._calendar_cache: dict[str, Any] = {}

    def _require_dependency(self) -> None:
        if caldav is None:
            raise RuntimeError("caldav dependency is not installed.")

    def _connect(self) -> None:
        self._require_dependency()
        if self._principal is not None:
            return
        if not self.config.base_url or not self.config.username:
            raise RemoteError("CalDAV config is incomplete.")
        self._client = caldav.DAVClient(
            url=self.config.base_url,
            username=self.config.username,
            password=self._password_resolver(self.config),
        )
        self._principal = self._client.principal()

    def clear_cache(self) -> None:
        self._calendars = None
        self._calendar_cache = {}
        self._principal = None
        self._client = None

    # Calendars

    def list_calendars(self, refresh: bool = False) -> list[CalendarInfo]:
        if self._calendars is not None and not refresh:
            return list(self._calendars)
        self._connect()
        self._calendar_cache = {}
        calendars: list[CalendarInfo] = []
        for calendar in self._principal.calendars():
            calendar_id = str(calendar.url)
            name = getattr(calendar, "name", "") or calendar_id
            self._calendar_cache[calendar_id] = calendar
            calendars.append(CalendarInfo(calendar_id=calendar_id, name=name, url=calendar_id))
        self._calendars = calendars
        return list(calendars)

    def calendar_id_by_name(self, name: str) -> str | None:
        for info in self.list_calendars():
            if info.name == name:
                return info.calendar_id
        return None

    def _get_calendar(self, calendar_id: str) -> Any:
        if calendar_id not in self._calendar_cache:
            self.list_calendars(refresh=True)
        if calendar_id not in self._calendar_cache:
            raise RemoteError(f"Calendar not found: {calendar_id}")
        return self._calendar_cache[calendar_id]

    def _calendar_name(self, calendar_id: str) -> str:
        for info in self.list_calendars():
            if info.calendar_id == calendar_id:
                return info.name
        return calendar_id

    # Events

    def fetch_events(self, calendar_id: str, start: datetime, end: datetime) -> list[EventRecord]:
        self._connect()
        calendar = self._get_calendar(calendar_id)
        calendar_name = self._calendar_name(calendar_id)
        resources = calendar.search(start=start, end=end, event=True, expand=True)
        events: list[EventRecord] = []
        for item in resources:
            event = self._parse_event(calendar_id, calendar_name, item)
            if event.uid:
                events.append(event)
        events.sort(key=lambda item: item.start or start)
        return events

    def _parse_event(self, calendar_id: str, calendar_name: str, resource: Any) -> EventRecord:
        raw_ical = _decode_raw_ical(resource.data)
        vevent = _first_component(ICalendar.from_ical(raw_ical), "VEVENT")
        if vevent is None:
            raise RemoteError("VEVENT missing in calendar resource.")

        dtstart_raw = vevent.decoded("DTSTART") if vevent.get("DTSTART") is not None else None
        dtend_raw = vevent.decoded("DTEND") if vevent.get("DTEND") is not None else None
        start = _coerce_datetime(dtstart_raw, is_end=False)
        end = _coerce_datetime(dtend_raw, is_end=True)
        if start and end is None:
            end = start + timedelta(hours=1)
        return EventRecord(
            calendar_id=calendar_id,
            uid=str(vevent.get("UID", "")).strip(),
            calendar_name=calendar_name,
            summary=str(vevent.get("SUMMARY", "")).strip(),
            description=str(vevent.get("DESCRIPTION", "")).strip(),
            start=start,
            end=end,
            all_day=isinstance(dtstart_raw, date) and not isinstance(dtstart_raw, datetime),
            href=str(getattr(resource, "url", "") or ""),
            etag=_data_hash(raw_ical),
            recurrence_id=_recurrence_id(vevent),
        )

    def _build_event_component(
        self,
        uid: str,
        title: str,
        start: datetime,
        end: datetime,
        description: str | None,
        recurrence_id: datetime | None = None,
    ) -> ICEvent:
        vevent = ICEvent()
        vevent.add("UID", uid)
        vevent.add("DTSTAMP", datetime.now(timezone.utc))
        if recurrence_id is not None:
            vevent.add("RECURRENCE-ID", recurrence_id)
        vevent.add("SUMMARY", title or "")
        if description:
            vevent.add("DESCRIPTION", description)
        vevent.add("DTSTART", start)
        vevent.add("DTEND", end)
        return vevent

    def _build_event_ical(
        self,
        uid: str,
        title: str,
        start: datetime,
        end: datetime,
        description: str | None,
    ) -> str:
        calendar_obj = _new_calendar()
        calendar_obj.add_component(self._build_event_component(uid, title, start, end, description))
        return calendar_obj.to_ical().decode("utf-8")

    def _find_resource(self, calendar: Any, uid: str, component_name: str) -> Any:
        if not uid:
            return None
        lookup = calendar.todo_by_uid if component_name == "VTODO" else calendar.event_by_uid
        try:
            return lookup(uid)
        except caldav.lib.error.DAVError:
            pass
        # Some servers do not support UID reports; scan the collection instead.
        objects = calendar.todos(include_completed=True) if component_name == "VTODO" else calendar.events()
        for resource in objects:
            if _extract_uid_from_raw_ical(getattr(resource, "data", ""), component_name) == uid:
                return resource
        return None

    def create_event(
        self,
        calendar_id: str,
        title: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
    ) -> str:
        self._connect()
        calendar = self._get_calendar(calendar_id)
        uid = str(uuid.uuid4())
        calendar.save_event(self._build_event_ical(uid, title, start, end, description))
        return uid

    def update_event(
        self,
        calendar_id: str,
        uid: str,
        title: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
        recurrence_id: datetime | None = None,
    ) -> None:
        """Rewrite one event; for an occurrence, store an override beside the series."""
        self._connect()
        calendar = self._get_calendar(calendar_id)
        resource = self._find_resource(calendar, uid, "VEVENT")
        if resource is None:
            raise RemoteError(f"Event not found: {calendar_id}/{uid}")
        if recurrence_id is None:
            resource.data = self._build_event_ical(uid, title, start, end, description)
        else:
            calendar_obj = ICalendar.from_ical(_decode_raw_ical(resource.data))
            _drop_override(calendar_obj, recurrence_id)
            calendar_obj.add_component(
                self._build_event_component(uid, title, start, end, description, recurrence_id)
            )
            resource.data = calendar_obj.to_ical().decode("utf-8")
        resource.save()

    def delete_event(self, calendar_id: str, uid: str, recurrence_id: datetime | None = None) -> bool:
        """Delete one event; for an occurrence, exclude it from the series instead."""
        self._connect()
        calendar = self._get_calendar(calendar_id)
        resource = self._find_resource(calendar, uid, "VEVENT")
        if resource is None:
            logger.warning("Event already gone: %s/%s", calendar_id, uid)
            return False
        if recurrence_id is None:
            resource.delete()
            return True

        calendar_obj = ICalendar.from_ical(_decode_raw_ical(resource.data))
        _drop_override(calendar_obj, recurrence_id)
        master = _series_master(calendar_obj)
        if master is not None:
            master.add("EXDATE", recurrence_id)
        elif not calendar_obj.walk("VEVENT"):
            resource.delete()
            return True
        resource.data = calendar_obj.to_ical().decode("utf-8")
        resource.save()
        logger.info("Excluded %s from series %s/%s", recurrence_id.isoformat(), calendar_id, uid)
        return True

    # Tasks

    def _task_calendar(self) -> Any:
        calendar_id = self.calendar_id_by_name(self.task_list_name)
        if calendar_id is not None:
            return self._get_calendar(calendar_id)
        self._connect()
        calendar = self._principal.make_calendar(
            name=self.task_list_name,
            supported_calendar_component_set=["VTODO"],
        )
        logger.info("Created task list %r", self.task_list_name)
        self.list_calendars(refresh=True)
        self._calendar_cache[str(calendar.url)] = calendar
        return calendar

    def _parse_task(self, resource: Any) -> TaskRecord:
        raw_ical = _decode_raw_ical(resource.data)
        vtodo = _first_component(ICalendar.from_ical(raw_ical), "VTODO")
        if vtodo is None:
            raise RemoteError("VTODO missing in task resource.")
        due_raw = vtodo.decoded("DUE") if vtodo.get("DUE") is not None else None
        status = str(vtodo.get("STATUS", "")).strip().upper()
        start_marker, notes = split_notes(str(vtodo.get("DESCRIPTION", "") or ""))
        return TaskRecord(
            uid=str(vtodo.get("UID", "")).strip(),
            title=str(vtodo.get("SUMMARY", "")).strip(),
            completed=status == "COMPLETED" or vtodo.get("COMPLETED") is not None,
            due=_coerce_datetime(due_raw),
            notes=notes,
            start_marker=start_marker,
            href=str(getattr(resource, "url", "") or ""),
        )

    def _build_task_ical(
        self,
        uid: str,
        title: str,
        completed: bool,
        due: datetime | None,
        notes: str | None,
    ) -> str:
        calendar_obj = _new_calendar()
        vtodo = ICTodo()
        vtodo.add("UID", uid)
        vtodo.add("DTSTAMP", datetime.now(timezone.utc))
        vtodo.add("SUMMARY", title or "")
        if due is not None:
            vtodo.add("DUE", due)
        if notes:
            vtodo.add("DESCRIPTION", notes)
        if completed:
            vtodo.add("STATUS", "COMPLETED")
            vtodo.add("COMPLETED", datetime.now(timezone.utc))
        else:
            vtodo.add("STATUS", "NEEDS-ACTION")
        calendar_obj.add_component(vtodo)
        return calendar_obj.to_ical().decode("utf-8")

    def fetch_tasks(self, start: datetime, end: datetime) -> list[TaskRecord]:
        calendar = self._task_calendar()
        tasks: list[TaskRecord] = []
        for resource in calendar.todos(include_completed=True):
            task = self._parse_task(resource)
            if not task.uid or task.due is None:
                continue
            if start <= task.due <= end:
                tasks.append(task)
        return tasks

    def create_task(
        self,
        title: str,
        due: datetime,
        start_marker: str | None = None,
        notes: str | None = None,
    ) -> str:
        calendar = self._task_calendar()
        uid = str(uuid.uuid4())
        calendar.save_todo(self._build_task_ical(uid, title, False, due, compose_notes(start_marker, notes)))
        return uid

    def update_task(
        self,
        uid: str,
        title: str,
        completed: bool,
        due: datetime | None = None,
        start_marker: str | None = None,
        notes: str | None = None,
    ) -> None:
        calendar = self._task_calendar()
        resource = self._find_resource(calendar, uid, "VTODO")
        if resource is None:
            raise RemoteError(f"Task not found: {uid}")
        current = self._parse_task(resource)
        composed = compose_notes(
            start_marker or current.start_marker,
            notes if notes is not None else current.notes,
        )
        resource.data = self._build_task_ical(
            uid,
            title,
            completed,
            due if due is not None else current.due,
            composed,
        )
        resource.save()
