from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Callable

from daybridge.caldav_client import CalDAVService
from daybridge.config_manager import ConfigManager
from daybridge.document import (
    extract_date_from_name,
    parse_log,
    parse_plan,
    render_events,
    update_section,
)
from daybridge.document_store import DocumentStore
from daybridge.errors import DocumentError, InvalidDocumentDateError, RemoteError
from daybridge.matcher import time_match
from daybridge.models import AppConfig, EventRecord, SyncResult, TimedEntry, TodoItem, day_window
from daybridge.reconciler import ReconcileCounts, reconcile_by_name, reconcile_collection
from daybridge.state_store import StateStore
from daybridge.task_bridge import TaskSyncCounts, sync_local_to_remote, sync_remote_to_local


logger = logging.getLogger(__name__)


@dataclass
class DayCollections:
    plan_calendar_id: str
    plan_events: list[EventRecord] = field(default_factory=list)
    log_events: list[EventRecord] = field(default_factory=list)
    unavailable_calendar_ids: list[str] = field(default_factory=list)


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


def _is_excluded(name: str, calendar_id: str, keywords: list[str]) -> bool:
    haystack = f"{name} {calendar_id}".lower()
    return any(keyword.lower() in haystack for keyword in keywords)


def carry_todos(
    local_plan: list[TimedEntry],
    plan_events: list[EventRecord],
    day: date,
    tz: tzinfo,
) -> dict[str, list[TodoItem]]:
    """Keep local to-dos under the remote plan event occupying the same slot."""
    todos_by_uid: dict[str, list[TodoItem]] = {}
    claimed: set[str] = set()
    for entry in local_plan:
        if not entry.todos:
            continue
        for event in plan_events:
            if event.uid in claimed or not time_match(entry, event, day, tz):
                continue
            claimed.add(event.uid)
            todos_by_uid[event.uid] = list(entry.todos)
            break
    return todos_by_uid


class SyncEngine:
    def __init__(
        self,
        config_manager: ConfigManager,
        state_store: StateStore,
        service_factory: Callable[[AppConfig], Any] | None = None,
        store_factory: Callable[[AppConfig], DocumentStore] | None = None,
    ) -> None:
        self.config_manager = config_manager
        self.state_store = state_store
        self._service_factory = service_factory or (
            lambda config: CalDAVService(config.caldav, task_list_name=config.tasks.list_name)
        )
        self._store_factory = store_factory or (lambda config: DocumentStore(config.document.vault_path))
        self._service: Any = None
        self._service_key: tuple[Any, ...] | None = None

    def _service_for(self, config: AppConfig) -> Any:
        # The calendar directory cache lives as long as the service does.
        key = (
            config.caldav.base_url,
            config.caldav.username,
            config.caldav.password,
            config.caldav.password_env,
            config.tasks.list_name,
        )
        if self._service is None or self._service_key != key:
            self._service = self._service_factory(config)
            self._service_key = key
        return self._service

    def clear_cache(self) -> None:
        if self._service is not None:
            self._service.clear_cache()

    @staticmethod
    def _resolve_day(document: str) -> date:
        day = extract_date_from_name(document or "")
        if day is None:
            raise InvalidDocumentDateError("File name must start with a YYYY-MM-DD date.")
        return day

    def _plan_calendar_id(self, service: Any, config: AppConfig) -> str:
        if config.document.plan_calendar_id:
            return config.document.plan_calendar_id
        calendar_id = service.calendar_id_by_name(config.document.plan_calendar_name)
        if not calendar_id:
            raise RemoteError(f"Plan calendar not found: {config.document.plan_calendar_name}")
        return calendar_id

    def _fetch_day(
        self,
        service: Any,
        config: AppConfig,
        day: date,
        tz: tzinfo,
        audit: list[dict[str, Any]],
    ) -> DayCollections:
        window_start, window_end = day_window(day, tz)
        plan_calendar_id = self._plan_calendar_id(service, config)
        collections = DayCollections(plan_calendar_id=plan_calendar_id)
        collections.plan_events = service.fetch_events(plan_calendar_id, window_start, window_end)

        for calendar in service.list_calendars():
            if calendar.calendar_id == plan_calendar_id:
                continue
            if (config.tasks.enabled and calendar.name == config.tasks.list_name) or _is_excluded(
                calendar.name, calendar.calendar_id, config.sync.excluded_calendar_keywords
            ):
                collections.unavailable_calendar_ids.append(calendar.calendar_id)
                continue
            try:
                events = service.fetch_events(calendar.calendar_id, window_start, window_end)
            except Exception as exc:
                logger.warning("Failed to fetch events from calendar %s: %s", calendar.name, exc)
                collections.unavailable_calendar_ids.append(calendar.calendar_id)
                audit.append(
                    {
                        "calendar_id": calendar.calendar_id,
                        "uid": "calendar",
                        "action": "fetch_failed",
                        "details": {"name": calendar.name, "error": f"{type(exc).__name__}: {exc}"},
                    }
                )
                continue
            collections.log_events.extend(events)

        collections.log_events.sort(key=lambda event: event.start or window_start)
        return collections

    def _finish(self, result: SyncResult, audit: list[dict[str, Any]]) -> SyncResult:
        run_id = self.state_store.record_sync_run(result)
        for item in audit:
            self.state_store.record_audit_event(run_id=run_id, **item)
        logger.info("%s %s: %s (%s)", result.action, result.document, result.status, result.message)
        return result

    def _failed(
        self,
        action: str,
        document: str,
        started_at: datetime,
        exc: Exception,
        audit: list[dict[str, Any]],
    ) -> SyncResult:
        error_message = f"{type(exc).__name__}: {exc}"
        logger.error("%s of %s failed: %s", action, document, error_message)
        audit.append(
            {
                "calendar_id": "system",
                "uid": "sync",
                "action": "run_error",
                "details": {"error": error_message, "traceback": traceback.format_exc(limit=5)},
            }
        )
        return SyncResult(
            status="error",
            message=error_message,
            action=action,
            document=document,
            duration_ms=_elapsed_ms(started_at),
        )

    def pull(self, document: str) -> SyncResult:
        """Rewrite the note's plan and log sections from the remote calendars."""
        started_at = datetime.now(timezone.utc)
        audit: list[dict[str, Any]] = []
        config = self.config_manager.load()
        try:
            day = self._resolve_day(document)
            store = self._store_factory(config)
            text = store.read(document)
        except DocumentError as exc:
            return self._finish(
                SyncResult(
                    status="invalid",
                    message=str(exc),
                    action="pull",
                    document=document,
                    duration_ms=_elapsed_ms(started_at),
                ),
                audit,
            )

        try:
            service = self._service_for(config)
            tz = config.sync.tzinfo()
            doc_config = config.document
            collections = self._fetch_day(service, config, day, tz, audit)

            todos_by_uid = carry_todos(parse_plan(text, doc_config), collections.plan_events, day, tz)
            plan_body = render_events(
                collections.plan_events,
                tz,
                include_tag=False,
                include_description=doc_config.plan_descriptions,
                todos_by_uid=todos_by_uid,
            )
            log_body = render_events(collections.log_events, tz, include_tag=True, include_description=True)
            updated_text = update_section(text, doc_config.plan_section, plan_body)
            updated_text = update_section(updated_text, doc_config.log_section, log_body)

            task_counts = TaskSyncCounts()
            if config.tasks.enabled:
                updated_text, task_counts = sync_remote_to_local(updated_text, service, day, tz, doc_config)

            if updated_text != text:
                store.write(document, updated_text)
        except Exception as exc:
            return self._finish(self._failed("pull", document, started_at, exc, audit), audit)

        plan_count = sum(1 for event in collections.plan_events if not event.all_day)
        log_count = sum(1 for event in collections.log_events if not event.all_day)
        return self._finish(
            SyncResult(
                status="success",
                message=f"Synced {plan_count} plan events and {log_count} log events",
                action="pull",
                document=document,
                duration_ms=_elapsed_ms(started_at),
                todos_updated=task_counts.updated,
                todos_added=task_counts.added,
            ),
            audit,
        )

    def push(self, document: str) -> SyncResult:
        """Create, update and delete remote events so they mirror the note."""
        started_at = datetime.now(timezone.utc)
        audit: list[dict[str, Any]] = []
        config = self.config_manager.load()
        try:
            day = self._resolve_day(document)
            text = self._store_factory(config).read(document)
        except DocumentError as exc:
            return self._finish(
                SyncResult(
                    status="invalid",
                    message=str(exc),
                    action="push",
                    document=document,
                    duration_ms=_elapsed_ms(started_at),
                ),
                audit,
            )

        try:
            service = self._service_for(config)
            tz = config.sync.tzinfo()
            local_plan = parse_plan(text, config.document)
            local_log = parse_log(text, config.document)
            collections = self._fetch_day(service, config, day, tz, audit)

            counts = reconcile_collection(
                service=service,
                calendar_id=collections.plan_calendar_id,
                local_entries=local_plan,
                remote_events=collections.plan_events,
                day=day,
                tz=tz,
            )
            # Calendars that were not listed must not look empty to the reconciler.
            counts.add(
                reconcile_by_name(
                    service=service,
                    local_entries=local_log,
                    remote_events=collections.log_events,
                    day=day,
                    tz=tz,
                    excluded_ids=[collections.plan_calendar_id, *collections.unavailable_calendar_ids],
                )
            )
            for name in counts.skipped:
                audit.append(
                    {
                        "calendar_id": "unresolved",
                        "uid": name,
                        "action": "skip_unresolved_calendar",
                        "details": {"name": name},
                    }
                )

            task_counts = TaskSyncCounts()
            if config.tasks.enabled:
                todos = [todo for entry in local_plan for todo in entry.todos]
                task_counts = sync_local_to_remote(service, todos, day, tz)
        except Exception as exc:
            return self._finish(self._failed("push", document, started_at, exc, audit), audit)

        return self._finish(self._push_result(document, started_at, counts, task_counts), audit)

    @staticmethod
    def _push_result(
        document: str,
        started_at: datetime,
        counts: ReconcileCounts,
        task_counts: TaskSyncCounts,
    ) -> SyncResult:
        message = f"Pushed to calendar: {counts.created} created, {counts.updated} updated, {counts.deleted} deleted"
        if task_counts.created or task_counts.updated:
            message += f"; tasks: {task_counts.created} created, {task_counts.updated} updated"
        return SyncResult(
            status="success",
            message=message,
            action="push",
            document=document,
            duration_ms=_elapsed_ms(started_at),
            created=counts.created,
            updated=counts.updated,
            deleted=counts.deleted,
            tasks_created=task_counts.created,
            tasks_updated=task_counts.updated,
            skipped=list(counts.skipped),
        )
