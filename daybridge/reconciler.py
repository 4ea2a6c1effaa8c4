from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, tzinfo
from typing import Any, Iterable

from daybridge.matcher import entry_window, time_match, titles_equal
from daybridge.models import EventRecord, TimedEntry


logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    creates: list[TimedEntry] = field(default_factory=list)
    updates: list[tuple[TimedEntry, EventRecord]] = field(default_factory=list)
    deletes: list[EventRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


@dataclass
class ReconcileCounts:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: list[str] = field(default_factory=list)

    def add(self, other: "ReconcileCounts") -> "ReconcileCounts":
        self.created += other.created
        self.updated += other.updated
        self.deleted += other.deleted
        self.skipped.extend(other.skipped)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "skipped": list(self.skipped),
        }


def _normalized_description(text: str) -> str:
    return "\n".join(line for line in (text or "").splitlines() if line.strip())


def needs_update(entry: TimedEntry, event: EventRecord) -> bool:
    if not titles_equal(entry.title, event.summary):
        return True
    return _normalized_description(entry.description) != _normalized_description(event.description)


def plan_changes(
    local_entries: Iterable[TimedEntry],
    remote_events: Iterable[EventRecord],
    day: date,
    tz: tzinfo,
) -> ReconcilePlan:
    """Diff local entries against remote events of one collection.

    Identity is the time slot only: a renamed entry is an update, not a
    delete plus create. A local entry is created only when no remote event
    shares its slot, and a remote event is deleted only when no local entry
    does. Within a shared slot the entry updates the same-titled event if
    there is one, else the first; each remote event is updated at most once.
    """
    local = list(local_entries)
    remote = [event for event in remote_events if not event.all_day]
    touched: set[int] = set()
    plan = ReconcilePlan()

    for entry in local:
        matches = [index for index, event in enumerate(remote) if time_match(entry, event, day, tz)]
        if not matches:
            plan.creates.append(entry)
            continue
        target = next((index for index in matches if titles_equal(entry.title, remote[index].summary)), matches[0])
        if target in touched:
            continue
        touched.add(target)
        if needs_update(entry, remote[target]):
            plan.updates.append((entry, remote[target]))

    plan.deletes.extend(
        event for event in remote if not any(time_match(entry, event, day, tz) for entry in local)
    )
    return plan


def apply_plan(
    service: Any,
    calendar_id: str,
    plan: ReconcilePlan,
    day: date,
    tz: tzinfo,
) -> ReconcileCounts:
    counts = ReconcileCounts()
    if plan.is_empty:
        logger.debug("No changes for %s", calendar_id)
        return counts
    for entry in plan.creates:
        start, end = entry_window(entry, day, tz)
        service.create_event(calendar_id, entry.title, start, end, entry.description or None)
        logger.info("Created %s %s-%s %r", calendar_id, entry.start_time, entry.end_time, entry.title)
        counts.created += 1
    for entry, event in plan.updates:
        start, end = entry_window(entry, day, tz)
        service.update_event(
            calendar_id,
            event.uid,
            entry.title,
            start,
            end,
            entry.description or None,
            recurrence_id=event.recurrence_id,
        )
        logger.info("Updated %s/%s -> %r", calendar_id, event.uid, entry.title)
        counts.updated += 1
    for event in plan.deletes:
        service.delete_event(calendar_id, event.uid, recurrence_id=event.recurrence_id)
        logger.info("Deleted %s/%s %r", calendar_id, event.uid, event.summary)
        counts.deleted += 1
    return counts


def reconcile_collection(
    *,
    service: Any,
    calendar_id: str,
    local_entries: Iterable[TimedEntry],
    remote_events: Iterable[EventRecord],
    day: date,
    tz: tzinfo,
) -> ReconcileCounts:
    plan = plan_changes(local_entries, remote_events, day, tz)
    return apply_plan(service, calendar_id, plan, day, tz)


def reconcile_by_name(
    *,
    service: Any,
    local_entries: Iterable[TimedEntry],
    remote_events: Iterable[EventRecord],
    day: date,
    tz: tzinfo,
    excluded_ids: Iterable[str] = (),
) -> ReconcileCounts:
    """Route local entries to calendars by their tag and reconcile each bucket.

    Only calendars that at least one local entry names are touched.
    """
    excluded = set(excluded_ids)
    buckets: "OrderedDict[str, list[TimedEntry]]" = OrderedDict()
    counts = ReconcileCounts()

    for entry in local_entries:
        name = entry.store_name
        calendar_id = service.calendar_id_by_name(name) if name else None
        if not calendar_id or calendar_id in excluded:
            logger.warning("No usable calendar for %r, skipping %r", name, entry.title)
            counts.skipped.append(name or entry.title)
            continue
        buckets.setdefault(calendar_id, []).append(entry)

    remote = list(remote_events)
    for calendar_id, entries in buckets.items():
        in_calendar = [event for event in remote if event.calendar_id == calendar_id]
        counts.add(
            reconcile_collection(
                service=service,
                calendar_id=calendar_id,
                local_entries=entries,
                remote_events=in_calendar,
                day=day,
                tz=tz,
            )
        )
    return counts
