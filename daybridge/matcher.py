from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo

from daybridge.models import EventRecord, TimedEntry


MATCH_TOLERANCE = timedelta(milliseconds=60_000)


def local_datetime(day: date, hhmm: str, tz: tzinfo) -> datetime:
    """Combine ``day`` with an ``HH:MM`` wall-clock time in ``tz``.

    The hours and minutes are added to local midnight rather than passed to
    ``time()``, so out-of-range values such as ``25:99`` roll over into the
    next day instead of raising.
    """
    hours_text, _, minutes_text = hhmm.partition(":")
    hours = int(hours_text or 0)
    minutes = int(minutes_text or 0)
    midnight = datetime.combine(day, time.min, tzinfo=tz)
    return midnight + timedelta(hours=hours, minutes=minutes)


def instants_match(left: datetime, right: datetime, tolerance: timedelta = MATCH_TOLERANCE) -> bool:
    return abs(left - right) < tolerance


def entry_window(entry: TimedEntry, day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    return local_datetime(day, entry.start_time, tz), local_datetime(day, entry.end_time, tz)


def time_match(entry: TimedEntry, event: EventRecord, day: date, tz: tzinfo) -> bool:
    if event.start is None or event.end is None:
        return False
    start, end = entry_window(entry, day, tz)
    return instants_match(start, event.start) and instants_match(end, event.end)


def titles_equal(left: str, right: str) -> bool:
    return (left or "").lower() == (right or "").lower()


def exact_match(entry: TimedEntry, event: EventRecord, day: date, tz: tzinfo) -> bool:
    return time_match(entry, event, day, tz) and titles_equal(entry.title, event.summary)
