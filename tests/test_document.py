import unittest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from daybridge.document import (
    append_to_section,
    build_unassigned_block,
    collect_section_todos,
    compare_entries_by_time,
    extract_date_from_name,
    parse_log,
    parse_plan,
    parse_section,
    render_entries,
    render_events,
    set_todo_state,
    sort_entries,
    update_section,
)
from daybridge.models import DocumentConfig, EventRecord, TodoItem


NOTE = (
    "# Thursday\n"
    "\n"
    "## Daily Plan\n"
    "- 09:00 - 10:00 Standup\n"
    "\t- Room 4B\n"
    "\t- [ ] Draft report\n"
    "\t- [x] Email Sam\n"
    "- 13:00 - 14:00 Focus [Stray]\n"
    "\n"
    "## Daily Log\n"
    "- 11:00 - 12:00 Lunch [Personal]\n"
    "\t- with Ana\n"
    "\n"
    "\t- orphan\n"
    "- 14:00 - 15:00 Review [Work]\n"
    "- 16:00 - 17:00 Untagged\n"
    "\n"
    "Free notes stay here.\n"
)


def _event(uid: str, summary: str, start_hour: int, end_hour: int, **kwargs) -> EventRecord:
    return EventRecord(
        calendar_id=kwargs.pop("calendar_id", "cal-work"),
        uid=uid,
        summary=summary,
        start=datetime(2026, 3, 5, start_hour, 0, tzinfo=timezone.utc),
        end=datetime(2026, 3, 5, end_hour, 0, tzinfo=timezone.utc),
        **kwargs,
    )


class ExtractDateTests(unittest.TestCase):
    def test_leading_date_is_extracted(self) -> None:
        self.assertEqual(extract_date_from_name("2026-03-05.md"), date(2026, 3, 5))
        self.assertEqual(extract_date_from_name("journal/2026-03-05 Thursday.md"), date(2026, 3, 5))

    def test_missing_or_invalid_date(self) -> None:
        self.assertIsNone(extract_date_from_name("Meeting notes.md"))
        self.assertIsNone(extract_date_from_name("2026-13-40.md"))
        self.assertIsNone(extract_date_from_name(""))


class ParseTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = DocumentConfig()

    def test_parse_plan_collects_descriptions_and_todos(self) -> None:
        entries = parse_plan(NOTE, self.config)
        self.assertEqual([entry.title for entry in entries], ["Standup", "Focus"])
        standup = entries[0]
        self.assertEqual(standup.store_name, "Plan")
        self.assertEqual(standup.description_lines, ["Room 4B"])
        self.assertEqual(
            [(todo.title, todo.completed) for todo in standup.todos],
            [("Draft report", False), ("Email Sam", True)],
        )
        self.assertEqual(standup.todos[0].parent_time_window, "09:00 - 10:00")

    def test_parse_plan_discards_stray_tag(self) -> None:
        focus = parse_plan(NOTE, self.config)[1]
        self.assertEqual(focus.title, "Focus")
        self.assertEqual(focus.store_name, "Plan")

    def test_parse_log_reads_tags(self) -> None:
        entries = parse_log(NOTE, self.config)
        self.assertEqual(
            [(entry.title, entry.store_name) for entry in entries],
            [("Lunch", "Personal"), ("Review", "Work"), ("Untagged", "")],
        )

    def test_blank_line_ends_description_run(self) -> None:
        lunch = parse_log(NOTE, self.config)[0]
        self.assertEqual(lunch.description_lines, ["with Ana"])

    def test_checkboxes_are_description_without_todos(self) -> None:
        entries = parse_section(NOTE, "Daily Plan")
        self.assertEqual(entries[0].description_lines, ["Room 4B", "[ ] Draft report", "[x] Email Sam"])
        self.assertEqual(entries[0].todos, [])

    def test_heading_match_is_substring(self) -> None:
        text = "## 📅 Daily Plan (auto)\n- 08:00 - 09:00 Gym\n"
        self.assertEqual(len(parse_plan(text, self.config)), 1)

    def test_entries_keep_document_order(self) -> None:
        text = "## Daily Log\n- 15:00 - 16:00 B [X]\n- 08:00 - 09:00 A [X]\n"
        entries = parse_log(text, self.config)
        self.assertEqual([entry.title for entry in entries], ["B", "A"])
        self.assertEqual([entry.title for entry in sort_entries(entries)], ["A", "B"])
        self.assertGreater(compare_entries_by_time(entries[0], entries[1]), 0)

    def test_collect_section_todos_is_scoped(self) -> None:
        text = NOTE + "## Other\n- 08:00 - 09:00 X\n\t- [ ] Elsewhere\n"
        self.assertEqual(collect_section_todos(text, "Daily Plan"), {"Draft report": False, "Email Sam": True})


class RenderTests(unittest.TestCase):
    def test_render_entries_round_trips(self) -> None:
        config = DocumentConfig()
        body = render_entries(parse_log(NOTE, config)[:2])
        self.assertEqual(
            body,
            "- 11:00 - 12:00 Lunch [Personal]\n\t- with Ana\n- 14:00 - 15:00 Review [Work]",
        )

    def test_render_events_in_target_timezone(self) -> None:
        event = _event("a", "Standup", 8, 9, calendar_name="Work", description="Line one\n\nLine two")
        body = render_events([event], ZoneInfo("Europe/Berlin"))
        self.assertEqual(body, "- 09:00 - 10:00 Standup [Work]\n\t- Line one\n\t- Line two")

    def test_render_events_skips_all_day_and_handles_titles(self) -> None:
        events = [
            _event("a", "", 8, 9),
            _event("b", "Holiday", 0, 0, all_day=True),
            _event("c", "Two\nlines", 10, 11),
        ]
        body = render_events(events, timezone.utc, include_tag=False, include_description=False)
        self.assertEqual(body, "- 08:00 - 09:00 (untitled)\n- 10:00 - 11:00 Two lines")

    def test_render_events_attaches_todos(self) -> None:
        event = _event("a", "Standup", 9, 10)
        body = render_events(
            [event],
            timezone.utc,
            include_tag=False,
            todos_by_uid={"a": [TodoItem(title="Draft report", completed=True)]},
        )
        self.assertEqual(body, "- 09:00 - 10:00 Standup\n\t- [x] Draft report")

    def test_build_unassigned_block(self) -> None:
        block = build_unassigned_block("Unassigned Tasks", [("Call bank", False), ("Pay rent", True)])
        self.assertEqual(block, "- Unassigned Tasks\n\t- [ ] Call bank\n\t- [x] Pay rent")


class UpdateSectionTests(unittest.TestCase):
    def test_replaces_only_target_body(self) -> None:
        updated = update_section(NOTE, "Daily Plan", "- 09:00 - 10:00 Standup")
        self.assertTrue(updated.startswith("# Thursday\n\n## Daily Plan\n- 09:00 - 10:00 Standup\n\n## Daily Log\n"))
        self.assertEqual(updated.split("## Daily Log")[1], NOTE.split("## Daily Log")[1])

    def test_is_idempotent(self) -> None:
        body = "- 08:00 - 09:00 Gym [Health]\n\t- legs"
        once = update_section(NOTE, "Daily Log", body)
        twice = update_section(once, "Daily Log", body)
        self.assertEqual(once, twice)

    def test_keeps_stray_content_after_body(self) -> None:
        updated = update_section(NOTE, "Daily Log", "- 08:00 - 09:00 Gym [Health]")
        self.assertTrue(updated.endswith("## Daily Log\n- 08:00 - 09:00 Gym [Health]\n\nFree notes stay here.\n"))
        self.assertNotIn("orphan", updated)

    def test_empty_body_clears_section(self) -> None:
        text = "## Daily Plan\n- 09:00 - 10:00 A\n\n## Daily Log\n- 10:00 - 11:00 B [X]\n"
        updated = update_section(text, "Daily Plan", "")
        self.assertEqual(updated, "## Daily Plan\n\n## Daily Log\n- 10:00 - 11:00 B [X]\n")
        self.assertEqual(update_section(updated, "Daily Plan", ""), updated)

    def test_missing_heading_is_appended(self) -> None:
        updated = update_section("# Thursday\n", "Daily Log", "- 10:00 - 11:00 B [X]")
        self.assertEqual(updated, "# Thursday\n\n## Daily Log\n- 10:00 - 11:00 B [X]\n")

    def test_repeated_heading_is_cleared(self) -> None:
        text = (
            "## Daily Log\n- 09:00 - 10:00 A [X]\n\n"
            "## Notes\nkeep\n\n"
            "## Daily Log\n- 11:00 - 12:00 B [Y]\n"
        )
        updated = update_section(text, "Daily Log", "- 13:00 - 14:00 C [Z]")
        self.assertEqual(
            updated,
            "## Daily Log\n- 13:00 - 14:00 C [Z]\n\n## Notes\nkeep\n\n## Daily Log\n",
        )
        entries = parse_log(updated, DocumentConfig())
        self.assertEqual([(entry.title, entry.store_name) for entry in entries], [("C", "Z")])
        self.assertEqual(update_section(updated, "Daily Log", "- 13:00 - 14:00 C [Z]"), updated)

    def test_heading_text_is_preserved(self) -> None:
        text = "## 📅 Daily Plan (auto)\n- 09:00 - 10:00 A\n"
        updated = update_section(text, "Daily Plan", "- 10:00 - 11:00 B")
        self.assertEqual(updated, "## 📅 Daily Plan (auto)\n- 10:00 - 11:00 B\n")


class AppendAndCheckboxTests(unittest.TestCase):
    def test_append_lands_before_next_heading(self) -> None:
        text = "## Daily Plan\n- 09:00 - 10:00 A\n\n## Daily Log\n"
        updated = append_to_section(text, "Daily Plan", "- Unassigned Tasks\n\t- [ ] Call bank")
        self.assertEqual(
            updated,
            "## Daily Plan\n- 09:00 - 10:00 A\n- Unassigned Tasks\n\t- [ ] Call bank\n\n## Daily Log\n",
        )

    def test_append_adds_separator_when_heading_is_adjacent(self) -> None:
        text = "## Daily Plan\n- 09:00 - 10:00 A\n## Daily Log\n"
        updated = append_to_section(text, "Daily Plan", "- Unassigned Tasks")
        self.assertEqual(updated, "## Daily Plan\n- 09:00 - 10:00 A\n- Unassigned Tasks\n\n## Daily Log\n")

    def test_append_at_end_of_document(self) -> None:
        text = "## Daily Plan\n- 09:00 - 10:00 A\n"
        updated = append_to_section(text, "Daily Plan", "- Unassigned Tasks")
        self.assertEqual(updated, "## Daily Plan\n- 09:00 - 10:00 A\n- Unassigned Tasks\n")

    def test_set_todo_state_only_touches_matching_line(self) -> None:
        text = NOTE + "## Other\n- 08:00 - 09:00 X\n\t- [ ] Draft report\n"
        updated = set_todo_state(text, "Daily Plan", "Draft report", True)
        self.assertIn("\t- [x] Draft report\n\t- [x] Email Sam", updated)
        self.assertTrue(updated.endswith("## Other\n- 08:00 - 09:00 X\n\t- [ ] Draft report\n"))
        self.assertEqual(len(updated), len(text))


if __name__ == "__main__":
    unittest.main()
