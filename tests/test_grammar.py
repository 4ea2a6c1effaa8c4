import unittest

from daybridge.grammar import (
    LineKind,
    classify_line,
    render_checkbox,
    render_timed,
    strip_trailing_tag,
)


class ClassifyLineTests(unittest.TestCase):
    def test_heading(self) -> None:
        line = classify_line("## Daily Plan")
        self.assertIs(line.kind, LineKind.HEADING)
        self.assertEqual(line.title, "Daily Plan")

    def test_tagged_timed_line(self) -> None:
        line = classify_line("- 14:00 - 15:00 Review [Work]")
        self.assertIs(line.kind, LineKind.TIMED)
        self.assertEqual(line.start_time, "14:00")
        self.assertEqual(line.end_time, "15:00")
        self.assertEqual(line.title, "Review")
        self.assertEqual(line.tag, "Work")

    def test_untagged_timed_line(self) -> None:
        line = classify_line("- 9:00 - 10:30 Standup")
        self.assertIs(line.kind, LineKind.TIMED)
        self.assertEqual(line.start_time, "9:00")
        self.assertEqual(line.title, "Standup")
        self.assertIsNone(line.tag)

    def test_out_of_range_times_still_parse(self) -> None:
        line = classify_line("- 25:99 - 26:00 Late")
        self.assertIs(line.kind, LineKind.TIMED)
        self.assertEqual(line.start_time, "25:99")

    def test_checkbox_takes_priority_over_description(self) -> None:
        open_box = classify_line("\t- [ ] Draft report")
        done_box = classify_line("\t- [x] Send invoice")
        self.assertIs(open_box.kind, LineKind.CHECKBOX)
        self.assertFalse(open_box.checked)
        self.assertEqual(open_box.title, "Draft report")
        self.assertTrue(done_box.checked)
        self.assertTrue(done_box.is_child)

    def test_description(self) -> None:
        line = classify_line("\t- Room 4B")
        self.assertIs(line.kind, LineKind.DESCRIPTION)
        self.assertEqual(line.text, "Room 4B")

    def test_blank_and_other(self) -> None:
        self.assertIs(classify_line("").kind, LineKind.BLANK)
        self.assertIs(classify_line("   ").kind, LineKind.BLANK)
        self.assertIs(classify_line("Free text").kind, LineKind.OTHER)
        self.assertFalse(classify_line("Free text").is_section_body)

    def test_plain_list_item_is_section_body(self) -> None:
        line = classify_line("- Unassigned Tasks")
        self.assertIs(line.kind, LineKind.OTHER)
        self.assertTrue(line.is_section_body)


class RenderTests(unittest.TestCase):
    def test_render_timed_round_trips_through_classifier(self) -> None:
        rendered = render_timed("08:00", "09:00", "Gym", "Health")
        self.assertEqual(rendered, "- 08:00 - 09:00 Gym [Health]")
        line = classify_line(rendered)
        self.assertEqual((line.title, line.tag), ("Gym", "Health"))

    def test_render_timed_without_tag(self) -> None:
        self.assertEqual(render_timed("08:00", "09:00", "Gym"), "- 08:00 - 09:00 Gym")

    def test_render_checkbox(self) -> None:
        self.assertEqual(render_checkbox("Draft report", True), "\t- [x] Draft report")
        self.assertEqual(render_checkbox("Draft report", False), "\t- [ ] Draft report")

    def test_strip_trailing_tag(self) -> None:
        self.assertEqual(strip_trailing_tag("Review [Work]"), "Review")
        self.assertEqual(strip_trailing_tag("Review"), "Review")


if __name__ == "__main__":
    unittest.main()
