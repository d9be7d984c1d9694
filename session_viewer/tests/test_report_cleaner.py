import unittest

from session_viewer.services.report_cleaner import clean_report


class ReportCleanerTests(unittest.TestCase):
    def test_slices_from_last_effectiveness_heading(self) -> None:
        raw = (
            "● Read events.jsonl\n"
            "## 🎯 Effectiveness Score\n\nDraft one\n"
            "● Write agent-review.md\n"
            "## 🎯 Effectiveness Score\n\nFinal: 8/10\n"
        )
        self.assertEqual(clean_report(raw), "## 🎯 Effectiveness Score\n\nFinal: 8/10")

    def test_falls_back_to_first_report_heading(self) -> None:
        raw = "Some preamble\n## 🔧 Tool Usage\n\nMostly shell.\n"
        self.assertEqual(clean_report(raw), "## 🔧 Tool Usage\n\nMostly shell.")

    def test_strips_thinking_and_meta_commentary(self) -> None:
        raw = "<thinking>\nprivate notes\n</thinking>\nLet me analyze this session.\n# Review\n\nOK"
        self.assertEqual(clean_report(raw), "# Review\n\nOK")

    def test_strips_tool_trace_without_headings(self) -> None:
        raw = "\n".join([
            "● Read events.jsonl",
            "    line of tool output",
            "  $ wc -l events.jsonl",
            "  └ 42 lines",
            "(+12 lines)",
            "Summary paragraph.",
            "",
            "",
            "",
            "Closing line.",
        ])
        self.assertEqual(clean_report(raw), "Summary paragraph.\n\nClosing line.")

    def test_empty_output(self) -> None:
        self.assertEqual(clean_report(""), "")


if __name__ == "__main__":
    unittest.main()
