"""Best-effort extraction of the markdown report from analysis agent output.

The agent CLI interleaves its tool-call trace (``● Tool``, ``  $ cmd``,
``  └ output``) with the report on stdout. Nothing here is a parser with
guarantees; each step is a heuristic tried in order:

1. slice from the *last* ``## 🎯 Effectiveness Score`` heading (the agent
   sometimes drafts the report more than once);
2. otherwise slice from the first report-style ``##`` heading;
3. otherwise drop recognised trace lines one by one.
"""
from __future__ import annotations

import re

_THINKING_BLOCK = re.compile(r"<thinking>[\s\S]*?</thinking>")
_META_COMMENTARY = re.compile(
    r"^(Let me analyze|I'll analyze|Analyzing|Here's my analysis of|I need the session data).*$",
    re.MULTILINE,
)
_REPORT_START = re.compile(r"^## 🎯\s*Effectiveness Score", re.MULTILINE)
_ANY_REPORT_HEADING = re.compile(r"^## [🎯🔧🔄⚡💡#]", re.MULTILINE)
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

_TOOL_HEADER = re.compile(r"^● ")
_SHELL_COMMAND = re.compile(r"^ {2}\$ ")
_OUTPUT_SUMMARY = re.compile(r"^ {2}└ ")
_WRITE_INDICATOR = re.compile(r"^\(\+\d+ lines?\)")


def _strip_trace_lines(report: str) -> str:
    cleaned: list[str] = []
    skip_block = False
    for line in report.split("\n"):
        if _TOOL_HEADER.match(line) or _SHELL_COMMAND.match(line):
            skip_block = True
            continue
        if _OUTPUT_SUMMARY.match(line):
            skip_block = False
            continue
        if _WRITE_INDICATOR.match(line):
            continue
        # Indented lines after a tool header are its output.
        if skip_block and line.strip() and not line.startswith("  "):
            skip_block = False
        if skip_block:
            continue
        cleaned.append(line)
    return "\n".join(cleaned)


def clean_report(report: str) -> str:
    report = _THINKING_BLOCK.sub("", report)
    report = _META_COMMENTARY.sub("", report)

    starts = list(_REPORT_START.finditer(report))
    if starts:
        report = report[starts[-1].start():]
    else:
        heading = _ANY_REPORT_HEADING.search(report)
        if heading:
            report = report[heading.start():]
        else:
            report = _strip_trace_lines(report)

    return _EXCESS_BLANK_LINES.sub("\n\n", report).strip()
