"""Prompt handed to the external analysis agent."""
from __future__ import annotations

from pathlib import Path

REPORT_CHAR_LIMIT = 3000

_PROMPT_TEMPLATE = """You are an expert AI agent evaluator. The current working directory is a Copilot CLI session folder. It contains the raw session data from an AI coding agent run. The session event log is also piped to you on standard input.

**Step 1 - Discover session files.** Run `ls -la` to see what's available, then note which files exist:
- `events.jsonl` - the main session event log (JSONL, one JSON event per line). Primary data source. May be large.
- `plan.md` - the agent's plan (if it exists).
- `workspace.yaml` - workspace configuration (if it exists).

**Step 2 - Spawn 3 sub-agents for parallel analysis.** First create the working directory: `mkdir -p {work_dir}`. Then launch ALL of the following sub-agents in a single message. Each sub-agent reads `events.jsonl` from `{session_dir}`, writes its findings to a file in `{work_dir}/` and returns a summary.

1. **Tool Usage Analyst** - tool selection quality, redundant or wasted calls, error recovery, call counts and durations. Write findings to `{work_dir}/tools.md`.
2. **Workflow Strategist** - planning quality, sequencing, sub-agent decomposition, backtracking. Write findings to `{work_dir}/workflow.md`.
3. **Performance Profiler** - time split between model thinking, tool execution and idle gaps, bottlenecks, missed concurrency. Write findings to `{work_dir}/performance.md`.

**Wait for ALL 3 sub-agents to complete before Step 3.**

**Step 3 - Synthesize the final report.** Read the intermediate files from `{work_dir}/`, write the final report to `{output_path}`, then remove `{work_dir}`.

The final report must be markdown with these sections:

## 🎯 Effectiveness Score: X/100
One-line verdict on how well the agent fulfilled the user's intent.

## 🔧 Tool Usage Analysis
## 🔄 Workflow & Strategy
## ⚡ Performance
## 💡 Top 3 Improvements

Tie every recommendation to specific evidence from the session data. Generic advice is useless.

IMPORTANT CONSTRAINTS:
- Be precise and concise. Every sentence must carry data or actionable insight.
- The entire report MUST be under {char_limit} characters (including markdown formatting).
"""


def build_insight_prompt(output_path: Path, work_dir: Path) -> str:
    return _PROMPT_TEMPLATE.format(
        session_dir=output_path.parent,
        work_dir=work_dir,
        output_path=output_path,
        char_limit=REPORT_CHAR_LIMIT,
    )
