import unittest
from pathlib import Path

from watchfiles import Change

from session_viewer.file_watcher import is_relevant_change

ROOT = Path("/data/sessions")


class FileWatcherFilterTests(unittest.TestCase):
    def test_session_files_are_relevant(self) -> None:
        for name in ("events.jsonl", "workspace.yaml", "agent-review.md", ".imported"):
            self.assertTrue(is_relevant_change(Change.modified, ROOT / "abc" / name, ROOT), name)
        self.assertTrue(is_relevant_change(Change.added, ROOT / "legacy.jsonl", ROOT))

    def test_new_or_removed_session_directory_is_relevant(self) -> None:
        self.assertTrue(is_relevant_change(Change.added, ROOT / "abc", ROOT))
        self.assertTrue(is_relevant_change(Change.deleted, ROOT / "abc", ROOT))

    def test_scratch_files_are_ignored(self) -> None:
        self.assertFalse(is_relevant_change(Change.modified, ROOT / "abc" / "agent-review.md.tmp", ROOT))
        self.assertFalse(is_relevant_change(Change.modified, ROOT / "abc" / "agent-review.md.lock", ROOT))
        self.assertFalse(is_relevant_change(Change.modified, ROOT / "abc", ROOT))


if __name__ == "__main__":
    unittest.main()
