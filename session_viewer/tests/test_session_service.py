import json
import tempfile
import unittest
from pathlib import Path

from session_viewer.models import Session, SessionKind
from session_viewer.services.sessions import SessionService, matches_query


class _FakeRepo:
    def __init__(self, sessions: list[Session]) -> None:
        self.sessions = sessions
        self.find_all_calls = 0

    async def find_all(self):
        self.find_all_calls += 1
        return list(self.sessions)

    async def find_by_id(self, session_id):
        return next((s for s in self.sessions if s.id == session_id), None)


def _session(index: int, **overrides) -> Session:
    payload = {
        "id": f"S-{index:02d}",
        "type": SessionKind.DIRECTORY,
        "summary": f"Session {index}",
        "updatedAt": f"2026-01-{(index % 28) + 1:02d}T00:00:00Z",
    }
    payload.update(overrides)
    return Session(**payload)


class SessionPaginationTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.repo = _FakeRepo([_session(i) for i in range(25)])
        self.service = SessionService(Path("/nonexistent"), repository=self.repo, cache_ttl_seconds=0)

    async def test_last_item_page(self) -> None:
        page = await self.service.paginate_sessions(offset=24, limit=1)
        self.assertEqual(len(page.sessions), 1)
        self.assertEqual(page.sessions[0].id, "S-24")
        self.assertFalse(page.hasMore)
        self.assertEqual(page.total, 25)

    async def test_offset_past_end_returns_empty_page(self) -> None:
        page = await self.service.paginate_sessions(offset=25, limit=1)
        self.assertEqual(page.sessions, [])
        self.assertFalse(page.hasMore)

    async def test_partial_final_page(self) -> None:
        page = await self.service.paginate_sessions(offset=20, limit=10)
        self.assertEqual(len(page.sessions), 5)
        self.assertFalse(page.hasMore)

    async def test_first_page_has_more(self) -> None:
        page = await self.service.paginate_sessions(offset=0, limit=20)
        self.assertEqual(len(page.sessions), 20)
        self.assertTrue(page.hasMore)
        self.assertEqual(page.offset, 0)
        self.assertEqual(page.limit, 20)

    async def test_invalid_parameters_raise(self) -> None:
        for offset, limit in ((-1, 10), (0, 0), (0, 101)):
            with self.assertRaises(ValueError):
                await self.service.paginate_sessions(offset=offset, limit=limit)

    async def test_search_filters_before_paginating(self) -> None:
        self.repo.sessions.append(
            _session(99, summary="Upgrade widgets", workspace={"repository": "octo/Widgets", "branch": "main"})
        )
        self.repo.sessions.append(_session(98, summary="Other", selectedModel="claude-widget-1"))

        page = await self.service.paginate_sessions(offset=0, limit=1, query="WIDGET")

        self.assertEqual(page.total, 2)
        self.assertEqual(len(page.sessions), 1)
        self.assertTrue(page.hasMore)

    async def test_blank_query_matches_everything(self) -> None:
        page = await self.service.paginate_sessions(offset=0, limit=100, query="   ")
        self.assertEqual(page.total, 25)


class SessionQueryTests(unittest.TestCase):
    def test_matches_workspace_values_and_id(self) -> None:
        session = _session(1, workspace={"cwd": "/Users/dev/ProjectX"})
        self.assertTrue(matches_query(session, "projectx"))
        self.assertTrue(matches_query(session, "s-01"))
        self.assertFalse(matches_query(session, "nothing"))


class SessionCacheTests(unittest.IsolatedAsyncioTestCase):
    async def test_listing_is_cached_until_invalidated(self) -> None:
        repo = _FakeRepo([_session(1)])
        service = SessionService(Path("/nonexistent"), repository=repo, cache_ttl_seconds=60)

        await service.list_sessions()
        await service.list_sessions()
        self.assertEqual(repo.find_all_calls, 1)

        service.invalidate()
        await service.list_sessions()
        self.assertEqual(repo.find_all_calls, 2)

    async def test_zero_ttl_disables_cache(self) -> None:
        repo = _FakeRepo([_session(1)])
        service = SessionService(Path("/nonexistent"), repository=repo, cache_ttl_seconds=0)

        await service.list_sessions()
        await service.list_sessions()

        self.assertEqual(repo.find_all_calls, 2)


class SessionDetailTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.root = Path(self.tmpdir.name)
        self.service = SessionService(self.root, cache_ttl_seconds=0)

    def _make_session(self, name: str, events: list[dict], workspace: str = "summary: Demo\nrepository: octo/demo\nbranch: main\ncwd: /src\n") -> None:
        path = self.root / name
        path.mkdir()
        (path / "workspace.yaml").write_text(workspace, encoding="utf-8")
        (path / "events.jsonl").write_text("\n".join(json.dumps(e) for e in events) + "\n", encoding="utf-8")

    async def test_detail_overrides_model_and_dates_from_events(self) -> None:
        self._make_session(
            "detail",
            [
                {"type": "session.start", "timestamp": "2026-02-16T10:00:00Z", "data": {"selectedModel": "claude-sonnet", "copilotVersion": "1.2.3"}},
                {"type": "user.message", "timestamp": "2026-02-16T10:00:01Z", "data": {"content": "go"}},
                {"type": "session.model_change", "timestamp": "2026-02-16T10:00:02Z", "data": {"newModel": "gpt-5"}},
                {"type": "assistant.message", "timestamp": "2026-02-16T10:05:00Z", "data": {}},
            ],
        )

        detail = await self.service.get_session_with_events("detail")

        assert detail is not None
        self.assertEqual(len(detail.events), 4)
        self.assertEqual(detail.metadata.model, "gpt-5")
        self.assertEqual(detail.metadata.created, "2026-02-16T10:00:00Z")
        self.assertEqual(detail.metadata.updated, "2026-02-16T10:05:00Z")
        self.assertEqual(detail.metadata.repo, "octo/demo")
        self.assertEqual(detail.metadata.branch, "main")
        self.assertEqual(detail.metadata.cwd, "/src")
        self.assertEqual(detail.metadata.copilotVersion, "1.2.3")
        self.assertEqual(detail.session.selectedModel, "claude-sonnet")

    async def test_detail_keeps_session_dates_when_events_untimed(self) -> None:
        self._make_session(
            "untimed",
            [{"type": "user.message", "data": {"content": "hello"}}],
            workspace="created_at: 2026-01-01T00:00:00Z\nupdated_at: 2026-01-02T00:00:00Z\n",
        )

        detail = await self.service.get_session_with_events("untimed")

        self.assertEqual(detail.metadata.created, "2026-01-01T00:00:00Z")
        self.assertEqual(detail.metadata.updated, "2026-01-02T00:00:00Z")
        self.assertEqual(detail.metadata.summary, "hello")

    async def test_missing_session_returns_none(self) -> None:
        self.assertIsNone(await self.service.get_session_with_events("missing"))
        self.assertIsNone(await self.service.get_session("../etc"))
        self.assertEqual(await self.service.get_session_events("../etc"), [])


if __name__ == "__main__":
    unittest.main()
