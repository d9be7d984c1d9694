import types
import unittest

from fastapi import HTTPException

from session_viewer.models import (
    DeleteInsightResult,
    InsightState,
    InsightStatus,
    Session,
    SessionDetail,
    SessionKind,
    SessionMetadata,
    SessionPage,
)
from session_viewer.routers import api as api_router
from session_viewer.services.insights import InsightLockError, InsightSourceMissingError


def _session(session_id: str = "S-1") -> Session:
    return Session(id=session_id, type=SessionKind.DIRECTORY, summary="Demo")


class _FakeSessionService:
    def __init__(self) -> None:
        self.page_calls: list[dict] = []
        self.event_calls: list[str] = []

    async def paginate_sessions(self, offset=0, limit=20, query=None):
        self.page_calls.append({"offset": offset, "limit": limit, "query": query})
        return SessionPage(sessions=[_session()], total=1, offset=offset, limit=limit, hasMore=False)

    async def get_session(self, session_id):
        return _session(session_id) if session_id == "S-1" else None

    async def get_session_events(self, session_id):
        self.event_calls.append(session_id)
        return [{"type": "user.message", "_fileIndex": 0}]

    async def get_session_with_events(self, session_id):
        if session_id != "S-1":
            return None
        session = _session(session_id)
        return SessionDetail(session=session, events=[], metadata=SessionMetadata.from_session(session))


class _FakeInsightManager:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.generate_calls: list[dict] = []

    async def generate_insight(self, session_id, force=False):
        self.generate_calls.append({"session_id": session_id, "force": force})
        if self.error is not None:
            raise self.error
        return InsightStatus(status=InsightState.GENERATING)

    async def get_insight_status(self, session_id):
        return InsightStatus(status=InsightState.NOT_STARTED)

    async def delete_insight(self, session_id):
        return DeleteInsightResult(success=True, message="Insight file not found")


class SessionsApiRouterTests(unittest.IsolatedAsyncioTestCase):
    def _request(self, service=None, manager=None):
        return types.SimpleNamespace(
            app=types.SimpleNamespace(
                state=types.SimpleNamespace(session_service=service, insight_manager=manager)
            )
        )

    async def test_list_sessions_passes_pagination_and_query(self) -> None:
        service = _FakeSessionService()
        page = await api_router.list_sessions(self._request(service), offset=20, limit=10, q="widget")

        self.assertEqual(page.total, 1)
        self.assertEqual(service.page_calls, [{"offset": 20, "limit": 10, "query": "widget"}])

    async def test_get_session_not_found_is_404(self) -> None:
        request = self._request(_FakeSessionService())

        session = await api_router.get_session(request, "S-1")
        self.assertEqual(session.id, "S-1")

        with self.assertRaises(HTTPException) as ctx:
            await api_router.get_session(request, "S-2")
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_invalid_id_is_400_and_never_reaches_service(self) -> None:
        service = _FakeSessionService()
        request = self._request(service, _FakeInsightManager())

        for handler in (
            api_router.get_session,
            api_router.get_session_events,
            api_router.get_session_detail,
            api_router.get_insight_status,
            api_router.delete_insight,
        ):
            with self.assertRaises(HTTPException) as ctx:
                await handler(request, "../etc")
            self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(service.event_calls, [])

    async def test_detail_and_events(self) -> None:
        request = self._request(_FakeSessionService())

        detail = await api_router.get_session_detail(request, "S-1")
        events = await api_router.get_session_events(request, "S-1")

        self.assertEqual(detail.session.id, "S-1")
        self.assertEqual(events[0]["_fileIndex"], 0)
        with self.assertRaises(HTTPException) as ctx:
            await api_router.get_session_detail(request, "S-2")
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_missing_services_are_503(self) -> None:
        request = self._request()
        with self.assertRaises(HTTPException) as ctx:
            await api_router.get_session(request, "S-1")
        self.assertEqual(ctx.exception.status_code, 503)
        with self.assertRaises(HTTPException) as ctx:
            await api_router.get_insight_status(request, "S-1")
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_generate_insight_forwards_force(self) -> None:
        manager = _FakeInsightManager()
        request = self._request(manager=manager)

        await api_router.generate_insight(request, "S-1")
        await api_router.generate_insight(request, "S-1", api_router.GenerateInsightRequest(force=True))

        self.assertEqual(
            manager.generate_calls,
            [{"session_id": "S-1", "force": False}, {"session_id": "S-1", "force": True}],
        )

    async def test_generate_insight_error_mapping(self) -> None:
        cases = (
            (InsightSourceMissingError("Events file not found"), 404),
            (InsightLockError("Failed to acquire lock"), 500),
        )
        for error, expected in cases:
            request = self._request(manager=_FakeInsightManager(error=error))
            with self.assertRaises(HTTPException) as ctx:
                await api_router.generate_insight(request, "S-1")
            self.assertEqual(ctx.exception.status_code, expected)

    async def test_insight_status_and_delete(self) -> None:
        request = self._request(manager=_FakeInsightManager())

        status = await api_router.get_insight_status(request, "S-1")
        deleted = await api_router.delete_insight(request, "S-1")

        self.assertEqual(status.status, InsightState.NOT_STARTED)
        self.assertTrue(deleted.success)


if __name__ == "__main__":
    unittest.main()
