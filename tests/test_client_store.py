"""
Client store and API wrapper, exercised against a mocked requests session.

No server runs here: ``_resp`` builds fake ``requests.Response`` objects and
``_routes`` dispatches them by method and path.
"""

import io
from unittest.mock import MagicMock

import pytest
import requests

from qssun_reports.client import ApiClient, ApiError, AppStore, StoreActionError
from qssun_reports.client.payloads import strip_report_files, strip_workflow_documents

BASE = "http://api.test/api/v1"

USER = {"id": "7", "employeeId": "1001", "name": "Sales Employee", "role": "Employee"}


def _resp(status=200, body=None, reason="OK"):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.reason = reason
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    return resp


def _routes(table):
    """session.request side effect answering from ``{(METHOD, path): response}``."""
    def handler(method, url, **kwargs):
        path = url[len(BASE):]
        return table[(method, path)]
    return handler


def _store(table, notifier=None):
    session = MagicMock()
    session.request.side_effect = _routes(table)
    api = ApiClient(base_url=BASE, session=session)
    return AppStore(api=api, notifier=notifier), session


def _initial_routes(**extra):
    table = {
        ("GET", "/reports"): _resp(body=[]),
        ("GET", "/users"): _resp(body=[USER]),
        ("GET", "/branches"): _resp(body=[]),
        ("GET", "/teams"): _resp(body=[]),
        ("GET", "/workflow-requests"): _resp(body=[]),
        ("GET", "/notifications/7"): _resp(body={"items": [{"id": "1", "isRead": False}], "unreadCount": 1}),
    }
    table.update(extra)
    return table


class TestApiClient:
    def test_bearer_token_and_url(self):
        session = MagicMock()
        session.request.return_value = _resp(body={"ok": True})
        api = ApiClient(base_url=BASE + "/", session=session)
        api.token = "abc"

        assert api.get("/reports", params={"type": "Sales"}) == {"ok": True}
        args, kwargs = session.request.call_args
        assert args == ("GET", f"{BASE}/reports")
        assert kwargs["headers"] == {"Authorization": "Bearer abc"}
        assert kwargs["params"] == {"type": "Sales"}
        assert kwargs["timeout"] == 30

    def test_error_message_from_body(self):
        session = MagicMock()
        session.request.return_value = _resp(422, {"error": "Previous stages must be completed first",
                                                   "details": {"blocking": ["contract"]}}, "Unprocessable")
        api = ApiClient(base_url=BASE, session=session)
        with pytest.raises(ApiError) as exc:
            api.put("/reports/1", json={})
        assert exc.value.status_code == 422
        assert exc.value.message == "Previous stages must be completed first"
        assert exc.value.payload["details"] == {"blocking": ["contract"]}

    def test_error_without_body(self):
        session = MagicMock()
        session.request.return_value = _resp(502, None, "Bad Gateway")
        with pytest.raises(ApiError) as exc:
            ApiClient(base_url=BASE, session=session).get("/reports")
        assert exc.value.message == "Bad Gateway"

    def test_network_failure(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ApiError) as exc:
            ApiClient(base_url=BASE, session=session).get("/reports")
        assert exc.value.status_code is None

    def test_base_url_from_env(self, monkeypatch):
        monkeypatch.setenv("QSSUN_API_BASE_URL", "http://elsewhere/api/v1/")
        assert ApiClient(session=MagicMock()).base_url == "http://elsewhere/api/v1"


class TestSession:
    def test_login_loads_everything(self):
        table = _initial_routes()
        table[("POST", "/login")] = _resp(body={"user": USER, "access_token": "tok", "token_type": "Bearer"})
        store, session = _store(table)

        user = store.login("1001", "secret123")
        assert user == USER
        assert store.api.token == "tok"
        assert store.users == [USER]
        assert store.unread_count == 1
        paths = [c.args[1][len(BASE):] for c in session.request.call_args_list]
        assert paths[0] == "/login"
        assert "/notifications/7" in paths

    def test_failed_login_toasts(self):
        notifier = MagicMock()
        store, _ = _store({("POST", "/login"): _resp(401, {"error": "Invalid password"}, "Unauthorized")},
                          notifier=notifier)
        with pytest.raises(StoreActionError) as exc:
            store.login("1001", "bad")
        assert exc.value.status_code == 401
        assert exc.value.message == "Invalid password"
        notifier.assert_called_once_with("فشل تسجيل الدخول", "error")
        assert store.current_user is None

    def test_logout_clears_cache(self):
        store, _ = _store({})
        store.current_user = USER
        store.reports = [{"id": "1"}]
        store.api.token = "tok"
        store.logout()
        assert store.current_user is None
        assert store.reports == []
        assert store.api.token is None


class TestReportActions:
    def test_add_report_sends_pending_uploads(self):
        created = {"id": "5", "type": "Project"}
        store, session = _store({("POST", "/reports"): _resp(201, created)})
        store.current_user = USER
        upload = ("contract.pdf", io.BytesIO(b"%PDF"))

        store.add_report({
            "type": "Project",
            "details": {"updates": [{"id": "contract", "completed": True, "files": [{"file": upload}]}]},
        })

        kwargs = session.request.call_args.kwargs
        assert kwargs["files"] == [("project_update_0_files", upload)]
        assert '"employeeId": "1001"' in kwargs["data"]["reportData"]
        assert store.reports == [created]

    def test_update_report_replaces_cached_entry(self):
        updated = {"id": "5", "status": "Approved"}
        store, _ = _store({("PUT", "/reports/5"): _resp(body=updated)})
        store.current_user = USER
        store.reports = [{"id": "4"}, {"id": "5", "status": "Pending"}]
        store.update_report("5", {"type": "Sales", "status": "Approved"})
        assert store.reports == [{"id": "4"}, updated]

    def test_gating_failure_keeps_cache(self):
        notifier = MagicMock()
        store, _ = _store({("PUT", "/reports/5"): _resp(422, {"error": "Previous stages must be completed first"})},
                          notifier=notifier)
        store.current_user = USER
        store.reports = [{"id": "5", "status": "Pending"}]
        with pytest.raises(StoreActionError) as exc:
            store.update_report("5", {"type": "Project", "details": {"updates": []}})
        assert exc.value.action == "update_report"
        assert store.reports == [{"id": "5", "status": "Pending"}]
        notifier.assert_called_once_with("فشل تحديث التقرير", "error")

    def test_confirm_stage_multipart(self):
        store, session = _store({("POST", "/reports/5/confirm-stage"): _resp(body={"id": "5"})})
        store.current_user = USER
        upload = ("pour.jpg", io.BytesIO(b"jpg"))
        store.confirm_project_stage("5", "concreteWorks", comment="done", files=[upload])
        kwargs = session.request.call_args.kwargs
        assert kwargs["data"] == {"stageId": "concreteWorks", "comment": "done", "employeeId": "1001"}
        assert kwargs["files"] == [("files", upload)]

    def test_accept_sends_json(self):
        store, session = _store({("POST", "/reports/5/accept"): _resp(body={"id": "5"})})
        store.current_user = USER
        store.accept_project_assignment("5")
        assert session.request.call_args.kwargs["json"] == {"employeeId": "1001"}

    def test_delete_report(self):
        store, _ = _store({("DELETE", "/reports/5"): _resp(body={"message": "Report deleted"})})
        store.current_user = USER
        store.reports = [{"id": "5"}]
        store.delete_report("5")
        assert store.reports == []


class TestRequestActions:
    def test_advance_encodes_documents(self):
        store, session = _store({("POST", "/workflow-requests/REQ-0001/advance"): _resp(body={"id": "REQ-0001"})})
        store.current_user = USER
        fileobj = io.BytesIO(b"%PDF")
        store.advance_request("REQ-0001", comment="ok", documents=[
            {"id": "d1", "type": "Price Quote", "fileName": "quote.pdf", "file": ("raw.pdf", fileobj)},
            {"id": "d0", "type": "Other", "url": "/api/v1/uploads/x", "fileName": "old.pdf"},
        ])
        kwargs = session.request.call_args.kwargs
        assert kwargs["files"] == [("documents", ("d1___Price Quote___quote.pdf", fileobj))]
        assert '"d0"' in kwargs["data"]["requestData"]
        assert store.requests == [{"id": "REQ-0001"}]

    def test_can_advance(self):
        request = {"currentStageId": 1}
        assert AppStore.missing_documents(request, []) == ["Price Quote"]
        assert AppStore.can_advance(request, [{"type": "Price Quote"}])
        stage_two = {"currentStageId": 2}
        assert not AppStore.can_advance(stage_two, [{"type": "Purchase Order"}])
        assert AppStore.can_advance(stage_two, [{"type": "Purchase Order"}],
                                    {"expectedDepartureDate": "2026-11-01", "departurePort": "Jeddah"})
        assert not AppStore.can_advance({"currentStageId": 7}, [])


class TestNotifications:
    def test_mark_read_is_optimistic(self):
        notifier = MagicMock()
        store, _ = _store({("POST", "/notifications/read/7"): _resp(500, {"error": "boom"})}, notifier=notifier)
        store.current_user = USER
        store.notifications = [{"id": "1", "isRead": False}]
        store.unread_count = 1
        with pytest.raises(StoreActionError):
            store.mark_all_notifications_read()
        assert store.notifications == [{"id": "1", "isRead": True}]
        assert store.unread_count == 0
        notifier.assert_called_once_with("فشل تحديث الإشعارات", "error")


class TestGuards:
    def test_can_proceed(self):
        report = {"details": {"updates": [
            {"id": "contract", "completed": True},
            {"id": "firstPayment", "completed": False},
        ]}}
        assert AppStore.can_proceed(report, "firstPayment")
        assert not AppStore.can_proceed(report, "notifyTeam")

    def test_assignable_and_led_team(self):
        store, _ = _store({})
        store.current_user = {"id": "9", "employeeId": "2001"}
        store.teams = [{"id": "1", "leaderId": "9"}, {"id": "2", "leaderId": "8"}]
        store.reports = [{"id": "10", "type": "Project", "assignedTeamId": "1",
                          "projectWorkflowStatus": "InProgress"}]
        assert [t["id"] for t in store.assignable_teams()] == ["2"]
        assert [t["id"] for t in store.assignable_teams(report_id="10")] == ["1", "2"]
        assert store.led_team()["id"] == "1"


class TestPayloads:
    def test_strip_report_files_keeps_stored(self):
        stored = {"url": "/api/v1/uploads/a", "fileName": "a.jpg"}
        pending = ("b.jpg", io.BytesIO(b"b"))
        data, files = strip_report_files({
            "type": "Maintenance",
            "details": {"beforeImages": [stored, {"file": pending}]},
        })
        assert data["details"]["beforeImages"] == [stored]
        assert files == [("maintenance_beforeImages", pending)]

    def test_strip_workflow_documents_without_uploads(self):
        kept, files = strip_workflow_documents([{"id": "d0", "type": "Other"}])
        assert kept == [{"id": "d0", "type": "Other"}]
        assert files == []
