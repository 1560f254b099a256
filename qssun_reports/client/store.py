"""
Client-side application store.

Holds the cached collections a screen renders from and exposes one method
per user action. Every action builds the payload, calls the API and, on
success, replaces the cached entry by id. On failure it emits an Arabic
toast through the pluggable ``notifier`` and re-raises ``StoreActionError``.
Only the notification read-state is updated optimistically; nothing is
retried or rolled back.
"""

from __future__ import annotations

import logging

from qssun_reports.client.api import ApiClient, ApiError
from qssun_reports.client.payloads import (
    file_tuples,
    multipart,
    strip_report_files,
    strip_workflow_documents,
)
from qssun_reports.models.report import ACTIVE_PROJECT_STATUSES
from qssun_reports.models.workflow import DEPARTURE_STAGE_ID, FINAL_STAGE_ID, get_stage
from qssun_reports.services import project_workflow as pw

logger = logging.getLogger(__name__)

# action -> toast shown when it fails
FAILURE_TOASTS = {
    "login": "فشل تسجيل الدخول",
    "fetch_initial_data": "فشل تحميل البيانات",
    "add_report": "فشل إضافة التقرير",
    "update_report": "فشل تحديث التقرير",
    "delete_report": "فشل حذف التقرير",
    "confirm_project_stage": "فشل تأكيد المرحلة",
    "accept_project_assignment": "فشل قبول المشروع",
    "finish_project": "فشل إنهاء المشروع",
    "add_project_exception": "فشل إضافة الاستثناء",
    "add_note": "فشل إضافة الملاحظة",
    "add_reply": "فشل إضافة الرد",
    "mark_notes_read": "فشل تحديث حالة الملاحظات",
    "create_request": "فشل إنشاء الطلب",
    "update_request": "فشل تحديث الطلب",
    "advance_request": "فشل نقل الطلب إلى المرحلة التالية",
    "edit_history_item": "فشل تعديل سجل المرحلة",
    "delete_request": "فشل حذف الطلب",
    "add_user": "فشل إضافة الموظف",
    "update_user": "فشل تحديث بيانات الموظف",
    "delete_user": "فشل حذف الموظف",
    "add_branch": "فشل إضافة الفرع",
    "update_branch": "فشل تحديث الفرع",
    "delete_branch": "فشل حذف الفرع",
    "add_team": "فشل إضافة الفريق",
    "update_team": "فشل تحديث الفريق",
    "delete_team": "فشل حذف الفريق",
    "fetch_notifications": "فشل تحميل الإشعارات",
    "mark_all_notifications_read": "فشل تحديث الإشعارات",
}
DEFAULT_FAILURE_TOAST = "حدث خطأ غير متوقع"


class StoreActionError(Exception):
    """A store action failed; carries the HTTP status and server message."""

    def __init__(self, action: str, status_code: int | None, message: str) -> None:
        self.action = action
        self.status_code = status_code
        self.message = message
        super().__init__(f"{action} failed: {message}")


def _log_notifier(message, kind="error"):
    logger.info("[%s] %s", kind, message)


def _replace(collection: list, item: dict) -> None:
    """Replace the entry with the same id, or prepend it."""
    for i, existing in enumerate(collection):
        if str(existing.get("id")) == str(item.get("id")):
            collection[i] = item
            return
    collection.insert(0, item)


def _remove(collection: list, item_id) -> None:
    collection[:] = [x for x in collection if str(x.get("id")) != str(item_id)]


class AppStore:
    """Cached state + actions for one signed-in user."""

    def __init__(self, api: ApiClient | None = None, notifier=None) -> None:
        self.api = api or ApiClient()
        self.notifier = notifier or _log_notifier
        self.current_user: dict | None = None
        self.reports: list[dict] = []
        self.users: list[dict] = []
        self.branches: list[dict] = []
        self.teams: list[dict] = []
        self.requests: list[dict] = []
        self.notifications: list[dict] = []
        self.unread_count = 0

    # ── Plumbing ─────────────────────────────────────────────────────────

    def _call(self, action, fn):
        try:
            return fn()
        except ApiError as exc:
            self.notifier(FAILURE_TOASTS.get(action, DEFAULT_FAILURE_TOAST), "error")
            raise StoreActionError(action, exc.status_code, exc.message) from exc

    def _actor(self, payload=None) -> dict:
        """Attach the caller's employeeId to a payload."""
        body = dict(payload or {})
        if self.current_user:
            body.setdefault("employeeId", self.current_user["employeeId"])
        return body

    def _admin_payload(self, payload) -> dict:
        body = dict(payload or {})
        if self.current_user:
            body["actorEmployeeId"] = self.current_user["employeeId"]
        return body

    # ── Session ──────────────────────────────────────────────────────────

    def login(self, employee_id: str, password: str) -> dict:
        body = self._call("login", lambda: self.api.post(
            "/login", json={"employeeId": employee_id, "password": password},
        ))
        self.api.token = body.get("access_token")
        self.current_user = body["user"]
        self.fetch_initial_data()
        return self.current_user

    def logout(self) -> None:
        self.api.token = None
        self.current_user = None
        self.reports, self.users, self.branches = [], [], []
        self.teams, self.requests, self.notifications = [], [], []
        self.unread_count = 0

    def fetch_initial_data(self) -> None:
        """Rebuild every cached collection from the server."""
        def load():
            self.reports = self.api.get("/reports", params=self._viewer_params()) or []
            self.users = self.api.get("/users") or []
            self.branches = self.api.get("/branches") or []
            self.teams = self.api.get("/teams") or []
            self.requests = self.api.get("/workflow-requests") or []

        self._call("fetch_initial_data", load)
        if self.current_user:
            self.fetch_notifications()

    def _viewer_params(self):
        return {"employeeId": self.current_user["employeeId"]} if self.current_user else None

    # ── Reports ──────────────────────────────────────────────────────────

    def add_report(self, report_data: dict) -> dict:
        data, files = strip_report_files(self._actor(report_data))
        report = self._call("add_report", lambda: self.api.post(
            "/reports", **multipart("reportData", data, files),
        ))
        self.reports.insert(0, report)
        return report

    def update_report(self, report_id, report_data: dict) -> dict:
        data, files = strip_report_files(self._actor(report_data))
        report = self._call("update_report", lambda: self.api.put(
            f"/reports/{report_id}", **multipart("reportData", data, files),
        ))
        _replace(self.reports, report)
        return report

    def delete_report(self, report_id) -> None:
        self._call("delete_report", lambda: self.api.delete(
            f"/reports/{report_id}", json=self._actor(),
        ))
        _remove(self.reports, report_id)

    def _project_action(self, action, path, *, form=None, files=None, json=None):
        if files:
            kwargs = {"data": self._actor(form), "files": files}
        else:
            kwargs = {"json": self._actor({**(form or {}), **(json or {})})}
        report = self._call(action, lambda: self.api.post(path, **kwargs))
        _replace(self.reports, report)
        return report

    def confirm_project_stage(self, report_id, stage_id: str, comment=None, files=None) -> dict:
        form = {"stageId": stage_id}
        if comment:
            form["comment"] = comment
        return self._project_action(
            "confirm_project_stage", f"/reports/{report_id}/confirm-stage",
            form=form, files=file_tuples("files", files),
        )

    def accept_project_assignment(self, report_id) -> dict:
        return self._project_action("accept_project_assignment", f"/reports/{report_id}/accept")

    def finish_project(self, report_id, comment=None) -> dict:
        return self._project_action(
            "finish_project", f"/reports/{report_id}/finish", json={"comment": comment} if comment else None,
        )

    def add_project_exception(self, report_id, comment: str, files=None) -> dict:
        return self._project_action(
            "add_project_exception", f"/reports/{report_id}/add-exception",
            form={"comment": comment}, files=file_tuples("files", files),
        )

    # ── Notes ────────────────────────────────────────────────────────────

    def add_note(self, report_id, content: str) -> dict:
        report = self._call("add_note", lambda: self.api.post(
            f"/reports/{report_id}/notes", json=self._actor({"content": content}),
        ))
        _replace(self.reports, report)
        return report

    def add_reply(self, report_id, note_id: str, content: str) -> dict:
        report = self._call("add_reply", lambda: self.api.post(
            f"/reports/{report_id}/notes/{note_id}/reply", json=self._actor({"content": content}),
        ))
        _replace(self.reports, report)
        return report

    def mark_notes_read(self, report_id) -> dict:
        report = self._call("mark_notes_read", lambda: self.api.post(
            f"/reports/{report_id}/notes/read", json=self._actor(),
        ))
        _replace(self.reports, report)
        return report

    # ── Import / export requests ─────────────────────────────────────────

    def _request_call(self, action, method, path, data, documents=None):
        kept, files = strip_workflow_documents(documents)
        payload = self._actor(data)
        if documents is not None:
            payload["documents"] = kept
        req = self._call(action, lambda: method(path, **multipart("requestData", payload, files)))
        _replace(self.requests, req)
        return req

    def create_request(self, data: dict) -> dict:
        return self._request_call("create_request", self.api.post, "/workflow-requests", data)

    def update_request(self, request_id, data: dict, documents=None) -> dict:
        return self._request_call(
            "update_request", self.api.put, f"/workflow-requests/{request_id}", data, documents,
        )

    def advance_request(self, request_id, *, comment="", documents=None, logistics=None) -> dict:
        data = {"comment": comment, **(logistics or {})}
        return self._request_call(
            "advance_request", self.api.post, f"/workflow-requests/{request_id}/advance",
            data, documents or [],
        )

    def edit_history_item(self, request_id, sequence: int, *, comment=None, documents=None) -> dict:
        data = {} if comment is None else {"comment": comment}
        return self._request_call(
            "edit_history_item", self.api.put,
            f"/workflow-requests/{request_id}/history/{sequence}", data, documents,
        )

    def delete_request(self, request_id) -> None:
        self._call("delete_request", lambda: self.api.delete(
            f"/workflow-requests/{request_id}", json=self._actor(),
        ))
        _remove(self.requests, request_id)

    # ── Users / branches / teams ─────────────────────────────────────────

    def add_user(self, data: dict) -> dict:
        user = self._call("add_user", lambda: self.api.post("/users", json=self._admin_payload(data)))
        self.users.insert(0, user)
        return user

    def update_user(self, user_id, data: dict) -> dict:
        user = self._call("update_user", lambda: self.api.put(
            f"/users/{user_id}", json=self._admin_payload(data),
        ))
        _replace(self.users, user)
        if self.current_user and str(self.current_user.get("id")) == str(user["id"]):
            self.current_user = user
        return user

    def delete_user(self, user_id) -> None:
        self._call("delete_user", lambda: self.api.delete(
            f"/users/{user_id}", json=self._admin_payload({}),
        ))
        _remove(self.users, user_id)

    def _save(self, action, collection, method, path, data):
        item = self._call(action, lambda: method(path, json=self._actor(data)))
        _replace(collection, item)
        return item

    def _delete(self, action, collection, path, item_id):
        self._call(action, lambda: self.api.delete(path, json=self._actor()))
        _remove(collection, item_id)

    def add_branch(self, data: dict) -> dict:
        return self._save("add_branch", self.branches, self.api.post, "/branches", data)

    def update_branch(self, branch_id, data: dict) -> dict:
        return self._save("update_branch", self.branches, self.api.put, f"/branches/{branch_id}", data)

    def delete_branch(self, branch_id) -> None:
        self._delete("delete_branch", self.branches, f"/branches/{branch_id}", branch_id)

    def add_team(self, data: dict) -> dict:
        return self._save("add_team", self.teams, self.api.post, "/teams", data)

    def update_team(self, team_id, data: dict) -> dict:
        return self._save("update_team", self.teams, self.api.put, f"/teams/{team_id}", data)

    def delete_team(self, team_id) -> None:
        self._delete("delete_team", self.teams, f"/teams/{team_id}", team_id)

    # ── Notifications ────────────────────────────────────────────────────

    def fetch_notifications(self) -> list[dict]:
        user_id = self.current_user["id"]
        body = self._call("fetch_notifications", lambda: self.api.get(f"/notifications/{user_id}"))
        self.notifications = body.get("items", [])
        self.unread_count = body.get("unreadCount", 0)
        return self.notifications

    def mark_all_notifications_read(self) -> None:
        """Optimistic: the cache is marked read before the call and kept on failure."""
        for notification in self.notifications:
            notification["isRead"] = True
        self.unread_count = 0
        user_id = self.current_user["id"]
        self._call("mark_all_notifications_read", lambda: self.api.post(f"/notifications/read/{user_id}"))

    # ── Guards mirrored from the server ──────────────────────────────────

    @staticmethod
    def can_proceed(report: dict, stage_id: str) -> bool:
        """True iff every stage before ``stage_id`` is complete."""
        updates = (report.get("details") or {}).get("updates") or []
        return pw.can_proceed(updates, stage_id)

    @staticmethod
    def missing_documents(request: dict, documents) -> list[str]:
        stage = get_stage(request.get("currentStageId")) or {}
        present = {d.get("type") for d in documents or []}
        return [t for t in stage.get("requiredDocuments", []) if t not in present]

    @classmethod
    def can_advance(cls, request: dict, documents, logistics=None) -> bool:
        stage_id = request.get("currentStageId")
        if stage_id is None or stage_id >= FINAL_STAGE_ID:
            return False
        if cls.missing_documents(request, documents):
            return False
        if stage_id == DEPARTURE_STAGE_ID:
            merged = {**request, **(logistics or {})}
            return bool(merged.get("expectedDepartureDate") and merged.get("departurePort"))
        return True

    def assignable_teams(self, report_id=None) -> list[dict]:
        """Teams without an active project, judged from the cached reports."""
        busy = {
            str(r.get("assignedTeamId"))
            for r in self.reports
            if r.get("type") == "Project"
            and r.get("assignedTeamId")
            and r.get("projectWorkflowStatus") in ACTIVE_PROJECT_STATUSES
            and str(r.get("id")) != str(report_id)
        }
        return [t for t in self.teams if str(t.get("id")) not in busy]

    def led_team(self) -> dict | None:
        """The team the signed-in user leads, if any."""
        if not self.current_user:
            return None
        uid = str(self.current_user["id"])
        return next((t for t in self.teams if str(t.get("leaderId")) == uid), None)
