"""
Project lifecycle through the team-side endpoints.

Draft → PendingTeamAcceptance → InProgress → ConcreteWorksDone
      → FinishingWorks → TechnicallyCompleted → Finalized
"""

import io
import json
from unittest.mock import patch

from qssun_reports.models.notification import Notification
from qssun_reports.models.report import PROJECT_STAGE_IDS
from qssun_reports.services.notification import NotificationService

BASE = "/api/v1/reports"
HANDOVER_INDEX = PROJECT_STAGE_IDS.index("deliveryHandover")


def _updates(*completed):
    return [{"id": sid, "completed": sid in completed, "files": []} for sid in PROJECT_STAGE_IDS]


def _create_notified(client, team):
    res = client.post(BASE, json={
        "employeeId": "1001",
        "type": "Project",
        "assignedTeamId": str(team.id),
        "details": {"projectOwner": "Farm", "updates": _updates("contract", "firstPayment", "notifyTeam")},
    })
    assert res.status_code == 201
    return res.get_json()["id"]


def _confirm(client, report_id, stage_id, employee_id="2001", files=None, comment="done"):
    data = {"stageId": stage_id, "employeeId": employee_id, "comment": comment}
    if files is not None:
        data["files"] = files
    return client.post(f"{BASE}/{report_id}/confirm-stage", data=data, content_type="multipart/form-data")


def _owner_save(client, report_id, mutate, **files):
    """Re-post the owner's current stage array after ``mutate`` edits it."""
    details = client.get(f"{BASE}/{report_id}?employeeId=1001").get_json()["details"]
    mutate(details["updates"])
    data = {"reportData": json.dumps({"employeeId": "1001", "details": details})}
    data.update(files)
    return client.put(f"{BASE}/{report_id}", data=data, content_type="multipart/form-data")


def _complete(stage_id):
    def mutate(updates):
        for update in updates:
            if update["id"] == stage_id:
                update["completed"] = True
    return mutate


def _status(client, report_id):
    return client.get(f"{BASE}/{report_id}").get_json()["projectWorkflowStatus"]


def _to_technically_completed(client, team):
    report_id = _create_notified(client, team)
    assert client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"}).status_code == 200
    assert _confirm(client, report_id, "concreteWorks").status_code == 200
    assert _owner_save(client, report_id, _complete("secondPayment")).status_code == 200
    assert _confirm(client, report_id, "technicalCompletion").status_code == 200
    return report_id


class TestAcceptAssignment:
    def test_accept_moves_to_in_progress_and_notifies_owner(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        assert res.status_code == 200
        assert res.get_json()["projectWorkflowStatus"] == "InProgress"

        owner_notes = Notification.query.filter_by(user_id=employee.id).all()
        assert len(owner_notes) == 1
        assert "Team A" in owner_notes[0].message

    def test_accept_twice_conflicts(self, client, employee, team):
        report_id = _create_notified(client, team)
        client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        res = client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        assert res.status_code == 409
        assert res.get_json()["details"]["currentStatus"] == "InProgress"

    def test_only_leader_may_accept(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "1001"})
        assert res.status_code == 403


class TestConfirmStage:
    def test_unknown_stage_id(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = _confirm(client, report_id, "roofing")
        assert res.status_code == 400
        assert "concreteWorks" in res.get_json()["details"]["allowed"]

    def test_concrete_works_requires_in_progress(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = _confirm(client, report_id, "concreteWorks")
        assert res.status_code == 409
        assert _status(client, report_id) == "PendingTeamAcceptance"

    def test_concrete_works_stores_files_and_notifies(self, client, employee, team, team_lead):
        report_id = _create_notified(client, team)
        client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        res = _confirm(client, report_id, "concreteWorks", files=(io.BytesIO(b"jpg"), "pour.jpg"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["projectWorkflowStatus"] == "ConcreteWorksDone"
        stage = body["details"]["updates"][PROJECT_STAGE_IDS.index("concreteWorks")]
        assert stage["completed"] is True
        assert stage["comment"] == "done"
        assert [f["fileName"] for f in stage["files"]] == ["pour.jpg"]

        messages = [n.message for n in Notification.query.filter_by(user_id=employee.id).all()]
        assert any("الأعمال الخرسانية" in m for m in messages)

    def test_second_payment_moves_to_finishing_works(self, client, employee, team):
        report_id = _create_notified(client, team)
        client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        _confirm(client, report_id, "concreteWorks")
        res = _owner_save(client, report_id, _complete("secondPayment"))
        assert res.status_code == 200
        assert res.get_json()["projectWorkflowStatus"] == "FinishingWorks"

    def test_technical_completion_marks_installation(self, client, employee, team):
        report_id = _to_technically_completed(client, team)
        body = client.get(f"{BASE}/{report_id}").get_json()
        assert body["projectWorkflowStatus"] == "TechnicallyCompleted"
        installation = body["details"]["updates"][PROJECT_STAGE_IDS.index("installationComplete")]
        assert installation["completed"] is True

    def test_workflow_docs_append(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = _confirm(client, report_id, "workflowDocs", files=(io.BytesIO(b"x"), "plan.pdf"))
        assert res.status_code == 200
        assert [d["fileName"] for d in res.get_json()["details"]["workflowDocs"]] == ["plan.pdf"]

    def test_workflow_docs_require_files(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = _confirm(client, report_id, "workflowDocs")
        assert res.status_code == 422


class TestHandoverAndFinish:
    def test_full_handover(self, client, admin, employee, team, team_lead):
        report_id = _to_technically_completed(client, team)

        res = _owner_save(
            client, report_id, lambda updates: None,
            **{f"project_update_{HANDOVER_INDEX}_files": (io.BytesIO(b"pdf"), "handover.pdf")},
        )
        assert res.status_code == 200
        lead_messages = [n.message for n in Notification.query.filter_by(user_id=team_lead.id).all()]
        assert any("محضر تسليم" in m for m in lead_messages)

        res = _confirm(client, report_id, "deliveryHandover_signed",
                       files=(io.BytesIO(b"signed"), "signed.pdf"))
        assert res.status_code == 200
        owner_view = client.get(f"{BASE}/{report_id}?employeeId=1001").get_json()
        handover = owner_view["details"]["updates"][HANDOVER_INDEX]
        assert [f["fileName"] for f in handover["files"]] == ["handover.pdf", "signed.pdf"]

        res = client.post(f"{BASE}/{report_id}/finish", json={"employeeId": "1001"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["projectWorkflowStatus"] == "Finalized"
        assert body["details"]["updates"][HANDOVER_INDEX]["completed"] is True

        admin_notes = Notification.query.filter_by(user_id=admin.id).all()
        assert any("نهائياً" in n.message for n in admin_notes)

        again = client.post(f"{BASE}/{report_id}/finish", json={"employeeId": "1001"})
        assert again.status_code == 409

    def test_signed_handover_needs_initial_document(self, client, employee, team):
        report_id = _to_technically_completed(client, team)
        res = _confirm(client, report_id, "deliveryHandover_signed",
                       files=(io.BytesIO(b"signed"), "signed.pdf"))
        assert res.status_code == 422

    def test_finish_before_technical_completion(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = client.post(f"{BASE}/{report_id}/finish", json={"employeeId": "1001"})
        assert res.status_code == 409

    def test_finish_without_signed_document(self, client, employee, team):
        report_id = _to_technically_completed(client, team)
        _owner_save(
            client, report_id, lambda updates: None,
            **{f"project_update_{HANDOVER_INDEX}_files": (io.BytesIO(b"pdf"), "handover.pdf")},
        )
        res = client.post(f"{BASE}/{report_id}/finish", json={"employeeId": "1001"})
        assert res.status_code == 422

    def test_owner_cannot_write_handover_files(self, client, employee, team):
        report_id = _to_technically_completed(client, team)

        def fake_files(updates):
            updates[HANDOVER_INDEX]["files"] = [
                {"id": "a", "url": "/api/v1/uploads/a.pdf", "fileName": "a.pdf", "uploadedBy": "2"},
                {"id": "b", "url": "/api/v1/uploads/b.pdf", "fileName": "b.pdf", "uploadedBy": "2"},
            ]

        res = _owner_save(client, report_id, fake_files)
        assert res.status_code == 200
        assert res.get_json()["details"]["updates"][HANDOVER_INDEX]["files"] == []

        res = client.post(f"{BASE}/{report_id}/finish", json={"employeeId": "1001"})
        assert res.status_code == 422
        assert _status(client, report_id) == "TechnicallyCompleted"

    def test_signed_copy_must_come_from_team(self, client, employee, team):
        report_id = _to_technically_completed(client, team)
        res = _owner_save(
            client, report_id, lambda updates: None,
            **{f"project_update_{HANDOVER_INDEX}_files": [
                (io.BytesIO(b"pdf"), "handover.pdf"), (io.BytesIO(b"pdf"), "signed-by-me.pdf"),
            ]},
        )
        assert len(res.get_json()["details"]["updates"][HANDOVER_INDEX]["files"]) == 2

        res = client.post(f"{BASE}/{report_id}/finish", json={"employeeId": "1001"})
        assert res.status_code == 422
        assert _status(client, report_id) == "TechnicallyCompleted"

    def test_owner_edit_keeps_team_stage_files(self, client, employee, team):
        report_id = _create_notified(client, team)
        client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        _confirm(client, report_id, "concreteWorks", files=(io.BytesIO(b"jpg"), "pour.jpg"))
        concrete_index = PROJECT_STAGE_IDS.index("concreteWorks")

        def drop_files(updates):
            updates[concrete_index]["files"] = []

        res = _owner_save(client, report_id, drop_files)
        assert res.status_code == 200
        files = res.get_json()["details"]["updates"][concrete_index]["files"]
        assert [f["fileName"] for f in files] == ["pour.jpg"]

    def test_signed_handover_accepts_one_file(self, client, employee, team):
        report_id = _to_technically_completed(client, team)
        _owner_save(
            client, report_id, lambda updates: None,
            **{f"project_update_{HANDOVER_INDEX}_files": (io.BytesIO(b"pdf"), "handover.pdf")},
        )
        res = _confirm(client, report_id, "deliveryHandover_signed",
                       files=[(io.BytesIO(b"one"), "one.pdf"), (io.BytesIO(b"two"), "two.pdf")])
        assert res.status_code == 422
        assert res.get_json()["details"]["received"] == 2

        owner_view = client.get(f"{BASE}/{report_id}?employeeId=1001").get_json()
        handover = owner_view["details"]["updates"][HANDOVER_INDEX]
        assert [f["fileName"] for f in handover["files"]] == ["handover.pdf"]


class TestExceptions:
    def test_add_exception(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = client.post(
            f"{BASE}/{report_id}/add-exception",
            data={"employeeId": "1001", "comment": "Roof access blocked",
                  "files": (io.BytesIO(b"img"), "roof.jpg")},
            content_type="multipart/form-data",
        )
        assert res.status_code == 200
        exceptions = res.get_json()["details"]["exceptions"]
        assert len(exceptions) == 1
        assert exceptions[0]["comment"] == "Roof access blocked"
        assert exceptions[0]["id"].startswith("exc-")
        assert exceptions[0]["files"][0]["fileName"] == "roof.jpg"

    def test_exception_needs_content(self, client, employee, team):
        report_id = _create_notified(client, team)
        res = client.post(f"{BASE}/{report_id}/add-exception", json={"employeeId": "1001"})
        assert res.status_code == 422

    def test_exception_only_for_projects(self, client, employee):
        report_id = client.post(BASE, json={"employeeId": "1001", "type": "Sales"}).get_json()["id"]
        res = client.post(f"{BASE}/{report_id}/add-exception",
                          json={"employeeId": "1001", "comment": "x"})
        assert res.status_code == 422

    def test_exceptions_survive_owner_edit(self, client, employee, team):
        report_id = _create_notified(client, team)
        client.post(f"{BASE}/{report_id}/add-exception", json={"employeeId": "1001", "comment": "x"})
        res = client.put(f"{BASE}/{report_id}", json={
            "employeeId": "1001",
            "details": {"updates": _updates("contract", "firstPayment", "notifyTeam"), "exceptions": []},
        })
        assert len(res.get_json()["details"]["exceptions"]) == 1


class TestNotificationFailure:
    def test_action_succeeds_when_notification_fails(self, client, employee, team):
        report_id = _create_notified(client, team)
        with patch.object(NotificationService, "notify", side_effect=RuntimeError("bell down")):
            res = client.post(f"{BASE}/{report_id}/accept", json={"employeeId": "2001"})
        assert res.status_code == 200
        assert _status(client, report_id) == "InProgress"
