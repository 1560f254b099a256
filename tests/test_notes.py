"""Admin note threads: notes, replies, read receipts and their notifications."""

from qssun_reports.models import db
from qssun_reports.models.notification import Notification
from qssun_reports.models.report import PROJECT_STAGE_IDS

from conftest import make_user

BASE = "/api/v1/reports"


def _sales(client):
    return client.post(BASE, json={"employeeId": "1001", "type": "Sales"}).get_json()["id"]


def _note(client, report_id, employee_id, content="Please attach the invoice"):
    return client.post(f"{BASE}/{report_id}/notes", json={"employeeId": employee_id, "content": content})


class TestAddNote:
    def test_admin_note_notifies_owner(self, client, admin, employee):
        report_id = _sales(client)
        res = _note(client, report_id, "1000")
        assert res.status_code == 201
        note = res.get_json()["adminNotes"][0]
        assert note["authorName"] == "Admin User"
        assert note["readBy"] == [str(admin.id)]
        assert note["replies"] == []
        assert note["id"].startswith("note-")

        owner = Notification.query.filter_by(user_id=employee.id).one()
        assert owner.message == f"Admin User أضاف ملاحظة على تقرير #{report_id}"
        assert owner.link == f"/reports/{report_id}"
        assert Notification.query.filter_by(user_id=admin.id).count() == 0

    def test_owner_note_notifies_admins(self, client, admin, employee):
        report_id = _sales(client)
        _note(client, report_id, "1001")
        assert Notification.query.filter_by(user_id=admin.id).count() == 1
        assert Notification.query.filter_by(user_id=employee.id).count() == 0

    def test_project_note_reaches_team_leader(self, client, admin, employee, team, team_lead):
        report_id = client.post(BASE, json={
            "employeeId": "1001", "type": "Project", "assignedTeamId": str(team.id),
            "details": {"updates": [{"id": sid, "completed": False} for sid in PROJECT_STAGE_IDS]},
        }).get_json()["id"]
        _note(client, report_id, "1000")
        assert Notification.query.filter_by(user_id=team_lead.id).count() == 1

    def test_empty_content(self, client, employee):
        report_id = _sales(client)
        res = _note(client, report_id, "1001", content="   ")
        assert res.status_code == 400

    def test_unknown_report(self, client, employee):
        res = _note(client, "999", "1001")
        assert res.status_code == 404


class TestReplies:
    def test_reply_reaches_previous_participants(self, client, admin, employee, branch):
        other_admin = make_user("1002", name="Second Admin", role="admin", branch=branch)
        report_id = _sales(client)
        note_id = _note(client, report_id, "1000").get_json()["adminNotes"][0]["id"]
        Notification.query.delete()
        db.session.commit()

        res = client.post(f"{BASE}/{report_id}/notes/{note_id}/reply",
                          json={"employeeId": "1001", "content": "Attached"})
        assert res.status_code == 201
        reply = res.get_json()["adminNotes"][0]["replies"][0]
        assert reply["authorName"] == "Sales Employee"
        assert str(employee.id) in res.get_json()["adminNotes"][0]["readBy"]

        recipients = {n.user_id for n in Notification.query.all()}
        assert recipients == {admin.id, other_admin.id}

    def test_reply_to_unknown_note(self, client, employee):
        report_id = _sales(client)
        res = client.post(f"{BASE}/{report_id}/notes/note-0/reply",
                          json={"employeeId": "1001", "content": "hi"})
        assert res.status_code == 404


class TestMarkRead:
    def test_mark_read_covers_notes_and_replies(self, client, admin, employee):
        report_id = _sales(client)
        note_id = _note(client, report_id, "1000").get_json()["adminNotes"][0]["id"]
        client.post(f"{BASE}/{report_id}/notes/{note_id}/reply",
                    json={"employeeId": "1000", "content": "Any update?"})

        res = client.post(f"{BASE}/{report_id}/notes/read", json={"employeeId": "1001"})
        assert res.status_code == 200
        note = res.get_json()["adminNotes"][0]
        assert str(employee.id) in note["readBy"]
        assert all(str(employee.id) in r["readBy"] for r in note["replies"])

    def test_mark_read_is_idempotent(self, client, admin, employee):
        report_id = _sales(client)
        _note(client, report_id, "1000")
        client.post(f"{BASE}/{report_id}/notes/read", json={"employeeId": "1001"})
        res = client.post(f"{BASE}/{report_id}/notes/read", json={"employeeId": "1001"})
        assert res.get_json()["adminNotes"][0]["readBy"].count(str(employee.id)) == 1
