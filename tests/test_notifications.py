"""Bell notifications: admin broadcasts, the per-user feed and read state."""

from qssun_reports.models import db
from qssun_reports.models.auth import Branch
from qssun_reports.models.notification import Notification
from qssun_reports.services.notification import NotificationService

from conftest import make_user

SEND = "/api/v1/notifications/send"


class TestBroadcast:
    def test_send_to_all(self, client, admin, employee):
        res = client.post(SEND, json={"employeeId": "1000", "message": "Office closed", "type": "all"})
        assert res.status_code == 201
        assert res.get_json() == {"sent": 2}
        assert Notification.query.filter_by(user_id=employee.id).one().message == "Office closed"

    def test_send_to_user(self, client, admin, employee):
        res = client.post(SEND, json={
            "employeeId": "1000", "message": "See me", "type": "user", "recipient": "1001",
        })
        assert res.get_json() == {"sent": 1}
        assert Notification.query.filter_by(user_id=admin.id).count() == 0

    def test_send_to_branch(self, client, admin, employee):
        other = Branch(name="Jeddah")
        db.session.add(other)
        db.session.commit()
        make_user("1700", branch=other)
        res = client.post(SEND, json={
            "employeeId": "1000", "message": "Jeddah only", "type": "branch", "recipient": "Jeddah",
        })
        assert res.get_json() == {"sent": 1}

    def test_unknown_branch(self, client, admin):
        res = client.post(SEND, json={
            "employeeId": "1000", "message": "x", "type": "branch", "recipient": "Mars",
        })
        assert res.status_code == 404

    def test_admin_only(self, client, employee):
        res = client.post(SEND, json={"employeeId": "1001", "message": "spam"})
        assert res.status_code == 403

    def test_bad_input(self, client, admin):
        assert client.post(SEND, json={"employeeId": "1000", "message": ""}).status_code == 400
        assert client.post(SEND, json={"employeeId": "1000", "message": "x", "type": "team"}).status_code == 400
        assert client.post(SEND, json={"employeeId": "1000", "message": "x", "type": "user"}).status_code == 400


class TestFeed:
    def test_feed_is_capped_and_newest_first(self, client, employee):
        for i in range(55):
            db.session.add(Notification(user_id=employee.id, message=f"n{i}"))
        db.session.commit()

        body = client.get(f"/api/v1/notifications/{employee.id}").get_json()
        assert len(body["items"]) == 50
        assert body["items"][0]["message"] == "n54"
        assert body["unreadCount"] == 55

    def test_mark_all_read(self, client, employee):
        NotificationService.notify([employee.id], message="a")
        NotificationService.notify([employee.id], message="b")

        res = client.post(f"/api/v1/notifications/read/{employee.id}")
        assert res.get_json() == {"updated": 2}
        body = client.get(f"/api/v1/notifications/{employee.id}").get_json()
        assert body["unreadCount"] == 0
        assert all(n["isRead"] for n in body["items"])

    def test_unknown_user(self, client):
        assert client.get("/api/v1/notifications/999").status_code == 404


class TestDispatch:
    def test_excludes_actor_and_duplicates(self, employee, admin):
        created = NotificationService.dispatch(
            [employee.id, employee.id, admin.id, None], message="m", exclude_user_id=admin.id,
        )
        assert [n.user_id for n in created] == [employee.id]
