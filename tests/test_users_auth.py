"""
Login, JWT-based caller identity and user administration.
"""

import jwt as pyjwt

from qssun_reports.models import db
from qssun_reports.models.audit import AuditLog
from qssun_reports.models.auth import User
from qssun_reports.utils.crypto import is_bcrypt_hash, verify_password

from conftest import PASSWORD, make_user

LOGIN = "/api/v1/login"
USERS = "/api/v1/users"


def _login(client, employee_id, password=PASSWORD):
    return client.post(LOGIN, json={"employeeId": employee_id, "password": password})


class TestLogin:
    def test_login_success(self, app, client, employee):
        res = _login(client, "1001")
        assert res.status_code == 200
        body = res.get_json()
        assert body["user"]["employeeId"] == "1001"
        assert body["user"]["role"] == "Employee"
        assert body["token_type"] == "Bearer"
        payload = pyjwt.decode(body["access_token"], app.config["JWT_SECRET_KEY"], algorithms=["HS256"])
        assert payload["sub"] == str(employee.id)
        assert payload["type"] == "access"

    def test_unknown_employee(self, client):
        assert _login(client, "4040").status_code == 404

    def test_wrong_password(self, client, employee):
        res = _login(client, "1001", "nope")
        assert res.status_code == 401
        fail = AuditLog.query.filter_by(action="auth.login_fail").one()
        assert fail.diff == {"reason": "bad_password"}

    def test_missing_fields(self, client):
        assert client.post(LOGIN, json={"employeeId": "1001"}).status_code == 400

    def test_legacy_password_upgraded(self, client, branch):
        db.session.add(User(username="1400", password_hash="plain123", full_name="Legacy", branch=branch))
        db.session.commit()

        assert _login(client, "1400", "plain123").status_code == 200
        user = User.query.filter_by(username="1400").one()
        assert is_bcrypt_hash(user.password_hash)
        assert verify_password("plain123", user.password_hash)


class TestTokenIdentity:
    def test_bearer_token_identifies_caller(self, client, employee):
        token = _login(client, "1001").get_json()["access_token"]
        res = client.post("/api/v1/reports", json={"type": "Sales"},
                          headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 201
        assert res.get_json()["employeeId"] == "1001"

    def test_enforced_auth(self, app, client, employee):
        app.config["API_AUTH_ENABLED"] = "true"
        try:
            assert client.get("/api/v1/reports").status_code == 401
            assert client.get("/api/v1/reports",
                              headers={"Authorization": "Bearer not-a-token"}).status_code == 401
            token = _login(client, "1001").get_json()["access_token"]
            res = client.get("/api/v1/reports", headers={"Authorization": f"Bearer {token}"})
            assert res.status_code == 200
            assert client.get("/api/v1/health/ready").status_code == 200
        finally:
            app.config["API_AUTH_ENABLED"] = "false"


class TestUserAdmin:
    def _payload(self, **overrides):
        payload = {
            "actorEmployeeId": "1000",
            "employeeId": "3001",
            "name": "New Tech",
            "password": "welcome1",
            "role": "TeamLead",
            "branch": "Riyadh",
            "email": "Tech@Example.com",
            "allowedReportTypes": ["Project"],
        }
        payload.update(overrides)
        return payload

    def test_create_user(self, client, admin):
        res = client.post(USERS, json=self._payload())
        assert res.status_code == 201
        body = res.get_json()
        assert body["role"] == "TeamLead"
        assert body["branch"] == "Riyadh"
        assert body["isFirstLogin"] is True
        assert body["allowedReportTypes"] == ["Project"]
        assert body["email"] == "Tech@example.com"
        assert "password" not in body

    def test_create_requires_admin(self, client, admin, employee):
        res = client.post(USERS, json=self._payload(actorEmployeeId="1001"))
        assert res.status_code == 403

    def test_duplicate_employee_id(self, client, admin):
        client.post(USERS, json=self._payload())
        assert client.post(USERS, json=self._payload()).status_code == 409

    def test_invalid_fields(self, client, admin):
        assert client.post(USERS, json=self._payload(email="not-an-email")).status_code == 422
        assert client.post(USERS, json=self._payload(role="Pilot")).status_code == 422
        assert client.post(USERS, json=self._payload(password="123")).status_code == 422
        assert client.post(USERS, json=self._payload(allowedReportTypes=["Weather"])).status_code == 422
        assert client.post(USERS, json=self._payload(branch="Mars")).status_code == 422

    def test_missing_required(self, client, admin):
        res = client.post(USERS, json={"actorEmployeeId": "1000", "employeeId": "3001"})
        assert res.status_code == 400

    def test_update_user(self, client, admin, employee):
        res = client.put(f"{USERS}/{employee.id}", json={
            "actorEmployeeId": "1000", "hasImportExportPermission": True, "department": "Sales",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["hasImportExportPermission"] is True
        assert body["department"] == "Sales"

    def test_update_employee_id_clash(self, client, admin, employee):
        res = client.put(f"{USERS}/{employee.id}", json={"actorEmployeeId": "1000", "employeeId": "1000"})
        assert res.status_code == 409

    def test_delete_user(self, client, admin, branch):
        victim = make_user("3100", branch=branch)
        res = client.delete(f"{USERS}/{victim.id}", json={"actorEmployeeId": "1000"})
        assert res.status_code == 200
        assert db.session.get(User, victim.id) is None

    def test_admin_cannot_delete_self(self, client, admin):
        res = client.delete(f"{USERS}/{admin.id}", json={"actorEmployeeId": "1000"})
        assert res.status_code == 422


class TestSelfService:
    def test_complete_profile(self, client, branch):
        user = make_user("3200", branch=branch, is_first_login=True)
        res = client.put(f"{USERS}/profile", json={
            "employeeId": "3200", "phone": "0555", "password": "brandnew1",
        })
        assert res.status_code == 200
        assert res.get_json()["isFirstLogin"] is False
        assert verify_password("brandnew1", db.session.get(User, user.id).password_hash)

    def test_change_password(self, client, employee):
        res = client.put(f"{USERS}/change-password", json={
            "employeeId": "1001", "currentPassword": PASSWORD, "newPassword": "another1",
        })
        assert res.status_code == 200
        assert _login(client, "1001", "another1").status_code == 200
        assert AuditLog.query.filter_by(action="auth.password_change").count() == 1

    def test_change_password_wrong_current(self, client, employee):
        res = client.put(f"{USERS}/change-password", json={
            "employeeId": "1001", "currentPassword": "wrong", "newPassword": "another1",
        })
        assert res.status_code == 401

    def test_change_password_too_short(self, client, employee):
        res = client.put(f"{USERS}/change-password", json={
            "employeeId": "1001", "currentPassword": PASSWORD, "newPassword": "abc",
        })
        assert res.status_code == 422
