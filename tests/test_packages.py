"""Customer package requests: creation, status actions and attachments."""

import io

from conftest import make_user

BASE = "/api/v1/package-requests"


def _create(client, employee_id="1001", **fields):
    payload = {"employeeId": employee_id, "customerName": "Ahmed", "packageType": "Home 5kW", **fields}
    return client.post(BASE, json=payload)


def _action(client, package_id, action, employee_id="1000", **form):
    data = {"employeeId": employee_id, **form}
    return client.post(f"{BASE}/{package_id}/{action}", data=data, content_type="multipart/form-data")


class TestCreatePackage:
    def test_create_defaults(self, client, employee):
        res = _create(client, customerPhone="0500000000")
        assert res.status_code == 201
        body = res.get_json()
        assert body["id"] == "PKG-000001"
        assert body["title"] == "Home 5kW - Ahmed"
        assert body["status"] == "NEW"
        assert body["progressPercent"] == 0
        assert body["priority"] == "medium"
        assert body["meta"]["packageType"] == "Home 5kW"

    def test_paid_package_starts_confirmed(self, client, employee):
        body = _create(client, isPaid=True).get_json()
        assert body["status"] == "PAYMENT_CONFIRMED"
        assert body["progressPercent"] == 20

    def test_customer_required(self, client, employee):
        res = client.post(BASE, json={"employeeId": "1001"})
        assert res.status_code == 400

    def test_invalid_priority(self, client, employee):
        assert _create(client, priority="asap").status_code == 422

    def test_created_log(self, client, employee):
        package_id = _create(client).get_json()["id"]
        body = client.get(f"{BASE}/{package_id}").get_json()
        assert [log["action"] for log in body["logs"]] == ["created"]


class TestPackageActions:
    def test_happy_path_with_attachments(self, client, admin, employee):
        package_id = _create(client).get_json()["id"]

        res = _action(client, package_id, "confirm-payment",
                      payment_proof=(io.BytesIO(b"img"), "receipt.jpg"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "PAYMENT_CONFIRMED"
        assert [f["fileName"] for f in body["attachments"]["paymentProofs"]] == ["receipt.jpg"]

        assert _action(client, package_id, "start").get_json()["progressPercent"] == 50
        res = _action(client, package_id, "mark-ready", comment="on the truck",
                      shipping_docs=(io.BytesIO(b"pdf"), "waybill.pdf"))
        body = res.get_json()
        assert body["status"] == "READY_FOR_DELIVERY"
        assert body["attachments"]["shippingDocs"][0]["fileName"] == "waybill.pdf"
        assert body["logs"][0]["comment"] == "on the truck"

        body = _action(client, package_id, "confirm-delivery").get_json()
        assert body["status"] == "DELIVERED"
        assert body["progressPercent"] == 100
        assert [log["action"] for log in body["logs"]] == [
            "delivery_confirmed", "marked_ready", "processing_started", "payment_confirmed", "created",
        ]

    def test_invalid_transition(self, client, admin, employee):
        package_id = _create(client).get_json()["id"]
        res = _action(client, package_id, "confirm-delivery")
        assert res.status_code == 409
        assert res.get_json()["details"]["currentStatus"] == "NEW"

    def test_cancel_then_nothing(self, client, admin, employee):
        package_id = _create(client).get_json()["id"]
        assert _action(client, package_id, "cancel").get_json()["status"] == "CANCELLED"
        assert _action(client, package_id, "start").status_code == 409

    def test_unknown_action(self, client, admin, employee):
        package_id = _create(client).get_json()["id"]
        assert _action(client, package_id, "teleport").status_code == 404


class TestUpdateAndList:
    def test_update_fields(self, client, employee):
        package_id = _create(client).get_json()["id"]
        res = client.put(f"{BASE}/{package_id}", json={
            "employeeId": "1001", "customerPhone": "0555", "meta": {"deliveryMethod": "pickup"},
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["customerPhone"] == "0555"
        assert body["meta"]["deliveryMethod"] == "pickup"
        assert body["meta"]["packageType"] == "Home 5kW"

    def test_status_not_editable(self, client, employee):
        package_id = _create(client).get_json()["id"]
        res = client.put(f"{BASE}/{package_id}", json={"employeeId": "1001", "status": "DELIVERED"})
        assert res.status_code == 422

    def test_empty_update(self, client, employee):
        package_id = _create(client).get_json()["id"]
        res = client.put(f"{BASE}/{package_id}", json={"employeeId": "1001"})
        assert res.status_code == 422

    def test_employee_sees_own_packages(self, client, admin, employee, branch):
        make_user("1500", branch=branch)
        _create(client)
        _create(client, employee_id="1500")
        mine = client.get(f"{BASE}?employeeId=1001").get_json()
        assert [p["employeeId"] for p in mine] == ["1001"]
        everything = client.get(f"{BASE}?employeeId=1000").get_json()
        assert len(everything) == 2

    def test_delete_owner_only(self, client, employee, branch):
        make_user("1500", branch=branch)
        package_id = _create(client).get_json()["id"]
        assert client.delete(f"{BASE}/{package_id}", json={"employeeId": "1500"}).status_code == 403
        assert client.delete(f"{BASE}/{package_id}", json={"employeeId": "1001"}).status_code == 200
        assert client.get(f"{BASE}/{package_id}").status_code == 404
