"""
User Blueprint — employee accounts.

Endpoints:
  GET/POST        /users
  PUT             /users/profile           — first-login profile completion
  PUT             /users/change-password
  PUT/DELETE      /users/<id>

Creating, editing and deleting accounts requires the Admin role.
"""

from flask import Blueprint, jsonify

from qssun_reports.blueprints import current_actor, json_body
from qssun_reports.services import user_service
from qssun_reports.utils.errors import E, api_error

user_bp = Blueprint("users", __name__, url_prefix="/api/v1")


@user_bp.route("/users", methods=["GET"])
def list_users():
    return jsonify([u.to_dict() for u in user_service.list_users()])


@user_bp.route("/users", methods=["POST"])
def create_user():
    data = json_body()
    if not data.get("employeeId") or not data.get("name") or not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "employeeId, name and password are required")
    actor = current_actor({"employeeId": data.get("actorEmployeeId")})
    user_service.require_admin(actor)
    user = user_service.create_user(data, actor)
    return jsonify(user.to_dict()), 201


# Static paths are registered before /users/<id>
@user_bp.route("/users/profile", methods=["PUT"])
def complete_profile():
    """Body: { employeeId, name?, phone?, password? }"""
    data = json_body()
    actor = current_actor(data)
    user = user_service.complete_profile(
        actor, name=data.get("name"), phone=data.get("phone"), password=data.get("password"),
    )
    return jsonify(user.to_dict())


@user_bp.route("/users/change-password", methods=["PUT"])
def change_password():
    """Body: { employeeId, currentPassword, newPassword }"""
    data = json_body()
    if not data.get("currentPassword") or not data.get("newPassword"):
        return api_error(E.VALIDATION_REQUIRED, "currentPassword and newPassword are required")
    actor = current_actor(data)
    user_service.change_password(actor, data["currentPassword"], data["newPassword"])
    return jsonify({"message": "تم تغيير كلمة المرور بنجاح"})


@user_bp.route("/users/<int:user_id>", methods=["PUT"])
def update_user(user_id):
    data = json_body()
    actor = current_actor({"employeeId": data.get("actorEmployeeId")})
    user_service.require_admin(actor)
    user = user_service.update_user(user_id, data, actor)
    return jsonify(user.to_dict())


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id):
    actor = current_actor({"employeeId": json_body().get("actorEmployeeId")})
    user_service.require_admin(actor)
    user_service.delete_user(user_id, actor)
    return jsonify({"message": "User deleted", "id": str(user_id)}), 200
