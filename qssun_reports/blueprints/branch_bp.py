"""
Branch Blueprint.

Endpoints:
  GET/POST      /branches
  PUT/DELETE    /branches/<id>     (Admin)
"""

from flask import Blueprint, jsonify

from qssun_reports.blueprints import current_actor, json_body
from qssun_reports.services import branch_service
from qssun_reports.services.user_service import require_admin
from qssun_reports.utils.errors import E, api_error

branch_bp = Blueprint("branches", __name__, url_prefix="/api/v1")


def _admin(data):
    actor = current_actor(data)
    require_admin(actor)
    return actor


@branch_bp.route("/branches", methods=["GET"])
def list_branches():
    return jsonify([b.to_dict() for b in branch_service.list_branches()])


@branch_bp.route("/branches", methods=["POST"])
def create_branch():
    data = json_body()
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    branch = branch_service.create_branch(data, _admin(data))
    return jsonify(branch.to_dict()), 201


@branch_bp.route("/branches/<int:branch_id>", methods=["PUT"])
def update_branch(branch_id):
    data = json_body()
    branch = branch_service.update_branch(branch_id, data, _admin(data))
    return jsonify(branch.to_dict())


@branch_bp.route("/branches/<int:branch_id>", methods=["DELETE"])
def delete_branch(branch_id):
    branch_service.delete_branch(branch_id, _admin(json_body()))
    return jsonify({"message": "Branch deleted", "id": str(branch_id)}), 200
