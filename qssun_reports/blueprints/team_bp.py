"""
Technical Team Blueprint.

Endpoints:
  GET/POST      /teams
  GET           /teams/assignable?reportId=   — teams free for a new project
  PUT/DELETE    /teams/<id>     (Admin)
"""

from flask import Blueprint, jsonify, request

from qssun_reports.blueprints import current_actor, json_body
from qssun_reports.services import team_service
from qssun_reports.services.user_service import require_admin
from qssun_reports.utils.errors import E, api_error

team_bp = Blueprint("teams", __name__, url_prefix="/api/v1")


def _admin(data):
    actor = current_actor(data)
    require_admin(actor)
    return actor


@team_bp.route("/teams", methods=["GET"])
def list_teams():
    return jsonify([t.to_dict() for t in team_service.list_teams()])


@team_bp.route("/teams/assignable", methods=["GET"])
def assignable_teams():
    """Exclude teams holding an active project; ``reportId`` keeps that report's own team."""
    report_id = request.args.get("reportId", type=int)
    return jsonify([t.to_dict() for t in team_service.assignable_teams(exclude_report_id=report_id)])


@team_bp.route("/teams", methods=["POST"])
def create_team():
    data = json_body()
    if not (data.get("name") or "").strip() or not data.get("leaderId"):
        return api_error(E.VALIDATION_REQUIRED, "name and leaderId are required")
    team = team_service.create_team(data, _admin(data))
    return jsonify(team.to_dict()), 201


@team_bp.route("/teams/<int:team_id>", methods=["PUT"])
def update_team(team_id):
    data = json_body()
    team = team_service.update_team(team_id, data, _admin(data))
    return jsonify(team.to_dict())


@team_bp.route("/teams/<int:team_id>", methods=["DELETE"])
def delete_team(team_id):
    team_service.delete_team(team_id, _admin(json_body()))
    return jsonify({"message": "Team deleted", "id": str(team_id)}), 200
