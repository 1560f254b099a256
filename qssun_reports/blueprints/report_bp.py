"""
Report Blueprint — reports, the project lifecycle and admin note threads.

Endpoints:
  Report:       GET/POST /reports, GET/PUT/DELETE /reports/<id>
  Project:      POST /reports/<id>/confirm-stage
                POST /reports/<id>/add-exception
                POST /reports/<id>/accept
                POST /reports/<id>/finish
  Notes:        POST /reports/<id>/notes
                POST /reports/<id>/notes/<note_id>/reply
                POST /reports/<id>/notes/read

Create / update accept ``multipart/form-data`` with the report JSON in the
``reportData`` field (plain JSON bodies work too when nothing is uploaded).
"""

import logging

from flask import Blueprint, g, jsonify, request

from qssun_reports.blueprints import current_actor, files_by_field, form_json, json_body
from qssun_reports.services import note_service, report_service
from qssun_reports.services.user_service import resolve_actor
from qssun_reports.utils.errors import E, api_error

logger = logging.getLogger(__name__)

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1")


def _viewer():
    """Caller for serialization purposes, or None when anonymous."""
    employee_id = request.args.get("employeeId")
    if getattr(g, "jwt_user_id", None) is None and not employee_id:
        return None
    return resolve_actor(user_id=getattr(g, "jwt_user_id", None), employee_id=employee_id)


def _report_payload():
    payload = form_json("reportData")
    if payload is None:
        return None, api_error(E.VALIDATION_REQUIRED, "reportData is missing or not a JSON object")
    return payload, None


# ═════════════════════════════════════════════════════════════════════════════
# Report CRUD
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports", methods=["GET"])
def list_reports():
    """List reports newest first. Filters: type, status, employeeFilter, teamId."""
    viewer = _viewer()
    reports = report_service.list_reports(
        report_type=request.args.get("type"),
        status=request.args.get("status"),
        employee_id=request.args.get("employeeFilter"),
        team_id=request.args.get("teamId", type=int),
    )
    return jsonify([r.to_dict(viewer=viewer) for r in reports])


@report_bp.route("/reports", methods=["POST"])
def create_report():
    payload, err = _report_payload()
    if err:
        return err
    actor = current_actor(payload)
    report = report_service.create_report(payload, files_by_field(), actor)
    return jsonify(report.to_dict(viewer=actor)), 201


@report_bp.route("/reports/<int:report_id>", methods=["GET"])
def get_report(report_id):
    report = report_service.get_report(report_id)
    return jsonify(report.to_dict(viewer=_viewer()))


@report_bp.route("/reports/<int:report_id>", methods=["PUT"])
def update_report(report_id):
    payload, err = _report_payload()
    if err:
        return err
    actor = current_actor(payload)
    report = report_service.update_report(report_id, payload, files_by_field(), actor)
    return jsonify(report.to_dict(viewer=actor))


@report_bp.route("/reports/<int:report_id>", methods=["DELETE"])
def delete_report(report_id):
    actor = current_actor(json_body())
    report_service.delete_report(report_id, actor)
    return jsonify({"message": "Report deleted", "id": str(report_id)}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Project lifecycle
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports/<int:report_id>/confirm-stage", methods=["POST"])
def confirm_stage(report_id):
    """
    Form fields: stageId, comment, employeeId; files in ``files``.
    stageId ∈ concreteWorks | technicalCompletion | deliveryHandover_signed | workflowDocs
    """
    stage_id = request.form.get("stageId") or json_body().get("stageId")
    if stage_id not in report_service.CONFIRM_ACTIONS:
        return api_error(
            E.VALIDATION_INVALID, f"Invalid stageId '{stage_id}'",
            details={"allowed": list(report_service.CONFIRM_ACTIONS)},
        )
    actor = current_actor(json_body())
    report = report_service.confirm_stage(
        report_id, stage_id,
        comment=request.form.get("comment") or json_body().get("comment"),
        files=request.files.getlist("files"),
        actor=actor,
    )
    return jsonify(report.to_dict(viewer=actor))


@report_bp.route("/reports/<int:report_id>/add-exception", methods=["POST"])
def add_exception(report_id):
    actor = current_actor(json_body())
    report = report_service.add_exception(
        report_id,
        comment=request.form.get("comment") or json_body().get("comment"),
        files=request.files.getlist("files"),
        actor=actor,
    )
    return jsonify(report.to_dict(viewer=actor))


@report_bp.route("/reports/<int:report_id>/accept", methods=["POST"])
def accept_assignment(report_id):
    actor = current_actor(json_body())
    report = report_service.accept_assignment(report_id, actor)
    return jsonify(report.to_dict(viewer=actor))


@report_bp.route("/reports/<int:report_id>/finish", methods=["POST"])
def finish_project(report_id):
    data = json_body()
    actor = current_actor(data)
    report = report_service.finish_project(report_id, actor, comment=data.get("comment"))
    return jsonify(report.to_dict(viewer=actor))


# ═════════════════════════════════════════════════════════════════════════════
# Admin notes
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports/<int:report_id>/notes", methods=["POST"])
def add_note(report_id):
    data = json_body()
    if not (data.get("content") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    actor = current_actor(data)
    report = note_service.add_note(report_id, data["content"], actor)
    return jsonify(report.to_dict(viewer=actor)), 201


@report_bp.route("/reports/<int:report_id>/notes/<note_id>/reply", methods=["POST"])
def add_reply(report_id, note_id):
    data = json_body()
    if not (data.get("content") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    actor = current_actor(data)
    report = note_service.add_reply(report_id, note_id, data["content"], actor)
    return jsonify(report.to_dict(viewer=actor)), 201


@report_bp.route("/reports/<int:report_id>/notes/read", methods=["POST"])
def mark_notes_read(report_id):
    actor = current_actor(json_body())
    report = note_service.mark_notes_read(report_id, actor)
    return jsonify(report.to_dict(viewer=actor))
