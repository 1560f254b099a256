"""
Workflow Blueprint — import/export requests.

Endpoints:
  GET/POST          /workflow-requests
  GET/PUT/DELETE    /workflow-requests/<id>
  POST              /workflow-requests/<id>/advance
  PUT               /workflow-requests/<id>/history/<sequence>
  GET               /workflow-stages

Documents are uploaded in the ``documents`` multipart field; each filename
is ``<docId>___<docType>___<originalName>``. Other request fields travel
as JSON in ``requestData`` (or as a plain JSON body without uploads).
"""

from flask import Blueprint, jsonify, request

from qssun_reports.blueprints import current_actor, form_json
from qssun_reports.models.workflow import DOCUMENT_TYPES, WORKFLOW_STAGES
from qssun_reports.services import workflow_service
from qssun_reports.utils.errors import E, api_error

workflow_bp = Blueprint("workflows", __name__, url_prefix="/api/v1")


def _payload():
    return form_json("requestData") or {}


@workflow_bp.route("/workflow-stages", methods=["GET"])
def list_stages():
    return jsonify({"stages": list(WORKFLOW_STAGES), "documentTypes": list(DOCUMENT_TYPES)})


@workflow_bp.route("/workflow-requests", methods=["GET"])
def list_requests():
    return jsonify([r.to_dict() for r in workflow_service.list_requests()])


@workflow_bp.route("/workflow-requests", methods=["POST"])
def create_request():
    data = _payload()
    if not (data.get("title") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    actor = current_actor(data)
    req = workflow_service.create_request(data, actor)
    return jsonify(req.to_dict()), 201


@workflow_bp.route("/workflow-requests/<request_id>", methods=["GET"])
def get_request(request_id):
    return jsonify(workflow_service.get_request(request_id).to_dict())


@workflow_bp.route("/workflow-requests/<request_id>", methods=["PUT"])
def update_request(request_id):
    data = _payload()
    actor = current_actor(data)
    req = workflow_service.update_request(
        request_id, data, actor, files=request.files.getlist("documents"),
    )
    return jsonify(req.to_dict())


@workflow_bp.route("/workflow-requests/<request_id>", methods=["DELETE"])
def delete_request(request_id):
    actor = current_actor(request.get_json(silent=True) or {})
    workflow_service.delete_request(request_id, actor)
    return jsonify({"message": "Request deleted", "id": request_id}), 200


@workflow_bp.route("/workflow-requests/<request_id>/advance", methods=["POST"])
def advance_request(request_id):
    """Approve the current stage. Body: comment, logistics fields, documents."""
    data = _payload()
    actor = current_actor(data)
    req = workflow_service.advance_request(
        request_id, actor,
        files=request.files.getlist("documents"),
        documents=data.get("documents"),
        comment=data.get("comment") or "",
        logistics=data,
    )
    return jsonify(req.to_dict())


@workflow_bp.route("/workflow-requests/<request_id>/history/<int:sequence>", methods=["PUT"])
def edit_history_item(request_id, sequence):
    data = _payload()
    actor = current_actor(data)
    req = workflow_service.edit_history_item(
        request_id, sequence, data, actor, files=request.files.getlist("documents"),
    )
    return jsonify(req.to_dict())
