"""
Package Blueprint — customer package requests.

Endpoints:
  GET/POST          /package-requests
  GET/PUT/DELETE    /package-requests/<id>
  POST              /package-requests/<id>/<action>
                    action ∈ confirm-payment | start | mark-ready | confirm-delivery | cancel

``confirm-payment`` takes payment proofs in ``payment_proof``; ``mark-ready``
takes shipping documents in ``shipping_docs``.
"""

from flask import Blueprint, jsonify, request

from qssun_reports.blueprints import current_actor, json_body
from qssun_reports.services import package_service
from qssun_reports.utils.errors import E, api_error

package_bp = Blueprint("packages", __name__, url_prefix="/api/v1")

_UPLOAD_FIELDS = {"confirm-payment": "payment_proof", "mark-ready": "shipping_docs"}


@package_bp.route("/package-requests", methods=["GET"])
def list_packages():
    viewer = current_actor() if request.args.get("employeeId") else None
    return jsonify([p.to_dict() for p in package_service.list_packages(viewer)])


@package_bp.route("/package-requests", methods=["POST"])
def create_package():
    data = json_body()
    if not (data.get("customerName") or data.get("title")):
        return api_error(E.VALIDATION_REQUIRED, "customerName or title is required")
    actor = current_actor(data)
    pkg = package_service.create_package(data, actor)
    return jsonify(pkg.to_dict()), 201


@package_bp.route("/package-requests/<package_id>", methods=["GET"])
def get_package(package_id):
    return jsonify(package_service.get_package(package_id).to_dict(include_children=True))


@package_bp.route("/package-requests/<package_id>", methods=["PUT"])
def update_package(package_id):
    data = json_body()
    actor = current_actor(data)
    pkg = package_service.update_package(package_id, data, actor)
    return jsonify(pkg.to_dict())


@package_bp.route("/package-requests/<package_id>", methods=["DELETE"])
def delete_package(package_id):
    actor = current_actor(json_body())
    package_service.delete_package(package_id, actor)
    return jsonify({"message": "تم حذف الطلب بنجاح."}), 200


@package_bp.route("/package-requests/<package_id>/<action>", methods=["POST"])
def package_action(package_id, action):
    if action not in package_service.PACKAGE_ACTIONS:
        return api_error(E.NOT_FOUND, f"Unknown package action '{action}'")
    data = json_body()
    actor = current_actor(data)
    field = _UPLOAD_FIELDS.get(action)
    pkg = package_service.transition_package(
        package_id, action, actor,
        comment=request.form.get("comment") or data.get("comment") or "",
        files=request.files.getlist(field) if field else None,
    )
    return jsonify(pkg.to_dict(include_children=True))
