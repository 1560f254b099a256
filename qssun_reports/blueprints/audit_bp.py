"""
Audit Blueprint — read-only access to the audit trail.

  GET /audit-logs?entityType=&entityId=&userId=&action=&limit=&offset=
"""

from flask import Blueprint, jsonify, request

from qssun_reports.blueprints import paginate_query
from qssun_reports.models.audit import AuditLog

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


@audit_bp.route("/audit-logs", methods=["GET"])
def list_audit_logs():
    q = AuditLog.query
    entity_type = request.args.get("entityType")
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    entity_id = request.args.get("entityId")
    if entity_id:
        q = q.filter(AuditLog.entity_id == str(entity_id))
    user_id = request.args.get("userId", type=int)
    if user_id:
        q = q.filter(AuditLog.actor_user_id == user_id)
    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action == action)

    q = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    items, total = paginate_query(q, default_limit=100, max_limit=500)
    return jsonify({"items": [a.to_dict() for a in items], "total": total})
