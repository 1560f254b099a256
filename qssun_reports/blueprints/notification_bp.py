"""
Notification Blueprint — bell notifications.

Endpoints:
  GET   /notifications/<userId>         — newest notifications + unread count
  POST  /notifications/send             — admin broadcast (all | user | branch)
  POST  /notifications/read/<userId>    — mark every notification read
"""

import logging

from flask import Blueprint, jsonify

from qssun_reports.blueprints import current_actor, json_body
from qssun_reports.services.notification import BROADCAST_TYPES, NotificationService
from qssun_reports.services.user_service import get_user, require_admin
from qssun_reports.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications/<int:user_id>", methods=["GET"])
def list_notifications(user_id):
    get_user(user_id)
    items = NotificationService.list_for_user(user_id)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "unreadCount": NotificationService.unread_count(user_id),
    })


@notification_bp.route("/notifications/send", methods=["POST"])
def send_notification():
    """Body: { message, title?, link?, type: all|user|branch, recipient?, employeeId }"""
    data = json_body()
    message = (data.get("message") or "").strip()
    if not message:
        return api_error(E.VALIDATION_REQUIRED, "message is required")
    target_type = data.get("type") or "all"
    if target_type not in BROADCAST_TYPES:
        return api_error(E.VALIDATION_INVALID, f"type must be one of {list(BROADCAST_TYPES)}")
    if target_type != "all" and not data.get("recipient"):
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")

    actor = current_actor(data)
    require_admin(actor)
    created = NotificationService.send(
        message=message,
        title=data.get("title") or "",
        link=data.get("link") or "",
        target_type=target_type,
        recipient=data.get("recipient"),
    )
    logger.info("Broadcast sent to %d user(s)", len(created),
                extra={"user_id": actor.id, "event_type": "notification.broadcast"})
    return jsonify({"sent": len(created)}), 201


@notification_bp.route("/notifications/read/<int:user_id>", methods=["POST"])
def mark_all_read(user_id):
    get_user(user_id)
    count = NotificationService.mark_all_read(user_id)
    return jsonify({"updated": count})
