"""
QssunReports
Notification Service.

Central service for creating, broadcasting and querying bell notifications.
Workflow side effects go through ``dispatch``, which never raises: a failed
notification is logged and dropped so the business action that triggered it
still succeeds.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from qssun_reports.core.exceptions import NotFoundError, ValidationError
from qssun_reports.models import db
from qssun_reports.models.auth import ROLE_ADMIN, Branch, User
from qssun_reports.models.notification import Notification

logger = logging.getLogger(__name__)

BROADCAST_TYPES = ("all", "user", "branch")


def _unique_ids(user_ids, exclude=None):
    seen = set()
    result = []
    for uid in user_ids:
        if uid is None:
            continue
        uid = int(uid)
        if uid == exclude or uid in seen:
            continue
        seen.add(uid)
        result.append(uid)
    return result


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(user_ids, *, message, link="", title="", exclude_user_id=None):
        """
        Create one notification per recipient.

        Returns:
            List of created Notification instances (already committed).
        """
        notifications = []
        for uid in _unique_ids(user_ids, exclude=exclude_user_id):
            notif = Notification(user_id=uid, title=title, message=message, link=link)
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    @staticmethod
    def dispatch(user_ids, *, message, link="", title="", exclude_user_id=None, event_type=None):
        """Fire-and-forget variant of ``notify`` used for workflow side effects.

        Must be called after the triggering change is committed.
        """
        try:
            created = NotificationService.notify(
                user_ids, message=message, link=link, title=title,
                exclude_user_id=exclude_user_id,
            )
        except Exception:
            db.session.rollback()
            logger.exception("Notification dispatch failed", extra={"event_type": event_type})
            return []
        logger.info("Dispatched %d notification(s)", len(created), extra={"event_type": event_type})
        return created

    @staticmethod
    def send(*, message, title="", link="", target_type="all", recipient=None):
        """Admin broadcast: everyone, one user, or every user of a branch."""
        if target_type not in BROADCAST_TYPES:
            raise ValidationError(f"type must be one of {list(BROADCAST_TYPES)}")

        if target_type == "all":
            user_ids = [u.id for u in User.query.filter_by(is_active=True).all()]
        elif target_type == "user":
            user = User.query.filter_by(username=str(recipient or "")).first()
            if user is None and str(recipient or "").isdigit():
                user = db.session.get(User, int(recipient))
            if user is None:
                raise NotFoundError("User", recipient)
            user_ids = [user.id]
        else:
            branch = Branch.query.filter_by(name=str(recipient or "")).first()
            if branch is None:
                raise NotFoundError("Branch", recipient)
            user_ids = [u.id for u in branch.users.filter_by(is_active=True).all()]

        return NotificationService.notify(user_ids, message=message, link=link, title=title)

    # ── Recipients ───────────────────────────────────────────────────────

    @staticmethod
    def admin_ids():
        return [u.id for u in User.query.filter_by(role=ROLE_ADMIN, is_active=True).all()]

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, limit=None):
        """Newest notifications for a user, capped at NOTIFICATION_FEED_LIMIT."""
        limit = limit or current_app.config.get("NOTIFICATION_FEED_LIMIT", 50)
        return (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_all_read(user_id):
        """Mark every unread notification of a user as read. Returns the count."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
