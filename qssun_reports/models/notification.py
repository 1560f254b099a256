"""
QssunReports
Notification domain model.

Models:
    - Notification: per-user bell notification with read tracking
"""

from datetime import datetime, timezone

from qssun_reports.models import db


class Notification(db.Model):
    """
    In-app bell notification.

    One record per recipient per event; read state is flipped in bulk.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notifications_user_read", "user_id", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = db.Column(db.String(300), default="")
    message = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(300), default="")

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": str(self.id),
            "title": self.title or "",
            "message": self.message,
            "link": self.link or "",
            "isRead": bool(self.is_read),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id} -> user {self.user_id}: {self.message[:40]}>"
