"""
QssunReports
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of create/update/delete and
      login events.
"""

import json
from datetime import datetime, timezone

from qssun_reports.models import db


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "report", "workflow_request", "package_request",
    "user", "branch", "team", "auth",
}

AUDIT_ACTIONS = {
    "create",
    "update",
    "delete",
    "report.stage_toggle",
    "report.confirm_stage",
    "report.add_exception",
    "report.accept_assignment",
    "report.finish",
    "workflow.advance",
    "workflow.edit_history",
    "package.transition",
    "auth.login_success",
    "auth.login_fail",
    "auth.password_change",
}


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per action. ``diff_json`` carries an old/new snapshot for field
    level changes.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_user_id"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    actor = db.Column(db.String(150), nullable=False, default="system")
    actor_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    diff_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def diff(self) -> dict:
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "actorUserId": self.actor_user_id,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor=None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row. Uses ``flush`` so callers keep transaction
    control.

    ``actor`` is a User instance, a plain name string, or None for system.
    """
    if actor is None:
        actor_name, actor_id = "system", None
    elif isinstance(actor, str):
        actor_name, actor_id = actor, None
    else:
        actor_name, actor_id = actor.username, actor.id

    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor_name,
        actor_user_id=actor_id,
        diff_json=json.dumps(diff or {}, default=str, ensure_ascii=False),
    )
    db.session.add(log)
    db.session.flush()
    return log
