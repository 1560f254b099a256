"""
Technical team model.

Members are display-name strings, not user references; only the leader is a
real user row.
"""

from datetime import datetime, timezone

from qssun_reports.models import db


class TechnicalTeam(db.Model):
    __tablename__ = "technical_teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    leader_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    members = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    leader = db.relationship("User")

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "leaderId": str(self.leader_id) if self.leader_id else None,
            "leaderName": self.leader.full_name if self.leader else None,
            "members": list(self.members or []),
            "creationDate": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TechnicalTeam {self.id}: {self.name}>"
