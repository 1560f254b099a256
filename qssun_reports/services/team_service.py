"""
Technical Team Service — CRUD plus the assignment exclusivity rule.

A team that already has a project in an active workflow status
(PendingTeamAcceptance → FinishingWorks) cannot take a new project.
"""

import logging

from qssun_reports.core.exceptions import ConflictError, NotFoundError, ValidationError
from qssun_reports.models import db
from qssun_reports.models.audit import write_audit
from qssun_reports.models.auth import User
from qssun_reports.models.report import ACTIVE_PROJECT_STATUSES, Report
from qssun_reports.models.team import TechnicalTeam

logger = logging.getLogger(__name__)


def get_team(team_id) -> TechnicalTeam:
    team = db.session.get(TechnicalTeam, int(team_id)) if str(team_id).isdigit() else None
    if team is None:
        raise NotFoundError("TechnicalTeam", team_id)
    return team


def list_teams() -> list[TechnicalTeam]:
    return TechnicalTeam.query.order_by(TechnicalTeam.created_at.desc(), TechnicalTeam.id.desc()).all()


def teams_led_by(user_id) -> list[TechnicalTeam]:
    return TechnicalTeam.query.filter_by(leader_id=user_id).all()


# ── Assignment exclusivity ───────────────────────────────────────────────────


def busy_team_ids(exclude_report_id=None) -> set[int]:
    """Ids of teams holding a project in an active status."""
    q = db.session.query(Report.assigned_team_id).filter(
        Report.report_type == "Project",
        Report.assigned_team_id.isnot(None),
        Report.project_workflow_status.in_(ACTIVE_PROJECT_STATUSES),
    )
    if exclude_report_id is not None:
        q = q.filter(Report.id != exclude_report_id)
    return {row[0] for row in q.all()}


def assignable_teams(exclude_report_id=None) -> list[TechnicalTeam]:
    """Teams free to take a new project."""
    busy = busy_team_ids(exclude_report_id)
    return [t for t in list_teams() if t.id not in busy]


def ensure_team_assignable(team_id, report_id=None) -> TechnicalTeam:
    """Return the team or raise ConflictError when it is busy elsewhere."""
    team = get_team(team_id)
    if team.id in busy_team_ids(exclude_report_id=report_id):
        raise ConflictError("TechnicalTeam", "active_project", team.name)
    return team


# ── CRUD ─────────────────────────────────────────────────────────────────────


def _leader(leader_id):
    if leader_id in (None, ""):
        raise ValidationError("leaderId is required")
    leader = db.session.get(User, int(leader_id)) if str(leader_id).isdigit() else None
    if leader is None:
        raise ValidationError(f"Leader {leader_id} not found", details={"leaderId": leader_id})
    return leader


def _members(members):
    if members is None:
        return []
    if not isinstance(members, list):
        raise ValidationError("members must be a list of names")
    return [str(m).strip() for m in members if str(m).strip()]


def create_team(data: dict, actor=None) -> TechnicalTeam:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    team = TechnicalTeam(
        name=name,
        leader=_leader(data.get("leaderId")),
        members=_members(data.get("members")),
    )
    db.session.add(team)
    db.session.flush()
    write_audit(entity_type="team", entity_id=team.id, action="create", actor=actor,
                diff={"name": name, "leader_id": team.leader_id})
    db.session.commit()
    return team


def update_team(team_id, data: dict, actor=None) -> TechnicalTeam:
    team = get_team(team_id)
    changes = {}
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty")
        changes["name"] = {"old": team.name, "new": name}
        team.name = name
    if "leaderId" in data:
        leader = _leader(data.get("leaderId"))
        changes["leader_id"] = {"old": team.leader_id, "new": leader.id}
        team.leader = leader
    if "members" in data:
        members = _members(data.get("members"))
        changes["members"] = {"old": list(team.members or []), "new": members}
        team.members = members

    write_audit(entity_type="team", entity_id=team.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    return team


def delete_team(team_id, actor=None) -> None:
    team = get_team(team_id)
    write_audit(entity_type="team", entity_id=team.id, action="delete", actor=actor,
                diff={"name": team.name})
    db.session.delete(team)
    db.session.commit()
    logger.info("Team %s deleted", team.name, extra={"event_type": "team.delete"})
