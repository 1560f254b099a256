"""
QssunReports
Report domain model.

Models:
    - Report: employee-submitted Sales / Maintenance / Project / Inquiry record

Project reports carry an ordered ``details.updates`` stage array and a
derived ``project_workflow_status``. The stage order, the status transition
table and the status derivation rules live here; the pure gating functions
that use them live in ``services.project_workflow``.
"""

import copy
from datetime import datetime, timezone

from qssun_reports.models import db


# ── Report constants ─────────────────────────────────────────────────────────

REPORT_TYPES = ("Sales", "Maintenance", "Project", "Inquiry")
REPORT_STATUSES = ("Pending", "Approved", "Rejected")

MAINTENANCE_SERVICE_TYPES = {"repair", "install", "preview", "periodic"}
MAINTENANCE_WORK_STATUSES = {"completed", "in_progress", "pending", "cancelled"}


# ── Project stages (fixed order) ─────────────────────────────────────────────

STAGE_CONTRACT = "contract"
STAGE_FIRST_PAYMENT = "firstPayment"
STAGE_NOTIFY_TEAM = "notifyTeam"
STAGE_CONCRETE_WORKS = "concreteWorks"
STAGE_SECOND_PAYMENT = "secondPayment"
STAGE_INSTALLATION_COMPLETE = "installationComplete"
STAGE_DELIVERY_HANDOVER = "deliveryHandover"

PROJECT_STAGES = (
    (STAGE_CONTRACT, "توقيع العقد"),
    (STAGE_FIRST_PAYMENT, "تم استلام الدفعة الأولى"),
    (STAGE_NOTIFY_TEAM, "إشعار الفريق الفني"),
    (STAGE_CONCRETE_WORKS, "الأعمال الخرسانية"),
    (STAGE_SECOND_PAYMENT, "تم استلام الدفعة الثانية"),
    (STAGE_INSTALLATION_COMPLETE, "اكتمال التركيب"),
    (STAGE_DELIVERY_HANDOVER, "تم ارسال محضر تسليم الأعمال"),
)
PROJECT_STAGE_IDS = tuple(stage_id for stage_id, _ in PROJECT_STAGES)

# Once completed these can never be unchecked
ONE_WAY_STAGES = frozenset({STAGE_NOTIFY_TEAM})

# Completing one of these notifies the assigned team's leader
TEAM_LEAD_NOTIFY_STAGES = frozenset({
    STAGE_NOTIFY_TEAM, STAGE_CONCRETE_WORKS, STAGE_INSTALLATION_COMPLETE,
})


def default_project_updates():
    """Return a fresh, all-incomplete stage array."""
    return [
        {"id": stage_id, "label": label, "completed": False, "files": []}
        for stage_id, label in PROJECT_STAGES
    ]


# ── Project workflow status ──────────────────────────────────────────────────

STATUS_DRAFT = "Draft"
STATUS_PENDING_TEAM_ACCEPTANCE = "PendingTeamAcceptance"
STATUS_IN_PROGRESS = "InProgress"
STATUS_CONCRETE_WORKS_DONE = "ConcreteWorksDone"
STATUS_FINISHING_WORKS = "FinishingWorks"
STATUS_TECHNICALLY_COMPLETED = "TechnicallyCompleted"
STATUS_FINALIZED = "Finalized"

PROJECT_WORKFLOW_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING_TEAM_ACCEPTANCE,
    STATUS_IN_PROGRESS,
    STATUS_CONCRETE_WORKS_DONE,
    STATUS_FINISHING_WORKS,
    STATUS_TECHNICALLY_COMPLETED,
    STATUS_FINALIZED,
)

# A team with a project in one of these statuses cannot take a new one
ACTIVE_PROJECT_STATUSES = frozenset({
    STATUS_PENDING_TEAM_ACCEPTANCE,
    STATUS_IN_PROGRESS,
    STATUS_CONCRETE_WORKS_DONE,
    STATUS_FINISHING_WORKS,
})

PROJECT_STATUS_TRANSITIONS = {
    STATUS_DRAFT:                   [STATUS_PENDING_TEAM_ACCEPTANCE],
    STATUS_PENDING_TEAM_ACCEPTANCE: [STATUS_IN_PROGRESS],
    STATUS_IN_PROGRESS:             [STATUS_CONCRETE_WORKS_DONE],
    STATUS_CONCRETE_WORKS_DONE:     [STATUS_FINISHING_WORKS],
    STATUS_FINISHING_WORKS:         [STATUS_TECHNICALLY_COMPLETED],
    STATUS_TECHNICALLY_COMPLETED:   [STATUS_FINALIZED],
    STATUS_FINALIZED:               [],
}

# Evaluated top to bottom on every save; first match wins.
# (completed stage, required previous status or None for any, resulting status)
STATUS_DERIVATION_RULES = (
    (STAGE_DELIVERY_HANDOVER, None, STATUS_FINALIZED),
    (STAGE_SECOND_PAYMENT, STATUS_CONCRETE_WORKS_DONE, STATUS_FINISHING_WORKS),
    (STAGE_NOTIFY_TEAM, STATUS_DRAFT, STATUS_PENDING_TEAM_ACCEPTANCE),
)


def validate_project_status_transition(old_status, new_status):
    """Return True if the project workflow status transition is valid."""
    return new_status in PROJECT_STATUS_TRANSITIONS.get(old_status or STATUS_DRAFT, [])


# ═════════════════════════════════════════════════════════════════════════════
# Report
# ═════════════════════════════════════════════════════════════════════════════


class Report(db.Model):
    """
    Employee report.

    ``details`` holds the type-specific payload (customers, images, stage
    array, exceptions ...). ``admin_notes`` is the per-report discussion
    thread; ``modifications`` records who touched the report and when.
    """

    __tablename__ = "reports"
    __table_args__ = (
        db.Index("idx_reports_type_status", "report_type", "status"),
        db.Index("idx_reports_team", "assigned_team_id", "project_workflow_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)
    report_type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="Pending")
    details = db.Column(db.JSON, default=dict)
    evaluation = db.Column(db.JSON, nullable=True)
    modifications = db.Column(db.JSON, default=list)
    assigned_team_id = db.Column(
        db.Integer, db.ForeignKey("technical_teams.id", ondelete="SET NULL"), nullable=True,
    )
    project_workflow_status = db.Column(db.String(30), nullable=True)
    admin_notes = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    owner = db.relationship("User")
    branch = db.relationship("Branch")
    assigned_team = db.relationship("TechnicalTeam")

    @property
    def is_project(self):
        return self.report_type == "Project"

    def stage_updates(self):
        """Deep copy of the project stage array (empty for other types)."""
        return copy.deepcopy((self.details or {}).get("updates") or [])

    def to_dict(self, viewer=None):
        """Serialize for the API.

        When ``viewer`` is a team lead, project stage attachments are reduced
        to the files that lead uploaded.
        """
        details = copy.deepcopy(self.details or {})
        if viewer is not None and viewer.is_team_lead and self.is_project:
            for update in details.get("updates") or []:
                if isinstance(update.get("files"), list):
                    update["files"] = [
                        f for f in update["files"]
                        if str(f.get("uploadedBy")) == str(viewer.id)
                    ]

        owner = self.owner
        return {
            "id": str(self.id),
            "employeeId": owner.username if owner else "N/A",
            "employeeName": owner.full_name if owner else "N/A",
            "branch": self.branch.name if self.branch else "N/A",
            "department": (owner.department if owner else None) or "N/A",
            "type": self.report_type,
            "date": self.created_at.isoformat() if self.created_at else None,
            "status": self.status,
            "details": details,
            "evaluation": self.evaluation,
            "modifications": list(self.modifications or []),
            "assignedTeamId": str(self.assigned_team_id) if self.assigned_team_id else None,
            "projectWorkflowStatus": self.project_workflow_status,
            "adminNotes": list(self.admin_notes or []),
        }

    def __repr__(self):
        return f"<Report {self.id}: {self.report_type} [{self.status}]>"
