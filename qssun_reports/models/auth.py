"""
Auth & organisation models — branches and users.

Roles are exposed to the frontend with display labels ("TeamLead",
"Branch Manager", ...) and stored lower snake case ("team_lead",
"branch_manager", ...). ``role_to_db`` / ``role_to_label`` convert.
"""

from datetime import datetime, timezone

from qssun_reports.models import db


# ── Role constants ───────────────────────────────────────────────────────────

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLE_TEAM_LEAD = "team_lead"
ROLE_BRANCH_MANAGER = "branch_manager"
ROLE_HR_MANAGER = "hr_manager"
ROLE_VIEWER = "viewer"

ROLE_LABELS = {
    ROLE_ADMIN: "Admin",
    ROLE_EMPLOYEE: "Employee",
    ROLE_TEAM_LEAD: "TeamLead",
    ROLE_BRANCH_MANAGER: "Branch Manager",
    ROLE_HR_MANAGER: "HR Manager",
    ROLE_VIEWER: "Viewer",
}

_ROLE_ALIASES = {
    "teamlead": ROLE_TEAM_LEAD,
    "branchmanager": ROLE_BRANCH_MANAGER,
    "branch manager": ROLE_BRANCH_MANAGER,
    "hrmanager": ROLE_HR_MANAGER,
    "hr manager": ROLE_HR_MANAGER,
}

EMPLOYEE_TYPES = {"Project", "Accountant", "Technician", "Admin"}


def role_to_db(label: str | None) -> str | None:
    """Map a frontend role label to its stored value; None for unknown roles."""
    value = (label or "").strip().lower()
    value = _ROLE_ALIASES.get(value, value)
    return value if value in ROLE_LABELS else None


def role_to_label(value: str | None) -> str:
    return ROLE_LABELS.get((value or "").lower(), "Employee")


def _iso(dt):
    return dt.isoformat() if dt else None


# ═══════════════════════════════════════════════════════════════
# 1. BRANCHES
# ═══════════════════════════════════════════════════════════════
class Branch(db.Model):
    __tablename__ = "branches"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), unique=True, nullable=False)
    location = db.Column(db.String(250), default="")
    phone = db.Column(db.String(50), default="")
    manager = db.Column(db.String(150), default="")
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    users = db.relationship("User", back_populates="branch", lazy="dynamic")

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "location": self.location or "",
            "phone": self.phone or "",
            "manager": self.manager or "",
            "creationDate": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Branch {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False, comment="Employee ID used to log in")
    password_hash = db.Column(db.String(256), comment="bcrypt hash; legacy rows may hold plain text")
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), default="")
    phone = db.Column(db.String(50), default="")
    role = db.Column(db.String(30), nullable=False, default=ROLE_EMPLOYEE)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)
    department = db.Column(db.String(150), default="")
    position = db.Column(db.String(150), default="")
    employee_type = db.Column(db.String(30), default="Technician")
    has_import_export_permission = db.Column(db.Boolean, default=False)
    is_first_login = db.Column(db.Boolean, default=True)
    is_active = db.Column(db.Boolean, default=True)
    allowed_report_types = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    branch = db.relationship("Branch", back_populates="users")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_team_lead(self) -> bool:
        return self.role == ROLE_TEAM_LEAD

    @property
    def can_manage_workflows(self) -> bool:
        return self.is_admin or bool(self.has_import_export_permission)

    def to_dict(self):
        return {
            "id": str(self.id),
            "employeeId": self.username,
            "name": self.full_name,
            "email": self.email or "",
            "phone": self.phone or "",
            "role": role_to_label(self.role),
            "branch": self.branch.name if self.branch else "N/A",
            "department": self.department or "",
            "position": self.position or "",
            "joinDate": _iso(self.created_at),
            "employeeType": self.employee_type or "Technician",
            "hasImportExportPermission": bool(self.has_import_export_permission),
            "isFirstLogin": bool(self.is_first_login),
            "allowedReportTypes": list(self.allowed_report_types or []),
        }

    def __repr__(self):
        return f"<User {self.id}: {self.username}>"
