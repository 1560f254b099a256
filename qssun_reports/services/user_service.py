"""
User Service — login, CRUD, first-login profile and password changes.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from qssun_reports.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from qssun_reports.models import db
from qssun_reports.models.audit import write_audit
from qssun_reports.models.auth import EMPLOYEE_TYPES, Branch, User, role_to_db
from qssun_reports.models.report import REPORT_TYPES
from qssun_reports.utils.crypto import hash_password, needs_rehash, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


# ═══════════════════════════════════════════════════════════════
# Lookup & actor resolution
# ═══════════════════════════════════════════════════════════════
def get_user(user_id) -> User:
    user = db.session.get(User, int(user_id)) if str(user_id).isdigit() else None
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_user_by_employee_id(employee_id: str) -> User:
    user = User.query.filter_by(username=str(employee_id or "").strip()).first()
    if user is None:
        raise NotFoundError("User", employee_id)
    return user


def resolve_actor(user_id=None, employee_id=None) -> User:
    """Identify the caller from the JWT subject or the posted employeeId."""
    if user_id is not None:
        return get_user(user_id)
    if employee_id:
        return get_user_by_employee_id(employee_id)
    raise AuthenticationError("Acting user could not be identified")


def require_admin(actor: User) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("Admin role required")


# ═══════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════
def authenticate(employee_id: str, password: str) -> User:
    """Check credentials; upgrades legacy plain-text passwords to bcrypt."""
    user = User.query.filter_by(username=str(employee_id or "").strip()).first()
    if user is None or not user.is_active:
        write_audit(entity_type="auth", entity_id=employee_id or "-", action="auth.login_fail",
                    diff={"reason": "unknown_user"})
        db.session.commit()
        raise NotFoundError("User", employee_id)

    if not verify_password(password, user.password_hash):
        write_audit(entity_type="auth", entity_id=user.id, action="auth.login_fail",
                    actor=user, diff={"reason": "bad_password"})
        db.session.commit()
        logger.info("Login failed for %s", user.username,
                    extra={"user_id": user.id, "event_type": "auth.login_fail"})
        raise AuthenticationError("Invalid password")

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("Upgraded legacy password for %s", user.username,
                    extra={"user_id": user.id, "event_type": "auth.password_rehash"})

    write_audit(entity_type="auth", entity_id=user.id, action="auth.login_success", actor=user)
    db.session.commit()
    return user


# ═══════════════════════════════════════════════════════════════
# Validation helpers
# ═══════════════════════════════════════════════════════════════
def _normalize_email(email):
    if not email:
        return ""
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": str(e)}) from None


def _resolve_branch(name):
    if not name:
        return None
    branch = Branch.query.filter_by(name=name).first()
    if branch is None:
        raise ValidationError(f"Branch '{name}' not found", details={"branch": name})
    return branch


def _resolve_role(label):
    role = role_to_db(label)
    if role is None:
        raise ValidationError(f"Unknown role '{label}'", details={"role": label})
    return role


def _check_report_types(types):
    if types is None:
        return []
    if not isinstance(types, list) or any(t not in REPORT_TYPES for t in types):
        raise ValidationError(
            "allowedReportTypes must be a list of report types",
            details={"allowedReportTypes": list(REPORT_TYPES)},
        )
    return list(types)


def _check_password(password):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too_short"},
        )


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def list_users() -> list[User]:
    return User.query.order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(data: dict, actor: User | None = None) -> User:
    """Create a user from the frontend payload (camelCase keys)."""
    employee_id = (data.get("employeeId") or "").strip()
    name = (data.get("name") or "").strip()
    if not employee_id or not name:
        raise ValidationError("employeeId and name are required")
    _check_password(data.get("password"))

    if User.query.filter_by(username=employee_id).first():
        raise ConflictError("User", "employeeId", employee_id)

    employee_type = data.get("employeeType") or "Technician"
    if employee_type not in EMPLOYEE_TYPES:
        raise ValidationError(f"Unknown employeeType '{employee_type}'")

    user = User(
        username=employee_id,
        password_hash=hash_password(data["password"]),
        full_name=name,
        email=_normalize_email(data.get("email")),
        phone=data.get("phone") or "",
        role=_resolve_role(data.get("role") or "Employee"),
        branch=_resolve_branch(data.get("branch")),
        department=data.get("department") or "",
        position=data.get("position") or "",
        employee_type=employee_type,
        has_import_export_permission=bool(data.get("hasImportExportPermission")),
        is_first_login=True,
        allowed_report_types=_check_report_types(data.get("allowedReportTypes")),
    )
    db.session.add(user)
    db.session.flush()
    write_audit(entity_type="user", entity_id=user.id, action="create", actor=actor,
                diff={"employeeId": employee_id, "role": user.role})
    db.session.commit()
    logger.info("User %s created", employee_id, extra={"user_id": user.id, "event_type": "user.create"})
    return user


# payload key -> (column, converter)
_UPDATABLE = {
    "employeeId": ("username", lambda v: str(v).strip()),
    "name": ("full_name", lambda v: str(v).strip()),
    "email": ("email", _normalize_email),
    "phone": ("phone", lambda v: v or ""),
    "role": ("role", _resolve_role),
    "department": ("department", lambda v: v or ""),
    "position": ("position", lambda v: v or ""),
    "employeeType": ("employee_type", lambda v: v),
    "hasImportExportPermission": ("has_import_export_permission", bool),
    "allowedReportTypes": ("allowed_report_types", _check_report_types),
}


def update_user(user_id, data: dict, actor: User | None = None) -> User:
    """Partial update; only keys present in ``data`` are touched."""
    user = get_user(user_id)
    changes = {}

    if "employeeId" in data:
        username = str(data["employeeId"]).strip()
        if User.query.filter(User.username == username, User.id != user.id).first():
            raise ConflictError("User", "employeeId", username)

    for key, (column, convert) in _UPDATABLE.items():
        if key not in data:
            continue
        new_value = convert(data[key])
        old_value = getattr(user, column)
        if new_value != old_value:
            changes[column] = {"old": old_value, "new": new_value}
            setattr(user, column, new_value)

    if "branch" in data:
        branch = _resolve_branch(data["branch"])
        if user.branch_id != (branch.id if branch else None):
            changes["branch"] = {"old": user.branch.name if user.branch else None,
                                 "new": branch.name if branch else None}
            user.branch = branch

    if data.get("password"):
        _check_password(data["password"])
        user.password_hash = hash_password(data["password"])
        changes["password"] = {"old": "***", "new": "***"}

    if not changes and not any(k in data for k in (*_UPDATABLE, "branch", "password")):
        raise ValidationError("No fields to update")

    if user.employee_type not in EMPLOYEE_TYPES:
        raise ValidationError(f"Unknown employeeType '{user.employee_type}'")

    write_audit(entity_type="user", entity_id=user.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    return user


def delete_user(user_id, actor: User | None = None) -> None:
    user = get_user(user_id)
    if actor is not None and actor.id == user.id:
        raise ValidationError("Users cannot delete their own account")
    write_audit(entity_type="user", entity_id=user.id, action="delete", actor=actor,
                diff={"employeeId": user.username})
    db.session.delete(user)
    db.session.commit()
    logger.info("User %s deleted", user.username, extra={"event_type": "user.delete"})


# ═══════════════════════════════════════════════════════════════
# Self-service
# ═══════════════════════════════════════════════════════════════
def complete_profile(user: User, *, name=None, phone=None, password=None) -> User:
    """First-login completion: optional name/phone, new password, clears the flag."""
    if name:
        user.full_name = name.strip()
    if phone:
        user.phone = phone
    if password:
        _check_password(password)
        user.password_hash = hash_password(password)
    user.is_first_login = False
    write_audit(entity_type="user", entity_id=user.id, action="update", actor=user,
                diff={"is_first_login": {"old": True, "new": False}})
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("كلمة المرور الحالية غير صحيحة")
    _check_password(new_password)
    user.password_hash = hash_password(new_password)
    write_audit(entity_type="user", entity_id=user.id, action="auth.password_change", actor=user)
    db.session.commit()
