"""
Branch Service — CRUD for company branches.
"""

import logging

from qssun_reports.core.exceptions import ConflictError, NotFoundError, ValidationError
from qssun_reports.models import db
from qssun_reports.models.audit import write_audit
from qssun_reports.models.auth import Branch

logger = logging.getLogger(__name__)

_FIELDS = ("name", "location", "phone", "manager")


def get_branch(branch_id) -> Branch:
    branch = db.session.get(Branch, int(branch_id)) if str(branch_id).isdigit() else None
    if branch is None:
        raise NotFoundError("Branch", branch_id)
    return branch


def list_branches() -> list[Branch]:
    return Branch.query.order_by(Branch.name).all()


def create_branch(data: dict, actor=None) -> Branch:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    if Branch.query.filter_by(name=name).first():
        raise ConflictError("Branch", "name", name)

    branch = Branch(
        name=name,
        location=data.get("location") or "",
        phone=data.get("phone") or "",
        manager=data.get("manager") or "",
    )
    db.session.add(branch)
    db.session.flush()
    write_audit(entity_type="branch", entity_id=branch.id, action="create", actor=actor,
                diff={"name": name})
    db.session.commit()
    return branch


def update_branch(branch_id, data: dict, actor=None) -> Branch:
    branch = get_branch(branch_id)
    changes = {}
    for field in _FIELDS:
        if field not in data:
            continue
        value = (data.get(field) or "").strip()
        if field == "name":
            if not value:
                raise ValidationError("name cannot be empty")
            clash = Branch.query.filter(Branch.name == value, Branch.id != branch.id).first()
            if clash:
                raise ConflictError("Branch", "name", value)
        if getattr(branch, field) != value:
            changes[field] = {"old": getattr(branch, field), "new": value}
            setattr(branch, field, value)

    write_audit(entity_type="branch", entity_id=branch.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    return branch


def delete_branch(branch_id, actor=None) -> None:
    branch = get_branch(branch_id)
    write_audit(entity_type="branch", entity_id=branch.id, action="delete", actor=actor,
                diff={"name": branch.name})
    db.session.delete(branch)
    db.session.commit()
    logger.info("Branch %s deleted", branch.name, extra={"event_type": "branch.delete"})
