"""
Package Service — customer package requests.

Status flow (see ``PACKAGE_TRANSITIONS``):

    NEW → PAYMENT_CONFIRMED → PROCESSING → READY_FOR_DELIVERY → DELIVERED
    (any status before READY_FOR_DELIVERY may be CANCELLED)

Every action writes a PackageLog row and an audit entry; payment proofs
and shipping documents are stored as PackageAttachment rows.
"""

import logging

from sqlalchemy.orm.attributes import flag_modified

from qssun_reports.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from qssun_reports.models import db
from qssun_reports.models.audit import write_audit
from qssun_reports.models.auth import ROLE_EMPLOYEE
from qssun_reports.models.package import (
    PACKAGE_PRIORITIES,
    PACKAGE_PROGRESS,
    PackageAttachment,
    PackageLog,
    PackageRequest,
    validate_package_transition,
)
from qssun_reports.services.code_generator import generate_package_code
from qssun_reports.services.file_storage import store_uploads

logger = logging.getLogger(__name__)

# action -> (target status, log action, attachment type)
PACKAGE_ACTIONS = {
    "confirm-payment": ("PAYMENT_CONFIRMED", "payment_confirmed", "payment_proof"),
    "start": ("PROCESSING", "processing_started", None),
    "mark-ready": ("READY_FOR_DELIVERY", "marked_ready", "shipping_doc"),
    "confirm-delivery": ("DELIVERED", "delivery_confirmed", None),
    "cancel": ("CANCELLED", "cancelled", None),
}

_META_KEYS = ("packageType", "deliveryMethod", "modifications", "isPaid", "customerLocation")


def get_package(package_id) -> PackageRequest:
    pkg = db.session.get(PackageRequest, str(package_id))
    if pkg is None:
        raise NotFoundError("PackageRequest", package_id)
    return pkg


def list_packages(viewer=None) -> list[PackageRequest]:
    """Plain employees see their own requests; every other role sees all."""
    q = PackageRequest.query
    if viewer is not None and viewer.role == ROLE_EMPLOYEE:
        q = q.filter(PackageRequest.user_id == viewer.id)
    return q.order_by(PackageRequest.created_at.desc()).all()


def _priority(value):
    value = value or "medium"
    if value not in PACKAGE_PRIORITIES:
        raise ValidationError(f"priority must be one of {list(PACKAGE_PRIORITIES)}")
    return value


def _log(pkg, actor, action, comment=""):
    db.session.add(PackageLog(package=pkg, actor_id=actor.id if actor else None,
                              action=action, comment=comment or ""))


def create_package(data: dict, actor) -> PackageRequest:
    customer_name = (data.get("customerName") or "").strip()
    title = (data.get("title") or "").strip() or \
        f"{data.get('packageType') or 'Package'} - {customer_name}".strip(" -")
    is_paid = bool(data.get("isPaid"))
    status = "PAYMENT_CONFIRMED" if is_paid else "NEW"

    meta = dict(data.get("meta") or {})
    meta.update({k: data.get(k) for k in _META_KEYS if k in data})

    pkg = PackageRequest(
        id=generate_package_code(),
        owner=actor,
        title=title,
        description=data.get("description") or data.get("modifications") or "",
        customer_name=customer_name,
        customer_phone=data.get("customerPhone") or "",
        customer_location=data.get("customerLocation") or None,
        priority=_priority(data.get("priority")),
        status=status,
        progress_percent=PACKAGE_PROGRESS[status],
        meta=meta,
    )
    db.session.add(pkg)
    db.session.flush()
    _log(pkg, actor, "created")
    write_audit(entity_type="package_request", entity_id=pkg.id, action="create", actor=actor,
                diff={"title": title, "status": status})
    db.session.commit()
    logger.info("Package request %s created", pkg.id,
                extra={"package_id": pkg.id, "user_id": actor.id, "event_type": "package.create"})
    return pkg


def transition_package(package_id, action: str, actor, *, comment="", files=None) -> PackageRequest:
    """Run one status action, storing any attachments it carries."""
    if action not in PACKAGE_ACTIONS:
        raise ValidationError(f"Unknown package action '{action}'")
    target, log_action, attachment_type = PACKAGE_ACTIONS[action]
    pkg = get_package(package_id)

    old = pkg.status
    if not validate_package_transition(old, target):
        raise StateConflictError(f"Invalid transition: {old} → {target}", current_status=old)

    if attachment_type:
        for stored in store_uploads(files or [], f"packages/{pkg.id}", actor.id):
            db.session.add(PackageAttachment(
                package=pkg, type=attachment_type, url=stored["url"],
                file_name=stored["fileName"], uploaded_by=actor.id,
            ))

    pkg.status = target
    if target in PACKAGE_PROGRESS:
        pkg.progress_percent = PACKAGE_PROGRESS[target]
    _log(pkg, actor, log_action, comment)
    write_audit(entity_type="package_request", entity_id=pkg.id, action="package.transition", actor=actor,
                diff={"status": {"old": old, "new": target}})
    db.session.commit()
    logger.info("Package request %s: %s → %s", pkg.id, old, target,
                extra={"package_id": pkg.id, "user_id": actor.id, "event_type": f"package.{log_action}"})
    return pkg


_UPDATABLE = {
    "title": "title",
    "description": "description",
    "customerName": "customer_name",
    "customerPhone": "customer_phone",
    "customerLocation": "customer_location",
}


def update_package(package_id, data: dict, actor) -> PackageRequest:
    """Edit descriptive fields. Status only moves through the actions."""
    pkg = get_package(package_id)
    if "status" in data or "progressPercent" in data:
        raise ValidationError("status changes go through the package actions")

    changes = {}
    for key, column in _UPDATABLE.items():
        if key in data and getattr(pkg, column) != data[key]:
            changes[column] = {"old": getattr(pkg, column), "new": data[key]}
            setattr(pkg, column, data[key])
    if "priority" in data:
        priority = _priority(data["priority"])
        if priority != pkg.priority:
            changes["priority"] = {"old": pkg.priority, "new": priority}
            pkg.priority = priority
    if isinstance(data.get("meta"), dict):
        pkg.meta = {**(pkg.meta or {}), **data["meta"]}
        flag_modified(pkg, "meta")
        changes["meta"] = sorted(data["meta"])
    if not changes:
        raise ValidationError("لا توجد حقول محدّثة.")

    write_audit(entity_type="package_request", entity_id=pkg.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    return pkg


def delete_package(package_id, actor) -> None:
    pkg = get_package(package_id)
    if not actor.is_admin and pkg.user_id != actor.id:
        raise PermissionDeniedError("Only the owner or an admin can delete a package request")
    write_audit(entity_type="package_request", entity_id=pkg.id, action="delete", actor=actor,
                diff={"title": pkg.title, "status": pkg.status})
    db.session.delete(pkg)
    db.session.commit()
