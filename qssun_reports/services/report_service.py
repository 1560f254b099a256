"""
Report Service — CRUD and the project workflow lifecycle.

Business logic for:
    - Report creation / update with multipart attachments
    - Project stage gating on every save (see ``project_workflow``)
    - Derived project workflow status, recomputed on every save
    - Team actions: accept assignment, confirm-stage, signed handover
    - Terminal "finish" action and project exceptions
    - Notification side effects (fire-and-forget, after commit)

Uploads arrive as ``{field_name: [FileStorage, ...]}`` built by the
blueprint from ``request.files``.
"""

from __future__ import annotations

import copy
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
from qssun_reports.models.auth import Branch, User
from qssun_reports.models.report import (
    MAINTENANCE_SERVICE_TYPES,
    MAINTENANCE_WORK_STATUSES,
    REPORT_STATUSES,
    REPORT_TYPES,
    STAGE_CONCRETE_WORKS,
    STAGE_DELIVERY_HANDOVER,
    STAGE_INSTALLATION_COMPLETE,
    STAGE_NOTIFY_TEAM,
    STATUS_CONCRETE_WORKS_DONE,
    STATUS_DRAFT,
    STATUS_FINALIZED,
    STATUS_IN_PROGRESS,
    STATUS_TECHNICALLY_COMPLETED,
    TEAM_LEAD_NOTIFY_STAGES,
    Report,
    validate_project_status_transition,
)
from qssun_reports.services import project_workflow as pw
from qssun_reports.services.file_storage import store_uploads
from qssun_reports.services.notification import NotificationService
from qssun_reports.services.team_service import ensure_team_assignable
from qssun_reports.utils.helpers import timestamp_id, utcnow_iso
from qssun_reports.utils.uploads import (
    EVALUATION_FIELD,
    MAINTENANCE_AFTER_FIELD,
    MAINTENANCE_BEFORE_FIELD,
    parse_indexed_field,
)

logger = logging.getLogger(__name__)

# confirm-stage actions available to the assigned team
CONFIRM_ACTIONS = ("concreteWorks", "technicalCompletion", "deliveryHandover_signed", "workflowDocs")

# Stage completion -> message sent to the team leader
_LEADER_MESSAGES = {
    STAGE_NOTIFY_TEAM: "تم إسناد مشروع جديد لفريقك في تقرير #{id}",
    STAGE_CONCRETE_WORKS: "تم تأكيد الأعمال الخرسانية في المشروع #{id}",
    STAGE_INSTALLATION_COMPLETE: "تم تأكيد اكتمال التركيب في المشروع #{id}",
}
_HANDOVER_UPLOADED_MESSAGE = "تم رفع محضر تسليم الأعمال للمشروع #{id} بانتظار التوقيع"
_FINALIZED_MESSAGE = "تم إغلاق المشروع #{id} نهائياً"


def report_link(report_id) -> str:
    return f"/reports/{report_id}"


# ═════════════════════════════════════════════════════════════════════════════
# Lookup
# ═════════════════════════════════════════════════════════════════════════════


def get_report(report_id) -> Report:
    report = db.session.get(Report, int(report_id)) if str(report_id).isdigit() else None
    if report is None:
        raise NotFoundError("Report", report_id)
    return report


def get_project(report_id) -> Report:
    report = get_report(report_id)
    if not report.is_project:
        raise ValidationError("This action is only for Project reports", details={"type": report.report_type})
    return report


def list_reports(*, report_type=None, status=None, employee_id=None, team_id=None) -> list[Report]:
    """All reports newest first, optionally filtered."""
    q = Report.query
    if report_type:
        q = q.filter(Report.report_type == report_type)
    if status:
        q = q.filter(Report.status == status)
    if employee_id:
        q = q.join(User, Report.user_id == User.id).filter(User.username == employee_id)
    if team_id:
        q = q.filter(Report.assigned_team_id == int(team_id))
    return q.order_by(Report.created_at.desc(), Report.id.desc()).all()


# ═════════════════════════════════════════════════════════════════════════════
# Permission helpers
# ═════════════════════════════════════════════════════════════════════════════


def _ensure_owner_or_admin(report: Report, actor: User) -> None:
    if actor.is_admin or report.user_id == actor.id:
        return
    raise PermissionDeniedError("Only the report owner or an admin can change this report")


def _ensure_team_leader(report: Report, actor: User) -> None:
    team = report.assigned_team
    if actor.is_admin or (team is not None and team.leader_id == actor.id):
        return
    raise PermissionDeniedError("Only the assigned team leader can perform this action")


def _ensure_type_allowed(actor: User, report_type: str) -> None:
    allowed = actor.allowed_report_types or []
    if allowed and not actor.is_admin and report_type not in allowed:
        raise PermissionDeniedError(f"User is not allowed to submit {report_type} reports")


# ═════════════════════════════════════════════════════════════════════════════
# Payload helpers
# ═════════════════════════════════════════════════════════════════════════════


def _validate_details(report_type: str, details: dict) -> None:
    if report_type == "Maintenance":
        service_type = details.get("serviceType")
        if service_type and service_type not in MAINTENANCE_SERVICE_TYPES:
            raise ValidationError(f"Invalid maintenance serviceType '{service_type}'")
        work_status = details.get("workStatus")
        if work_status and work_status not in MAINTENANCE_WORK_STATUSES:
            raise ValidationError(f"Invalid maintenance workStatus '{work_status}'")
    elif report_type == "Sales":
        if not isinstance(details.get("customers", []), list):
            raise ValidationError("customers must be a list")
    elif report_type == "Project":
        if not isinstance(details.get("updates", []), list):
            raise ValidationError("updates must be a list")


def _attach_uploads(report_type, details, evaluation, files_by_field, uploader_id):
    """Store uploaded files and splice their descriptors into the payload.

    Mutates ``details`` / ``evaluation`` in place. Returns the number of
    stored files.
    """
    stored = 0
    for field, files in (files_by_field or {}).items():
        if not files:
            continue
        if field in (MAINTENANCE_BEFORE_FIELD, MAINTENANCE_AFTER_FIELD) and report_type == "Maintenance":
            key = "beforeImages" if field == MAINTENANCE_BEFORE_FIELD else "afterImages"
            saved = store_uploads(files, "maintenance", uploader_id)
            details[key] = list(details.get(key) or []) + saved
            stored += len(saved)
            continue

        if field == EVALUATION_FIELD and evaluation is not None:
            saved = store_uploads(files, "evaluations", uploader_id)
            evaluation["files"] = list(evaluation.get("files") or []) + saved
            stored += len(saved)
            continue

        parsed = parse_indexed_field(field)
        if parsed is None:
            logger.warning("Ignoring upload in unexpected field %s", field)
            continue
        kind, index = parsed
        if kind == "sales_customer" and report_type == "Sales":
            target_list, folder = details.get("customers") or [], "sales"
        elif kind == "project_update" and report_type == "Project":
            target_list, folder = details.get("updates") or [], "projects"
        else:
            logger.warning("Ignoring upload field %s for %s report", field, report_type)
            continue
        if index >= len(target_list):
            logger.warning("Upload field %s points past the end of the list", field)
            continue
        saved = store_uploads(files, folder, uploader_id)
        target = target_list[index]
        target["files"] = list(target.get("files") or []) + saved
        stored += len(saved)
    return stored


def _handover_files(updates) -> list:
    stage = pw.find_stage(updates, STAGE_DELIVERY_HANDOVER)
    return list((stage or {}).get("files") or [])


def _keep_stored_stage_files(incoming_updates, stored_updates) -> None:
    """Replace client-sent stage attachments with the stored ones.

    Stage files only grow through uploads; entries the client left out
    keep their stored files.
    """
    stored = {u.get("id"): u.get("files") or [] for u in stored_updates or [] if isinstance(u, dict)}
    seen = set()
    for update in incoming_updates:
        if not isinstance(update, dict):
            continue
        seen.add(update.get("id"))
        update["files"] = copy.deepcopy(stored.get(update.get("id"), []))
    for stage_id, files in stored.items():
        if stage_id not in seen and files:
            incoming_updates.append({"id": stage_id, "files": copy.deepcopy(files)})


def _signed_by_team(report: Report, document: dict) -> bool:
    team = report.assigned_team
    uploader_id = str(document.get("uploadedBy") or "")
    if team is not None and uploader_id == str(team.leader_id):
        return True
    uploader = db.session.get(User, int(uploader_id)) if uploader_id.isdigit() else None
    return uploader is not None and uploader.is_admin


def _ensure_handover_ready(report: Report, updates, status) -> None:
    """deliveryHandover completes only after technical completion and both documents.

    The second handover file is the signed copy and must come from the
    assigned team leader (or an admin acting for the team).
    """
    if status not in (STATUS_TECHNICALLY_COMPLETED, STATUS_FINALIZED):
        raise StateConflictError(
            "Project must be technically completed before handover", current_status=status,
        )
    files = _handover_files(updates)
    if len(files) < 2:
        raise ValidationError(
            "Initial and signed handover documents are required",
            details={"stage": STAGE_DELIVERY_HANDOVER},
        )
    if not _signed_by_team(report, files[1]):
        raise ValidationError(
            "The signed handover document must be uploaded by the assigned team",
            details={"stage": STAGE_DELIVERY_HANDOVER},
        )


def _save_details(report: Report, details: dict) -> None:
    report.details = details
    flag_modified(report, "details")


# ═════════════════════════════════════════════════════════════════════════════
# Notification side effects
# ═════════════════════════════════════════════════════════════════════════════


def _dispatch_project_events(report, *, prev_status, completed=(), handover_uploaded=False,
                             actor=None, notify_owner_message=None):
    """Fan out notifications for a committed project change."""
    actor_id = actor.id if actor else None
    link = report_link(report.id)
    team = report.assigned_team
    leader_id = team.leader_id if team else None

    if leader_id:
        for stage_id in completed:
            if stage_id in TEAM_LEAD_NOTIFY_STAGES:
                NotificationService.dispatch(
                    [leader_id], message=_LEADER_MESSAGES[stage_id].format(id=report.id),
                    link=link, exclude_user_id=actor_id, event_type=f"project.{stage_id}",
                )
        if handover_uploaded:
            NotificationService.dispatch(
                [leader_id], message=_HANDOVER_UPLOADED_MESSAGE.format(id=report.id),
                link=link, exclude_user_id=actor_id, event_type="project.handover_uploaded",
            )

    if notify_owner_message:
        NotificationService.dispatch(
            [report.user_id], message=notify_owner_message, link=link,
            exclude_user_id=actor_id, event_type="project.team_action",
        )

    if report.project_workflow_status == STATUS_FINALIZED and prev_status != STATUS_FINALIZED:
        NotificationService.dispatch(
            NotificationService.admin_ids(), message=_FINALIZED_MESSAGE.format(id=report.id),
            link=link, exclude_user_id=actor_id, event_type="project.finalized",
        )


# ═════════════════════════════════════════════════════════════════════════════
# Create / update / delete
# ═════════════════════════════════════════════════════════════════════════════


def create_report(payload: dict, files_by_field: dict | None, actor: User) -> Report:
    """Create a report from the ``reportData`` payload plus its uploads."""
    report_type = payload.get("type")
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"type must be one of {list(REPORT_TYPES)}", details={"type": report_type})
    _ensure_type_allowed(actor, report_type)

    status = payload.get("status") or "Pending"
    if status not in REPORT_STATUSES:
        raise ValidationError(f"status must be one of {list(REPORT_STATUSES)}")

    branch = actor.branch
    if payload.get("branch"):
        branch = Branch.query.filter_by(name=payload["branch"]).first()
        if branch is None:
            raise NotFoundError("Branch", payload["branch"])

    details = copy.deepcopy(payload.get("details") or {})
    if not isinstance(details, dict):
        raise ValidationError("details must be an object")
    _validate_details(report_type, details)
    evaluation = copy.deepcopy(payload.get("evaluation")) if isinstance(payload.get("evaluation"), dict) else None
    if report_type == "Project" and isinstance(details.get("updates"), list):
        _keep_stored_stage_files(details["updates"], [])

    _attach_uploads(report_type, details, evaluation, files_by_field, actor.id)

    report = Report(
        owner=actor,
        branch=branch,
        report_type=report_type,
        status=status,
        evaluation=evaluation,
        modifications=[],
        admin_notes=[],
    )

    completed = []
    handover_uploaded = False
    if report_type == "Project":
        updates = pw.normalize_updates(details.get("updates"))
        completed, _ = pw.validate_stage_changes([], updates)
        team_id = payload.get("assignedTeamId")
        if team_id:
            report.assigned_team = ensure_team_assignable(team_id)
        if STAGE_NOTIFY_TEAM in completed and report.assigned_team is None:
            raise ValidationError("A technical team must be assigned before notifying it",
                                  details={"stage": STAGE_NOTIFY_TEAM})
        if STAGE_DELIVERY_HANDOVER in completed:
            _ensure_handover_ready(report, updates, STATUS_DRAFT)
        details["updates"] = updates
        details.setdefault("exceptions", [])
        details.setdefault("workflowDocs", [])
        report.project_workflow_status = pw.next_status(STATUS_DRAFT, pw.completed_stage_ids(updates))
        handover_uploaded = bool(_handover_files(updates))

    report.details = details
    db.session.add(report)
    db.session.flush()
    write_audit(entity_type="report", entity_id=report.id, action="create", actor=actor,
                diff={"type": report_type, "completed_stages": completed})
    db.session.commit()
    logger.info("Report %s created (%s)", report.id, report_type,
                extra={"report_id": report.id, "user_id": actor.id, "event_type": "report.create"})

    if report.is_project:
        _dispatch_project_events(report, prev_status=STATUS_DRAFT, completed=completed,
                                 handover_uploaded=handover_uploaded, actor=actor)
    return report


def update_report(report_id, payload: dict, files_by_field: dict | None, actor: User) -> Report:
    """Apply an edit from the ``reportData`` payload.

    Project stage changes are re-validated against the stored array and the
    workflow status is re-derived. Admin notes are owned by the notes
    endpoints and are never overwritten here.
    """
    report = get_report(report_id)
    _ensure_owner_or_admin(report, actor)
    diff = {}

    if "status" in payload and payload["status"] != report.status:
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can review reports")
        if payload["status"] not in REPORT_STATUSES:
            raise ValidationError(f"status must be one of {list(REPORT_STATUSES)}")
        diff["status"] = {"old": report.status, "new": payload["status"]}
        report.status = payload["status"]

    evaluation = None
    if isinstance(payload.get("evaluation"), dict):
        if not actor.is_admin:
            raise PermissionDeniedError("Only admins can evaluate reports")
        evaluation = copy.deepcopy(payload["evaluation"])

    details = copy.deepcopy(report.details or {})
    if isinstance(payload.get("details"), dict):
        incoming = copy.deepcopy(payload["details"])
        _validate_details(report.report_type, incoming)
        if report.is_project:
            # server-owned lists survive client edits
            incoming["exceptions"] = details.get("exceptions", [])
            incoming["workflowDocs"] = details.get("workflowDocs", [])
            if isinstance(incoming.get("updates"), list):
                _keep_stored_stage_files(incoming["updates"], report.stage_updates())
        details = incoming

    _attach_uploads(report.report_type, details, evaluation, files_by_field, actor.id)

    if evaluation is not None:
        report.evaluation = evaluation
        flag_modified(report, "evaluation")
        diff["evaluation"] = {"rating": evaluation.get("rating")}

    prev_status = report.project_workflow_status or STATUS_DRAFT
    completed = []
    handover_uploaded = False
    if report.is_project:
        old_updates = report.stage_updates()
        updates = pw.normalize_updates(details.get("updates", old_updates))

        if "assignedTeamId" in payload:
            new_team_id = payload.get("assignedTeamId")
            if new_team_id and str(new_team_id) != str(report.assigned_team_id or ""):
                report.assigned_team = ensure_team_assignable(new_team_id, report_id=report.id)
                diff["assigned_team_id"] = {"new": report.assigned_team.id}
            elif not new_team_id and report.assigned_team_id:
                if prev_status != STATUS_DRAFT:
                    raise StateConflictError("Cannot unassign a team after it was notified",
                                             current_status=prev_status)
                report.assigned_team = None
                diff["assigned_team_id"] = {"new": None}

        completed, reverted = pw.validate_stage_changes(old_updates, updates)
        if STAGE_NOTIFY_TEAM in completed and report.assigned_team is None:
            raise ValidationError("A technical team must be assigned before notifying it",
                                  details={"stage": STAGE_NOTIFY_TEAM})
        if STAGE_DELIVERY_HANDOVER in completed:
            _ensure_handover_ready(report, updates, prev_status)

        handover_uploaded = not _handover_files(old_updates) and bool(_handover_files(updates))
        details["updates"] = updates
        report.project_workflow_status = pw.next_status(prev_status, pw.completed_stage_ids(updates))
        if completed or reverted:
            diff["stages"] = {"completed": completed, "reverted": reverted}
        if report.project_workflow_status != prev_status:
            diff["project_workflow_status"] = {"old": prev_status, "new": report.project_workflow_status}

    _save_details(report, details)
    report.modifications = list(report.modifications or []) + [
        {"modifiedBy": actor.full_name, "timestamp": utcnow_iso()}
    ]
    flag_modified(report, "modifications")

    write_audit(entity_type="report", entity_id=report.id, action="update", actor=actor, diff=diff)
    db.session.commit()
    logger.info("Report %s updated", report.id,
                extra={"report_id": report.id, "user_id": actor.id, "event_type": "report.update"})

    if report.is_project:
        _dispatch_project_events(report, prev_status=prev_status, completed=completed,
                                 handover_uploaded=handover_uploaded, actor=actor)
    return report


def delete_report(report_id, actor: User) -> None:
    report = get_report(report_id)
    _ensure_owner_or_admin(report, actor)
    write_audit(entity_type="report", entity_id=report.id, action="delete", actor=actor,
                diff={"type": report.report_type})
    db.session.delete(report)
    db.session.commit()
    logger.info("Report %s deleted", report_id, extra={"report_id": report_id, "event_type": "report.delete"})


# ═════════════════════════════════════════════════════════════════════════════
# Project lifecycle actions
# ═════════════════════════════════════════════════════════════════════════════


def _transition(report: Report, new_status: str) -> str:
    old = report.project_workflow_status or STATUS_DRAFT
    if not validate_project_status_transition(old, new_status):
        raise StateConflictError(f"Invalid transition: {old} → {new_status}", current_status=old)
    report.project_workflow_status = new_status
    return old


def accept_assignment(report_id, actor: User) -> Report:
    """Team leader accepts the project: PendingTeamAcceptance → InProgress."""
    report = get_project(report_id)
    _ensure_team_leader(report, actor)
    old = _transition(report, STATUS_IN_PROGRESS)
    write_audit(entity_type="report", entity_id=report.id, action="report.accept_assignment", actor=actor,
                diff={"project_workflow_status": {"old": old, "new": STATUS_IN_PROGRESS}})
    db.session.commit()
    logger.info("Project %s accepted by team %s", report.id, report.assigned_team_id,
                extra={"report_id": report.id, "user_id": actor.id, "event_type": "project.accepted"})

    team_name = report.assigned_team.name if report.assigned_team else ""
    _dispatch_project_events(
        report, prev_status=old, actor=actor,
        notify_owner_message=f"قبل فريق {team_name} تنفيذ المشروع #{report.id}",
    )
    return report


def confirm_stage(report_id, action: str, *, comment=None, files=None, actor: User) -> Report:
    """Team-side stage confirmation.

    Actions:
        concreteWorks            InProgress → ConcreteWorksDone
        technicalCompletion      FinishingWorks → TechnicallyCompleted (marks installationComplete)
        deliveryHandover_signed  stores the signed document as handover files[1]
        workflowDocs             appends to details.workflowDocs
    """
    if action not in CONFIRM_ACTIONS:
        raise ValidationError(f"Stage action '{action}' is not recognized",
                              details={"allowed": list(CONFIRM_ACTIONS)})
    report = get_project(report_id)
    _ensure_team_leader(report, actor)

    details = copy.deepcopy(report.details or {})
    updates = pw.normalize_updates(details.get("updates"))
    prev_status = report.project_workflow_status or STATUS_DRAFT
    completed = []
    owner_message = None

    if action == "concreteWorks":
        if not validate_project_status_transition(prev_status, STATUS_CONCRETE_WORKS_DONE):
            raise StateConflictError(f"Invalid transition: {prev_status} → {STATUS_CONCRETE_WORKS_DONE}",
                                     current_status=prev_status)
        uploaded = store_uploads(files or [], "projects", actor.id)
        updates = pw.set_stage_completed(updates, STAGE_CONCRETE_WORKS, True, comment=comment, files=uploaded)
        report.project_workflow_status = STATUS_CONCRETE_WORKS_DONE
        completed = [STAGE_CONCRETE_WORKS]
        owner_message = f"أكد الفريق الفني إنجاز الأعمال الخرسانية في المشروع #{report.id}"

    elif action == "technicalCompletion":
        if not validate_project_status_transition(prev_status, STATUS_TECHNICALLY_COMPLETED):
            raise StateConflictError(f"Invalid transition: {prev_status} → {STATUS_TECHNICALLY_COMPLETED}",
                                     current_status=prev_status)
        uploaded = store_uploads(files or [], "projects", actor.id)
        updates = pw.set_stage_completed(updates, STAGE_INSTALLATION_COMPLETE, True,
                                         comment=comment, files=uploaded)
        report.project_workflow_status = STATUS_TECHNICALLY_COMPLETED
        completed = [STAGE_INSTALLATION_COMPLETE]
        owner_message = f"أكد الفريق الفني اكتمال التركيب في المشروع #{report.id}"

    elif action == "deliveryHandover_signed":
        if prev_status != STATUS_TECHNICALLY_COMPLETED:
            raise StateConflictError("Signed handover is only accepted after technical completion",
                                     current_status=prev_status)
        stage = pw.find_stage(updates, STAGE_DELIVERY_HANDOVER)
        if not stage["files"]:
            raise ValidationError("The initial handover document has not been uploaded yet",
                                  details={"stage": STAGE_DELIVERY_HANDOVER})
        signed = [f for f in files or [] if f and f.filename]
        if not signed:
            raise ValidationError("A signed handover document is required")
        if len(signed) > 1:
            raise ValidationError("Only one signed handover document can be uploaded",
                                  details={"stage": STAGE_DELIVERY_HANDOVER, "received": len(signed)})
        uploaded = store_uploads(signed, "projects", actor.id)
        stage["files"] = stage["files"][:1] + uploaded
        if comment:
            stage["comment"] = comment
        owner_message = f"رفع الفريق الفني محضر التسليم الموقع للمشروع #{report.id}"

    else:  # workflowDocs
        uploaded = store_uploads(files or [], "projects", actor.id)
        if not uploaded:
            raise ValidationError("At least one document is required")
        details["workflowDocs"] = list(details.get("workflowDocs") or []) + uploaded

    details["updates"] = updates
    _save_details(report, details)
    write_audit(entity_type="report", entity_id=report.id, action="report.confirm_stage", actor=actor,
                diff={"action": action,
                      "project_workflow_status": {"old": prev_status, "new": report.project_workflow_status}})
    db.session.commit()
    logger.info("Project %s confirm-stage %s", report.id, action,
                extra={"report_id": report.id, "user_id": actor.id, "event_type": f"project.confirm.{action}"})

    _dispatch_project_events(report, prev_status=prev_status, completed=completed,
                             actor=actor, notify_owner_message=owner_message)
    return report


def finish_project(report_id, actor: User, comment=None) -> Report:
    """Terminal handover action: completes deliveryHandover and finalizes the project."""
    report = get_project(report_id)
    _ensure_owner_or_admin(report, actor)
    prev_status = report.project_workflow_status or STATUS_DRAFT

    details = copy.deepcopy(report.details or {})
    updates = pw.normalize_updates(details.get("updates"))
    _ensure_handover_ready(report, updates, prev_status)
    if prev_status == STATUS_FINALIZED:
        raise StateConflictError("Project is already finalized", current_status=prev_status)

    updates = pw.set_stage_completed(updates, STAGE_DELIVERY_HANDOVER, True, comment=comment)
    report.project_workflow_status = pw.next_status(prev_status, pw.completed_stage_ids(updates))
    details["updates"] = updates
    _save_details(report, details)

    write_audit(entity_type="report", entity_id=report.id, action="report.finish", actor=actor,
                diff={"project_workflow_status": {"old": prev_status, "new": report.project_workflow_status}})
    db.session.commit()
    logger.info("Project %s finalized", report.id,
                extra={"report_id": report.id, "user_id": actor.id, "event_type": "project.finalized"})

    _dispatch_project_events(report, prev_status=prev_status,
                             completed=[STAGE_DELIVERY_HANDOVER], actor=actor)
    return report


def add_exception(report_id, *, comment, files=None, actor: User) -> Report:
    """Append an exception record (comment + attachments) to a project."""
    report = get_report(report_id)
    if not report.is_project:
        raise ValidationError("Exceptions can only be added to Project reports")
    if not (comment or "").strip() and not files:
        raise ValidationError("comment or files are required")

    uploaded = store_uploads(files or [], "projects/exceptions", actor.id)
    exception = {
        "id": timestamp_id("exc"),
        "comment": (comment or "").strip(),
        "files": uploaded,
        "timestamp": utcnow_iso(),
        "uploadedBy": str(actor.id),
    }
    details = copy.deepcopy(report.details or {})
    details["exceptions"] = list(details.get("exceptions") or []) + [exception]
    _save_details(report, details)
    write_audit(entity_type="report", entity_id=report.id, action="report.add_exception", actor=actor,
                diff={"exception_id": exception["id"], "files": len(uploaded)})
    db.session.commit()
    return report
