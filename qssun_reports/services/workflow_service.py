"""
Workflow Service — import/export requests and the 7-stage pipeline.

Business logic for:
    - Request CRUD (admin or import/export permission)
    - Stage advance: required documents, departure logistics on stage 2,
      final stage is terminal
    - In-place history edits with a ``modified`` stamp and an audit row
"""

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
from qssun_reports.models.workflow import (
    DEPARTURE_STAGE_ID,
    DOCUMENT_TYPES,
    FINAL_STAGE_ID,
    REQUEST_PRIORITIES,
    REQUEST_TYPES,
    WorkflowRequest,
    get_stage,
)
from qssun_reports.services.code_generator import generate_request_code
from qssun_reports.services.file_storage import store_upload
from qssun_reports.services.notification import NotificationService
from qssun_reports.utils.helpers import parse_date, utcnow_iso
from qssun_reports.utils.uploads import decode_document_filename

logger = logging.getLogger(__name__)

# payload key -> column
_LOGISTICS_FIELDS = {
    "containerCount20ft": "container_count_20ft",
    "containerCount40ft": "container_count_40ft",
    "expectedDepartureDate": "expected_departure_date",
    "departurePort": "departure_port",
}


def ensure_can_manage(actor) -> None:
    if not actor.can_manage_workflows:
        raise PermissionDeniedError("Import/export permission required")


def get_request(request_id) -> WorkflowRequest:
    req = db.session.get(WorkflowRequest, str(request_id))
    if req is None:
        raise NotFoundError("WorkflowRequest", request_id)
    return req


def list_requests() -> list[WorkflowRequest]:
    return WorkflowRequest.query.order_by(WorkflowRequest.created_at.desc()).all()


# ── Payload helpers ──────────────────────────────────────────────────────────


def _choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f"{field} must be one of {list(allowed)}", details={field: value})
    return value


def _apply_logistics(req, data: dict) -> dict:
    changes = {}
    for key, column in _LOGISTICS_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if column.startswith("container_count"):
            if value in (None, ""):
                value = None
            else:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"{key} must be an integer") from None
                if value < 0:
                    raise ValidationError(f"{key} cannot be negative")
        elif column == "expected_departure_date":
            if value and parse_date(value) is None:
                raise ValidationError(f"{key} must be an ISO date", details={key: value})
            value = value or None
        else:
            value = (value or "").strip() or None
        if getattr(req, column) != value:
            changes[column] = {"old": getattr(req, column), "new": value}
            setattr(req, column, value)
    return changes


def parse_documents(files, actor) -> list[dict]:
    """Store uploaded workflow documents.

    The type and client-side id travel in the filename
    (``<docId>___<docType>___<name>``); files that do not follow the
    convention or name an unknown type are skipped.
    """
    documents = []
    for f in files or []:
        if not f or not f.filename:
            continue
        decoded = decode_document_filename(f.filename)
        if decoded is None:
            logger.warning("Skipping workflow document with malformed name %r", f.filename)
            continue
        doc_id, doc_type, original_name = decoded
        if doc_type not in DOCUMENT_TYPES:
            logger.warning("Skipping workflow document with unknown type %r", doc_type)
            continue
        stored = store_upload(f, "workflow", actor.id, original_name=original_name)
        documents.append({
            "id": doc_id,
            "url": stored["url"],
            "fileName": original_name,
            "type": doc_type,
            "uploadDate": utcnow_iso(),
        })
    return documents


def resolve_stored_documents(req, documents) -> list[dict]:
    """Map client-side references onto documents already in ``req``'s history.

    A reference must carry the ``id`` and ``url`` of a stored document;
    the stored record is returned, never the client's copy.
    """
    stored = {}
    for item in req.stage_history or []:
        for doc in item.get("documents") or []:
            stored.setdefault((doc.get("id"), doc.get("url")), doc)

    resolved = []
    for ref in documents or []:
        if not isinstance(ref, dict):
            continue
        doc = stored.get((ref.get("id"), ref.get("url")))
        if doc is None:
            raise ValidationError(
                "Document is not stored on this request",
                details={"id": ref.get("id"), "url": ref.get("url")},
            )
        resolved.append(dict(doc))
    return resolved


def missing_documents(stage_id: int, documents) -> list[str]:
    """Required document types of ``stage_id`` not covered by ``documents``."""
    stage = get_stage(stage_id) or {}
    present = {d.get("type") for d in documents or []}
    return [t for t in stage.get("requiredDocuments", []) if t not in present]


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_request(data: dict, actor) -> WorkflowRequest:
    ensure_can_manage(actor)
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required")

    req = WorkflowRequest(
        id=generate_request_code(),
        owner=actor,
        title=title,
        description=data.get("description") or "",
        type=_choice(data.get("type") or REQUEST_TYPES[0], REQUEST_TYPES, "type"),
        priority=_choice(data.get("priority") or REQUEST_PRIORITIES[2], REQUEST_PRIORITIES, "priority"),
        current_stage_id=1,
        stage_history=[],
    )
    _apply_logistics(req, data)
    db.session.add(req)
    db.session.flush()
    write_audit(entity_type="workflow_request", entity_id=req.id, action="create", actor=actor,
                diff={"title": title, "type": req.type})
    db.session.commit()
    logger.info("Workflow request %s created", req.id,
                extra={"workflow_request_id": req.id, "user_id": actor.id, "event_type": "workflow.create"})
    return req


def update_request(request_id, data: dict, actor, files=None) -> WorkflowRequest:
    """Edit request fields.

    A ``currentStageId`` one past the current stage is treated as an
    advance (documents come from ``files`` / ``documents``); any other
    stage change is rejected.
    """
    ensure_can_manage(actor)
    req = get_request(request_id)

    if "currentStageId" in data and data["currentStageId"] is not None:
        try:
            target = int(data["currentStageId"])
        except (TypeError, ValueError):
            raise ValidationError("currentStageId must be an integer") from None
        if target == req.current_stage_id + 1:
            fields = {k: v for k, v in data.items() if k != "currentStageId"}
            _apply_fields(req, fields)
            return advance_request(
                req.id, actor, files=files, documents=data.get("documents"),
                comment=data.get("comment") or "", logistics=fields,
            )
        if target != req.current_stage_id:
            raise ValidationError(
                "Requests can only move to the next stage",
                details={"currentStageId": req.current_stage_id, "requested": target},
            )

    changes = _apply_fields(req, data)
    changes.update(_apply_logistics(req, data))
    write_audit(entity_type="workflow_request", entity_id=req.id, action="update", actor=actor, diff=changes)
    db.session.commit()
    return req


def _apply_fields(req, data):
    changes = {}
    if "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("title cannot be empty")
        changes["title"] = {"old": req.title, "new": title}
        req.title = title
    if "description" in data:
        req.description = data.get("description") or ""
    if "type" in data:
        req.type = _choice(data["type"], REQUEST_TYPES, "type")
    if "priority" in data:
        req.priority = _choice(data["priority"], REQUEST_PRIORITIES, "priority")
    return changes


def delete_request(request_id, actor) -> None:
    ensure_can_manage(actor)
    req = get_request(request_id)
    write_audit(entity_type="workflow_request", entity_id=req.id, action="delete", actor=actor,
                diff={"title": req.title, "stage": req.current_stage_id})
    db.session.delete(req)
    db.session.commit()
    logger.info("Workflow request %s deleted", request_id,
                extra={"workflow_request_id": request_id, "event_type": "workflow.delete"})


# ── Pipeline ─────────────────────────────────────────────────────────────────


def advance_request(request_id, actor, *, files=None, documents=None, comment="", logistics=None):
    """Approve the current stage and move to the next one."""
    ensure_can_manage(actor)
    req = get_request(request_id)
    if req.current_stage_id >= FINAL_STAGE_ID:
        raise StateConflictError("Request is already at the final stage",
                                 current_status=str(req.current_stage_id))

    changes = _apply_logistics(req, logistics or {})

    docs = resolve_stored_documents(req, documents)
    docs.extend(parse_documents(files, actor))

    stage = get_stage(req.current_stage_id)
    missing = missing_documents(req.current_stage_id, docs)
    if missing:
        raise ValidationError(
            "Required documents are missing for this stage",
            details={"stageId": req.current_stage_id, "missing": missing},
        )
    if req.current_stage_id == DEPARTURE_STAGE_ID and not (
        req.expected_departure_date and req.departure_port
    ):
        raise ValidationError(
            "Expected departure date and port are required",
            details={"stageId": req.current_stage_id},
        )

    history = copy.deepcopy(req.stage_history or [])
    item = {
        "sequence": len(history) + 1,
        "stageId": stage["id"],
        "stageName": stage["name"],
        "processor": actor.full_name,
        "timestamp": utcnow_iso(),
        "comment": comment or "",
        "documents": docs,
    }
    history.append(item)
    req.stage_history = history
    flag_modified(req, "stage_history")
    old_stage = req.current_stage_id
    req.current_stage_id = old_stage + 1

    changes["current_stage_id"] = {"old": old_stage, "new": req.current_stage_id}
    write_audit(entity_type="workflow_request", entity_id=req.id, action="workflow.advance",
                actor=actor, diff=changes)
    db.session.commit()
    logger.info("Workflow request %s advanced to stage %s", req.id, req.current_stage_id,
                extra={"workflow_request_id": req.id, "user_id": actor.id, "event_type": "workflow.advance"})

    next_stage = get_stage(req.current_stage_id)
    NotificationService.dispatch(
        [req.user_id],
        message=f"انتقل الطلب {req.id} إلى مرحلة {next_stage['name']}",
        link=f"/workflow/{req.id}",
        exclude_user_id=actor.id,
        event_type="workflow.advance",
    )
    return req


def edit_history_item(request_id, sequence, data: dict, actor, files=None) -> WorkflowRequest:
    """Edit a past history item in place: comment and extra documents."""
    ensure_can_manage(actor)
    req = get_request(request_id)
    history = copy.deepcopy(req.stage_history or [])
    try:
        sequence = int(sequence)
    except (TypeError, ValueError):
        raise ValidationError("sequence must be an integer") from None
    item = next((h for h in history if h.get("sequence") == sequence), None)
    if item is None:
        raise NotFoundError("StageHistoryItem", sequence)

    diff = {"sequence": sequence}
    if "comment" in data:
        diff["comment"] = {"old": item.get("comment", ""), "new": data.get("comment") or ""}
        item["comment"] = data.get("comment") or ""
    added = parse_documents(files, actor)
    if added:
        item["documents"] = list(item.get("documents") or []) + added
        diff["documents_added"] = [d["fileName"] for d in added]
    if len(diff) == 1:
        raise ValidationError("Nothing to change")

    item["modified"] = {"processor": actor.full_name, "timestamp": utcnow_iso()}
    req.stage_history = history
    flag_modified(req, "stage_history")
    write_audit(entity_type="workflow_request", entity_id=req.id, action="workflow.edit_history",
                actor=actor, diff=diff)
    db.session.commit()
    return req
