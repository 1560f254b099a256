"""
Admin note threads on reports.

Notes live in ``Report.admin_notes`` (JSON list). Every new note or reply
notifies the report owner, all admins and, for projects, the assigned team
leader; replies also reach everyone who already wrote in the thread. The
author never notifies themself.
"""

import copy
import logging

from sqlalchemy.orm.attributes import flag_modified

from qssun_reports.core.exceptions import NotFoundError, ValidationError
from qssun_reports.models import db
from qssun_reports.services.notification import NotificationService
from qssun_reports.services.report_service import get_report, report_link
from qssun_reports.utils.helpers import timestamp_id, utcnow_iso

logger = logging.getLogger(__name__)


def _recipients(report, extra_ids=()):
    ids = [report.user_id, *NotificationService.admin_ids()]
    if report.is_project and report.assigned_team is not None:
        ids.append(report.assigned_team.leader_id)
    ids.extend(extra_ids)
    return ids


def _entry(prefix, author, content):
    content = (content or "").strip()
    if not content:
        raise ValidationError("content is required")
    return {
        "id": timestamp_id(prefix),
        "authorId": str(author.id),
        "authorName": author.full_name,
        "content": content,
        "timestamp": utcnow_iso(),
        "readBy": [str(author.id)],
    }


def _save_notes(report, notes):
    report.admin_notes = notes
    flag_modified(report, "admin_notes")
    db.session.commit()


def add_note(report_id, content, author):
    report = get_report(report_id)
    note = _entry("note", author, content)
    note["replies"] = []
    notes = copy.deepcopy(report.admin_notes or [])
    notes.append(note)
    _save_notes(report, notes)
    logger.info("Note added on report %s", report.id,
                extra={"report_id": report.id, "user_id": author.id, "event_type": "report.note"})

    NotificationService.dispatch(
        _recipients(report),
        message=f"{author.full_name} أضاف ملاحظة على تقرير #{report.id}",
        link=report_link(report.id),
        exclude_user_id=author.id,
        event_type="report.note",
    )
    return report


def add_reply(report_id, note_id, content, author):
    report = get_report(report_id)
    notes = copy.deepcopy(report.admin_notes or [])
    note = next((n for n in notes if n.get("id") == note_id), None)
    if note is None:
        raise NotFoundError("Note", note_id)

    reply = _entry("reply", author, content)
    note.setdefault("replies", []).append(reply)
    # posting a reply means the author has seen the thread
    if str(author.id) not in note.setdefault("readBy", []):
        note["readBy"].append(str(author.id))
    _save_notes(report, notes)

    participants = [note.get("authorId")] + [r.get("authorId") for r in note["replies"]]
    participant_ids = [int(p) for p in participants if p and str(p).isdigit()]
    NotificationService.dispatch(
        _recipients(report, participant_ids),
        message=f"{author.full_name} رد في محادثة بتقرير #{report.id}",
        link=report_link(report.id),
        exclude_user_id=author.id,
        event_type="report.note_reply",
    )
    return report


def mark_notes_read(report_id, user):
    """Add ``user`` to ``readBy`` of every note and reply. Returns the report."""
    report = get_report(report_id)
    notes = copy.deepcopy(report.admin_notes or [])
    uid = str(user.id)
    changed = False
    for note in notes:
        for item in [note, *note.get("replies", [])]:
            read_by = item.setdefault("readBy", [])
            if uid not in read_by:
                read_by.append(uid)
                changed = True
    if changed:
        _save_notes(report, notes)
    return report
