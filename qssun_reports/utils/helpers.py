"""Shared utility functions for blueprints and services.

get_or_404:     tuple-return lookup used by simple blueprints
parse_date:     lenient ISO date parsing (None on bad input)
load_json_field: decode the JSON document sent inside a multipart form field
utcnow_iso:     timestamp format stored inside JSON payloads
"""
import json
import logging
import uuid
from datetime import date, datetime, timezone

from flask import jsonify

from qssun_reports.models import db

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (jsonify_response, 404))

        obj, err = get_or_404(Branch, bid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if not obj:
        return None, (jsonify({"error": f"{label} not found"}), 404)
    return obj, None


def parse_date(value):
    """Parse an ISO date string into a date. Returns None on bad input."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.debug("Unparseable date value: %r", value)
        return None


def load_json_field(raw):
    """Decode a JSON object posted as a form field.

    Returns the dict, or None when the field is missing or not a JSON object.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def timestamp_id(prefix: str) -> str:
    """Millisecond id used for notes, replies and exceptions (``note-1712345678901-a3f0``)."""
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{prefix}-{millis}-{uuid.uuid4().hex[:4]}"
