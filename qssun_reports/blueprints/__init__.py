"""
QssunReports
Blueprint registry and request helpers shared by the API blueprints.
"""

from flask import g, request

from qssun_reports.services.user_service import resolve_actor
from qssun_reports.utils.helpers import load_json_field


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_actor(data=None):
    """Resolve the calling user.

    Prefers the JWT subject; falls back to ``employeeId`` from the JSON
    body, the form, or the query string.
    """
    employee_id = None
    if isinstance(data, dict):
        employee_id = data.get("employeeId")
    employee_id = employee_id or request.form.get("employeeId") or request.args.get("employeeId")
    return resolve_actor(user_id=getattr(g, "jwt_user_id", None), employee_id=employee_id)


def json_body():
    return request.get_json(silent=True) or {}


def form_json(field):
    """JSON object posted inside a multipart form field, or the JSON body."""
    if request.mimetype == "multipart/form-data" or field in request.form:
        return load_json_field(request.form.get(field))
    body = request.get_json(silent=True)
    if isinstance(body, dict) and field in body:
        return load_json_field(body[field])
    return body if isinstance(body, dict) else None


def files_by_field():
    """``request.files`` as ``{field: [FileStorage, ...]}``."""
    return {name: request.files.getlist(name) for name in request.files}
