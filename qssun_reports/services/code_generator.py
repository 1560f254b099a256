"""
Sequential human-readable codes for string-keyed records.

    REQ-0001   WorkflowRequest
    PKG-000001 PackageRequest
"""

from sqlalchemy import func

from qssun_reports.models import db
from qssun_reports.models.package import PackageRequest
from qssun_reports.models.workflow import WorkflowRequest


def _generate_sequential_code(model_class, prefix: str, width: int) -> str:
    """Next ``{PREFIX}-{SEQ}`` code; skips forward past codes already taken."""
    count = db.session.query(func.count(model_class.id)).scalar() or 0
    seq = count + 1
    code = f"{prefix}-{seq:0{width}d}"
    # deletions leave gaps, so the count can point at an existing code
    while db.session.get(model_class, code) is not None:
        seq += 1
        code = f"{prefix}-{seq:0{width}d}"
    return code


def generate_request_code() -> str:
    """REQ-0001, REQ-0002, ..."""
    return _generate_sequential_code(WorkflowRequest, "REQ", 4)


def generate_package_code() -> str:
    """PKG-000001, PKG-000002, ..."""
    return _generate_sequential_code(PackageRequest, "PKG", 6)
