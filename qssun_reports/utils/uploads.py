"""Multipart naming conventions shared by the API and the client store.

Report uploads are routed by form field name:

    maintenance_beforeImages / maintenance_afterImages
    sales_customer_<i>_files
    project_update_<i>_files
    evaluation_files

Workflow documents carry their metadata in the uploaded filename:
``<docId>___<docType>___<originalName>``.
"""

import re

DOC_NAME_SEPARATOR = "___"

MAINTENANCE_BEFORE_FIELD = "maintenance_beforeImages"
MAINTENANCE_AFTER_FIELD = "maintenance_afterImages"
EVALUATION_FIELD = "evaluation_files"

_INDEXED_FIELD = re.compile(r"^(sales_customer|project_update)_(\d+)_files$")


def sales_customer_field(index: int) -> str:
    return f"sales_customer_{index}_files"


def project_update_field(index: int) -> str:
    return f"project_update_{index}_files"


def parse_indexed_field(field_name: str):
    """Split ``project_update_3_files`` into ``("project_update", 3)``.

    Returns None for names that do not follow the indexed convention.
    """
    match = _INDEXED_FIELD.match(field_name or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


def encode_document_filename(doc_id: str, doc_type: str, file_name: str) -> str:
    return DOC_NAME_SEPARATOR.join((str(doc_id), doc_type, file_name))


def decode_document_filename(encoded: str):
    """Return ``(doc_id, doc_type, original_name)`` or None if malformed."""
    parts = (encoded or "").split(DOC_NAME_SEPARATOR)
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]
