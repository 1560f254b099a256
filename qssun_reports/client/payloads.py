"""
Payload builders for multipart report and workflow calls.

A pending upload is a dict in one of the attachment lists that carries a
``"file"`` key: a requests file tuple ``(filename, fileobj[, content_type])``.
Already-stored attachments (``{"url", "fileName", ...}``) stay in the JSON.
"""

import copy
import json

from qssun_reports.utils.uploads import (
    EVALUATION_FIELD,
    MAINTENANCE_AFTER_FIELD,
    MAINTENANCE_BEFORE_FIELD,
    encode_document_filename,
    project_update_field,
    sales_customer_field,
)


def _split(items, field, out):
    """Move pending uploads of ``items`` into ``out``; return what stays."""
    kept = []
    for item in items or []:
        if isinstance(item, dict) and item.get("file") is not None:
            out.append((field, item["file"]))
        else:
            kept.append(item)
    return kept


def strip_report_files(report_data: dict):
    """Return ``(clean_report_data, multipart_files)`` for a report save."""
    data = copy.deepcopy(report_data)
    files = []
    details = data.get("details") or {}
    report_type = data.get("type")

    if report_type == "Maintenance":
        for key, field in (("beforeImages", MAINTENANCE_BEFORE_FIELD), ("afterImages", MAINTENANCE_AFTER_FIELD)):
            if key in details:
                details[key] = _split(details[key], field, files)
    elif report_type == "Sales":
        for i, customer in enumerate(details.get("customers") or []):
            if "files" in customer:
                customer["files"] = _split(customer["files"], sales_customer_field(i), files)
    elif report_type == "Project":
        for i, update in enumerate(details.get("updates") or []):
            if "files" in update:
                update["files"] = _split(update["files"], project_update_field(i), files)

    evaluation = data.get("evaluation")
    if isinstance(evaluation, dict) and "files" in evaluation:
        evaluation["files"] = _split(evaluation["files"], EVALUATION_FIELD, files)
    return data, files


def strip_workflow_documents(documents):
    """Split workflow documents into stored ones and encoded uploads.

    Upload filenames carry ``<docId>___<docType>___<name>`` so the server
    can rebuild the document record.
    """
    kept, files = [], []
    for doc in documents or []:
        upload = doc.get("file")
        if upload is None:
            kept.append(doc)
            continue
        name, fileobj = upload[0], upload[1]
        encoded = encode_document_filename(doc["id"], doc["type"], doc.get("fileName") or name)
        files.append(("documents", (encoded, fileobj, *upload[2:])))
    return kept, files


def file_tuples(field, uploads):
    """``[(field, file_tuple), ...]`` for a plain ``files`` upload field."""
    return [(field, u) for u in uploads or []]


def multipart(field: str, payload: dict, files):
    """requests kwargs for a JSON-in-form-field multipart call."""
    return {"data": {field: json.dumps(payload, ensure_ascii=False)}, "files": files or None}
