"""
Upload storage — saves multipart files under UPLOAD_FOLDER.

Layout: ``<UPLOAD_FOLDER>/<folder>/<uploader id>/<hex>_<secure name>``.
Each stored file is described by the dict the frontend expects:

    {"id": "...", "url": "/api/v1/uploads/...", "fileName": "...", "uploadedBy": "7"}
"""

import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


def _upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def store_upload(file_storage, folder: str, uploaded_by, original_name: str | None = None) -> dict:
    """Persist one werkzeug FileStorage and return its descriptor.

    ``original_name`` overrides the client filename (workflow documents carry
    metadata in the raw filename).
    """
    display_name = original_name or file_storage.filename or "file"
    # secure_filename drops non-ASCII characters; Arabic names can end up empty
    safe = secure_filename(display_name) or "file"
    file_id = uuid.uuid4().hex
    stored_name = f"{file_id[:12]}_{safe}"

    relative_dir = os.path.join(folder, str(uploaded_by))
    target_dir = os.path.join(_upload_root(), relative_dir)
    os.makedirs(target_dir, exist_ok=True)
    file_storage.save(os.path.join(target_dir, stored_name))

    relative_path = "/".join((*folder.split("/"), str(uploaded_by), stored_name))
    url = f"{current_app.config['UPLOAD_URL_PREFIX']}/{relative_path}"
    logger.debug("Stored upload %s -> %s", display_name, relative_path)
    return {
        "id": file_id,
        "url": url,
        "fileName": display_name,
        "uploadedBy": str(uploaded_by),
    }


def store_uploads(files, folder: str, uploaded_by) -> list[dict]:
    return [store_upload(f, folder, uploaded_by) for f in files if f and f.filename]
