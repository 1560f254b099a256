"""
Uploaded file serving.

  GET /api/v1/uploads/<path>  — files stored by ``services.file_storage``
"""

from flask import Blueprint, current_app, send_from_directory

files_bp = Blueprint("files", __name__, url_prefix="/api/v1/uploads")


@files_bp.route("/<path:filename>", methods=["GET"])
def serve_upload(filename):
    # send_from_directory rejects paths escaping the folder with a 404
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
