"""
Auth Blueprint — employee login.

  POST /api/v1/login   — employeeId + password → user profile + JWT access token
"""

from flask import Blueprint, jsonify

from qssun_reports.blueprints import json_body
from qssun_reports.services.jwt_service import token_response
from qssun_reports.services.user_service import authenticate
from qssun_reports.utils.errors import E, api_error

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1")


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "employeeId": "...", "password": "..." }

    404 for an unknown employee, 401 for a wrong password.
    """
    data = json_body()
    employee_id = str(data.get("employeeId") or "").strip()
    password = data.get("password") or ""
    if not employee_id or not password:
        return api_error(E.VALIDATION_REQUIRED, "employeeId and password are required")

    user = authenticate(employee_id, password)
    return jsonify({"user": user.to_dict(), **token_response(user)}), 200
