"""
JWT Auth Middleware — parses the Bearer token and sets g.jwt_*.

    g.jwt_user_id  →  users.id of the caller (int) or None
    g.jwt_role     →  stored role value ("admin", "team_lead", ...) or None

When API_AUTH_ENABLED is "true", API calls without a valid token are
rejected with 401. Otherwise a missing token is tolerated and endpoints
fall back to the ``employeeId`` in the request body, which is how the
mobile client identifies itself.
"""

import logging

import jwt as pyjwt
from flask import g, request

from qssun_reports.services.jwt_service import decode_access_token
from qssun_reports.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/login",
    "/api/v1/health",
    "/api/v1/uploads/",
)


def _auth_enforced(app) -> bool:
    return str(app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        enforced = _auth_enforced(app)
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            if enforced:
                return api_error(E.UNAUTHORIZED, "Authentication required")
            return None

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            if enforced:
                return api_error(E.UNAUTHORIZED, "Token expired")
            return None
        except pyjwt.InvalidTokenError:
            logger.info("Invalid access token on %s", path)
            if enforced:
                return api_error(E.UNAUTHORIZED, "Invalid token")
            return None

        try:
            g.jwt_user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            g.jwt_user_id = None
        g.jwt_role = payload.get("role")
        return None
