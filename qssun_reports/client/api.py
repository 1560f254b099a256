"""
HTTP wrapper around the QssunReports API.

All outbound calls of the client store go through ``ApiClient``. No retry:
a failed call raises ``ApiError`` carrying the HTTP status and the server
message.

Testability: pass a mock ``session`` to ``ApiClient()`` instead of letting
it create a real requests.Session.
"""

from __future__ import annotations

import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:5000/api/v1"
_DEFAULT_TIMEOUT = 30


class ApiError(Exception):
    """Non-2xx response or network failure.

    Attributes:
        status_code: HTTP status, or None for network-level failures.
        message:     ``error`` / ``message`` from the body, else the reason.
        payload:     Parsed error body (dict) when there was one.
    """

    def __init__(self, status_code: int | None, message: str, payload: dict | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}
        super().__init__(f"[{status_code}] {message}" if status_code else message)


class ApiClient:
    """Thin JSON/multipart client.

    Usage:
        api = ApiClient()                       # QSSUN_API_BASE_URL or localhost
        api.token = body["access_token"]
        reports = api.get("/reports")
    """

    def __init__(
        self,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = (base_url or os.getenv("QSSUN_API_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = timeout
        self.token: str | None = None
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def request(self, method: str, path: str, *, json=None, data=None, files=None, params=None):
        """Send one request and return the decoded JSON body (None when empty)."""
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method, url, json=json, data=data, files=files, params=params,
                headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(None, str(exc)) from exc

        body = None
        if resp.content:
            try:
                body = resp.json()
            except ValueError:
                body = None

        if not resp.ok:
            message = resp.reason or "Request failed"
            if isinstance(body, dict):
                message = body.get("error") or body.get("message") or message
            logger.info("%s %s -> %s: %s", method, path, resp.status_code, message)
            raise ApiError(resp.status_code, message, body if isinstance(body, dict) else None)
        return body

    def get(self, path, **kwargs):
        return self.request("GET", path, **kwargs)

    def post(self, path, **kwargs):
        return self.request("POST", path, **kwargs)

    def put(self, path, **kwargs):
        return self.request("PUT", path, **kwargs)

    def delete(self, path, **kwargs):
        return self.request("DELETE", path, **kwargs)
