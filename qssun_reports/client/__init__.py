"""
QssunReports
Python client for the reports API: an HTTP wrapper and the cached app store.
"""

from qssun_reports.client.api import ApiClient, ApiError
from qssun_reports.client.store import AppStore, StoreActionError

__all__ = ["ApiClient", "ApiError", "AppStore", "StoreActionError"]
