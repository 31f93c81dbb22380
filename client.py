"""
HTTP client for the civic reporting API.

Build one `CivicClient` per application instance and hand it an `AuthState`;
nothing here is module-global.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class ApiClientError(Exception):
    def __init__(self, message: str, status_code: int, payload: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class AuthState:
    """Holds the bearer token for one signed-in session."""

    def __init__(self, token: Optional[str] = None):
        self.token = token

    def set_token(self, token: Optional[str]):
        self.token = token

    def clear(self):
        self.token = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}


class CivicClient:
    def __init__(self, base_url: str, auth: AuthState, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.auth = auth
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        response = self._http.request(method, path, headers=self.auth.headers(), **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_error or body.get("success") is False:
            message = body.get("message") or f"Request failed with status {response.status_code}"
            logger.warning("%s %s failed: %s", method, path, message)
            raise ApiClientError(message, response.status_code, body)
        return body

    # ---------- Reports ----------

    def create_report(self, report: dict) -> dict:
        return self._request("POST", "/reports", json=report)["data"]["report"]

    def list_reports(self, **filters) -> list:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", "/reports", params=params)["data"]["reports"]

    def get_report(self, report_id: str) -> dict:
        return self._request("GET", f"/reports/{report_id}")["data"]["report"]

    def update_report(self, report_id: str, **changes) -> dict:
        return self._request("PATCH", f"/reports/{report_id}", json=changes)["data"]["report"]

    def update_status(self, report_id: str, status: str, comment: Optional[str] = None) -> dict:
        body = {"status": status, "comment": comment}
        return self._request("PATCH", f"/reports/{report_id}/status", json=body)["data"]["report"]

    def assign_report(self, report_id: str, assignee_id: str, comment: Optional[str] = None) -> dict:
        body = {"assignee_id": assignee_id, "comment": comment}
        return self._request("PATCH", f"/reports/{report_id}/assign", json=body)["data"]["report"]

    def delete_report(self, report_id: str, reason: Optional[str] = None) -> str:
        body = {"reason": reason} if reason else None
        return self._request("DELETE", f"/reports/{report_id}", json=body)["data"]["reportId"]

    def add_comment(self, report_id: str, text: str) -> dict:
        return self._request("POST", f"/reports/{report_id}/comments", json={"text": text})["data"]["comment"]

    def get_comments(self, report_id: str) -> list:
        return self._request("GET", f"/reports/{report_id}/comments")["data"]["comments"]

    # ---------- Notifications ----------

    def notifications(self, unread_only: bool = False) -> dict:
        params = {"unread_only": "true"} if unread_only else None
        return self._request("GET", "/notifications", params=params)["data"]

    def send_message(self, recipient_id: str, subject: str, message: str,
                     notification_type: str = "message") -> dict:
        body = {"recipient_id": recipient_id, "subject": subject, "message": message,
                "notification_type": notification_type}
        return self._request("POST", "/notifications", json=body)["data"]["notification"]

    def mark_read(self, notification_id: str) -> dict:
        return self._request("PATCH", f"/notifications/{notification_id}/read")["data"]["notification"]

    def mark_all_read(self) -> int:
        return self._request("PATCH", "/notifications/read-all")["count"]

    def delete_notification(self, notification_id: str) -> str:
        body = self._request("DELETE", f"/notifications/{notification_id}")
        return body["data"]["deletedNotificationId"]
