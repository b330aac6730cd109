"""HTTP client for the noticeboard API.

The authenticated state (token and current user) lives on an explicit
:class:`ClientSession` owned by the client rather than in module globals, so
several sessions can coexist and UI code receives the session it acts on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx


class ClientError(RuntimeError):
    """Raised when the service rejects a request."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass
class ClientSession:
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None

    @property
    def authenticated(self) -> bool:
        return self.token is not None

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"

    def clear(self) -> None:
        self.token = None
        self.user = None


class NoticeboardClient:
    """Thin wrapper over the JSON API that keeps a :class:`ClientSession`."""

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        *,
        http: Optional[httpx.Client] = None,
        session: Optional[ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout)
        self._owns_http = http is None
        self.session = session or ClientSession()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "NoticeboardClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------
    def signup(self, email: str, password: str) -> Dict[str, Any]:
        """Create an account. The session stays logged out, as after a browser signup."""

        return self._request("POST", "/signup", json={"email": email, "password": password}, auth=False)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        payload = self._request("POST", "/login", json={"email": email, "password": password}, auth=False)
        self.session.token = payload["token"]
        self.session.user = payload["user"]
        return payload

    def logout(self) -> None:
        self.session.clear()

    def verify(self) -> Dict[str, Any]:
        """Check the stored token; an expired or rejected token clears the session."""

        try:
            payload = self._request("GET", "/verify")
        except ClientError as exc:
            if exc.status_code in (400, 401):
                self.session.clear()
            raise
        self.session.user = payload["user"]
        return payload

    def get_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/profile")

    def update_profile(self, **fields: Any) -> Dict[str, Any]:
        return self._request("PUT", "/profile", json=fields)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def send_notification(
        self,
        message: str,
        recipients: Sequence[str],
        *,
        is_critical: bool = False,
    ) -> Dict[str, Any]:
        body = {"message": message, "recipients": list(recipients), "isCritical": is_critical}
        return self._request("POST", "/notifications", json=body)

    def broadcast(
        self,
        message: str,
        recipients: Sequence[str],
        *,
        is_critical: bool = True,
    ) -> Dict[str, Any]:
        body = {"message": message, "recipients": list(recipients), "isCritical": is_critical}
        return self._request("POST", "/admin/notifications", json=body)

    def list_notifications(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/notifications")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, *, json: Any = None, auth: bool = True) -> Any:
        headers: Dict[str, str] = {}
        if auth:
            if self.session.token is None:
                raise ClientError(401, "Not logged in")
            headers["Authorization"] = f"Bearer {self.session.token}"

        response = self._http.request(method, self._base_url + path, json=json, headers=headers)
        if response.is_success:
            return response.json()

        try:
            payload = response.json()
        except ValueError:
            payload = None
        detail = payload.get("detail", response.text) if isinstance(payload, dict) else response.text
        raise ClientError(response.status_code, str(detail))


__all__ = ["ClientError", "ClientSession", "NoticeboardClient"]
