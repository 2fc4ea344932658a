"""
REST client for the remote interview-tracker service.

The engine never mutates a Store from a command response; the service echoes
every accepted command back over the push channel.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple, Type

import requests

from errors import (
    CommandError,
    DuplicateGrant,
    FetchError,
    InvalidTarget,
    NotFound,
    NotGrantor,
    TrackerError,
)
from state import AccessGrant, Interview, Role, UserSummary

logger = logging.getLogger(__name__)

ErrorMap = Dict[int, Type[TrackerError]]

# Status codes every command shares
COMMAND_ERRORS: ErrorMap = {404: NotFound}


class TrackerClient:
    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        fetch: bool = False,
        errors: Optional[ErrorMap] = None,
    ) -> Any:
        """Send one request and map failures onto the error taxonomy.

        ``fetch`` requests raise FetchError on transport trouble, commands
        raise CommandError; ``errors`` maps specific statuses to richer types.
        """
        url = f"{self.base_url}{path}"
        fallback = FetchError if fetch else CommandError
        try:
            resp = self.session.request(method, url, json=json, timeout=self.timeout)
        except requests.RequestException as exc:
            raise fallback(f"Network error on {method} {path}: {exc}") from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            error_cls = (errors or {}).get(resp.status_code, fallback)
            logger.warning("%s %s -> %s: %s", method, path, resp.status_code, message)
            raise error_cls(message, status=resp.status_code, path=path)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise fallback(f"Invalid JSON from {method} {path}") from exc

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def list_interviews(self, role: Role = Role.GRADUATE) -> List[Interview]:
        path = "/interview-tracker/employer" if role == Role.EMPLOYER else "/interview-tracker"
        return _parse_interviews(self._request("GET", path, fetch=True), path)

    def delegated_calendar(self, user_id: int) -> List[Interview]:
        path = f"/interview-tracker/access/{user_id}/calendar"
        data = self._request("GET", path, fetch=True, errors={403: InvalidTarget, 404: NotFound})
        return _parse_interviews(data, path)

    # =========================================================================
    # INTERVIEW COMMANDS
    # =========================================================================

    def create_interview(self, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request("POST", "/interview-tracker", json=fields)

    def update_interview(self, interview_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request(
            "PUT", f"/interview-tracker/{interview_id}", json=fields, errors=COMMAND_ERRORS
        )

    def update_status(self, interview_id: int, status: str) -> Optional[Dict[str, Any]]:
        return self._request(
            "PATCH", f"/interview-tracker/{interview_id}/status",
            json={"status": status}, errors=COMMAND_ERRORS,
        )

    def update_result(self, interview_id: int, result: Optional[str]) -> Optional[Dict[str, Any]]:
        return self._request(
            "PATCH", f"/interview-tracker/{interview_id}/result",
            json={"result": result}, errors=COMMAND_ERRORS,
        )

    def delete_interview(self, interview_id: int) -> None:
        self._request("DELETE", f"/interview-tracker/{interview_id}", errors=COMMAND_ERRORS)

    def respond_invitation(self, interview_id: int, action: str) -> Optional[Dict[str, Any]]:
        return self._request(
            "PATCH", f"/interview-tracker/{interview_id}/invitation",
            json={"action": action}, errors=COMMAND_ERRORS,
        )

    # =========================================================================
    # ACCESS
    # =========================================================================

    def list_access(self) -> Tuple[List[AccessGrant], List[AccessGrant]]:
        """Return (granted_by_me, granted_to_me).

        Older servers answer with a bare list, meaning granted_by_me only.
        """
        data = self._request("GET", "/interview-tracker/access", fetch=True)
        if isinstance(data, dict):
            by_me = data.get("grantedByMe") or []
            to_me = data.get("grantedToMe") or []
        elif isinstance(data, list):
            by_me, to_me = data, []
        else:
            raise FetchError("Unexpected access listing payload")
        try:
            return (
                [AccessGrant.model_validate(item) for item in by_me],
                [AccessGrant.model_validate(item) for item in to_me],
            )
        except ValueError as exc:
            raise FetchError(f"Malformed access listing: {exc}") from exc

    def grant_access(self, target_id: int) -> AccessGrant:
        data = self._request(
            "POST", "/interview-tracker/access",
            json={"targetId": target_id},
            errors={400: InvalidTarget, 404: InvalidTarget, 409: DuplicateGrant},
        )
        try:
            return AccessGrant.model_validate(data)
        except ValueError as exc:
            raise CommandError(f"Malformed grant response: {exc}") from exc

    def revoke_access(self, access_id: int) -> None:
        self._request(
            "DELETE", f"/interview-tracker/access/{access_id}",
            errors={403: NotGrantor, 404: NotFound},
        )

    def list_users(self, role: Role) -> List[UserSummary]:
        """Counterparties a grant can target: employers for graduates and vice versa."""
        path = "/user/graduates" if role == Role.EMPLOYER else "/user/employers"
        data = self._request("GET", path, fetch=True) or []
        return [UserSummary.model_validate(item) for item in data]


def _parse_interviews(data: Any, path: str) -> List[Interview]:
    if not isinstance(data, list):
        raise FetchError(f"Expected a list from {path}")
    try:
        return [Interview.model_validate(item) for item in data]
    except ValueError as exc:
        raise FetchError(f"Malformed interview in {path}: {exc}") from exc


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or f"HTTP {resp.status_code}"
    return f"HTTP {resp.status_code}"
