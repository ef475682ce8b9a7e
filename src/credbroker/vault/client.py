"""
credbroker.vault.client

HTTP client boundary used by the operator and the sidecar to call Vault.

Responsibilities:
- Attach the Vault token to every request.
- Expose the handful of logical operations we need (read/write/delete/list/login).
- Treat "absent" as a normal outcome for read/list/delete and wrap everything
  else in `StoreError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from credbroker.errors import StoreError
from credbroker.settings import VaultSettings


@dataclass(frozen=True, slots=True)
class VaultSession:
    """
    Result of a Kubernetes-auth login.
    """

    client_token: str
    lease_duration: timedelta
    renewable: bool
    issued_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + self.lease_duration

    def expires_within(self, margin: timedelta, *, now: datetime | None = None) -> bool:
        now = now or datetime.now(tz=UTC)
        return self.expires_at - now <= margin


@dataclass(frozen=True, slots=True)
class VaultResponse:
    """
    The parts of a Vault response body we use.
    """

    data: dict[str, Any]
    lease_duration: int = 0
    renewable: bool = False
    lease_id: str = ""

    @classmethod
    def from_json(cls, body: dict[str, Any]) -> VaultResponse:
        return cls(
            data=dict(body.get("data") or {}),
            lease_duration=int(body.get("lease_duration") or 0),
            renewable=bool(body.get("renewable", False)),
            lease_id=str(body.get("lease_id") or ""),
        )


def create_http_client(settings: VaultSettings) -> httpx.AsyncClient:
    # One pooled client per process; callers own its lifetime (aclose on shutdown).
    verify: Any = settings.cacert if settings.cacert else True
    return httpx.AsyncClient(
        base_url=settings.addr.rstrip("/"),
        timeout=settings.timeout,
        verify=verify,
    )


class VaultClient:
    def __init__(self, *, http: httpx.AsyncClient, token: str = "") -> None:
        self._http = http
        self._token = token

    @property
    def token(self) -> str:
        return self._token

    def set_token(self, token: str) -> None:
        self._token = token

    def _headers(self) -> dict[str, str]:
        return {"X-Vault-Token": self._token} if self._token else {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        path = path.strip("/")
        try:
            return await self._http.request(
                method,
                f"/v1/{path}",
                json=json,
                headers=self._headers() if authenticated else {},
            )
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path}: {e}", path=path) from e

    @staticmethod
    def _raise_for_status(method: str, path: str, r: httpx.Response) -> None:
        if r.is_success:
            return
        errors: list[str] = []
        try:
            payload = r.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("errors"), list):
            errors = [str(e) for e in payload["errors"]]
        detail = "; ".join(errors) or r.reason_phrase
        raise StoreError(
            f"{method} {path.strip('/')}: {r.status_code} {detail}",
            path=path.strip("/"),
            status_code=r.status_code,
            errors=errors,
        )

    @staticmethod
    def _body(method: str, path: str, r: httpx.Response) -> dict[str, Any] | None:
        if r.status_code == 204 or not r.content:
            return None
        path = path.strip("/")
        try:
            payload = r.json()
        except ValueError as e:
            raise StoreError(
                f"{method} {path}: response body is not JSON", path=path, status_code=r.status_code
            ) from e
        if not isinstance(payload, dict):
            raise StoreError(
                f"{method} {path}: response body is not a JSON object", path=path, status_code=r.status_code
            )
        return payload

    async def read(self, path: str) -> VaultResponse | None:
        r = await self._request("GET", path)
        if r.status_code == 404:
            return None
        self._raise_for_status("GET", path, r)
        body = self._body("GET", path, r)
        return VaultResponse.from_json(body) if body is not None else None

    async def write(self, path: str, data: dict[str, Any] | None = None) -> VaultResponse | None:
        r = await self._request("POST", path, json=data or {})
        self._raise_for_status("POST", path, r)
        body = self._body("POST", path, r)
        return VaultResponse.from_json(body) if body is not None else None

    async def delete(self, path: str) -> None:
        r = await self._request("DELETE", path)
        if r.status_code == 404:
            return
        self._raise_for_status("DELETE", path, r)

    async def list(self, path: str) -> list[str]:
        r = await self._request("LIST", path)
        if r.status_code == 404:
            # Vault answers 404 for an empty or absent directory.
            return []
        self._raise_for_status("LIST", path, r)
        body = self._body("LIST", path, r) or {}
        keys = (body.get("data") or {}).get("keys") or []
        return [k for k in keys if isinstance(k, str)]

    async def login_kubernetes(self, *, mount: str, role: str, jwt: str) -> VaultSession:
        """
        Log in via the Kubernetes auth method. Does not change this client's token;
        callers decide whether to adopt the session (see `set_token`).
        """

        path = f"auth/{mount.strip('/')}/login"
        r = await self._request("POST", path, json={"role": role, "jwt": jwt}, authenticated=False)
        self._raise_for_status("POST", path, r)
        auth = (self._body("POST", path, r) or {}).get("auth") or {}
        token = auth.get("client_token")
        if not token:
            raise StoreError(f"POST {path}: response carried no client token", path=path)
        return VaultSession(
            client_token=str(token),
            lease_duration=timedelta(seconds=int(auth.get("lease_duration") or 0)),
            renewable=bool(auth.get("renewable", False)),
            issued_at=datetime.now(tz=UTC),
        )


# --- Module Notes -----------------------------------------------------------
# Calls are never retried here: the reconciler's work queue and the lease
# manager's backoff loop are the only places that retry Vault calls.
