"""
credbroker.sidecar.providers

Credential issuers: one Vault call per renewal, per cloud provider.

Responsibilities:
- AWS: request STS credentials from `<path>/sts/<role>`.
- GCP: look up the roleset's service account once, then request an OAuth2
  access token from `<path>/token/<roleset>` on each renewal.
- Return the result as a `LeaseState` for the holder.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

from credbroker.errors import StoreError
from credbroker.sidecar.lease import LeaseState
from credbroker.vault.client import VaultClient, VaultResponse


class CredentialProvider(Protocol):
    @property
    def name(self) -> str: ...

    async def issue(self) -> LeaseState: ...


def _require(resp: VaultResponse | None, path: str, *fields: str) -> VaultResponse:
    if resp is None:
        raise StoreError(f"{path}: no response from vault", path=path, status_code=404)
    missing = [f for f in fields if not resp.data.get(f)]
    if missing:
        raise StoreError(f"{path}: response is missing {', '.join(missing)}", path=path)
    return resp


class AWSProvider:
    def __init__(self, *, vault: VaultClient, path: str, role: str, role_arn: str = "") -> None:
        self.path = path.strip("/")
        self.role = role
        self.role_arn = role_arn
        self._vault = vault

    @property
    def name(self) -> str:
        return "aws"

    async def issue(self) -> LeaseState:
        path = f"{self.path}/sts/{self.role}"
        # role_arn is only needed when the Vault role lists more than one ARN.
        body = {"role_arn": self.role_arn} if self.role_arn else {}
        resp = _require(
            await self._vault.write(path, body), path, "access_key", "secret_key", "security_token"
        )
        data = resp.data
        return LeaseState(
            payload={
                "AccessKeyId": data["access_key"],
                "SecretAccessKey": data["secret_key"],
                "Token": data["security_token"],
            },
            issued_at=datetime.now(tz=UTC),
            lease_duration=timedelta(seconds=resp.lease_duration),
            renewable=resp.renewable,
        )


class GCPProvider:
    def __init__(self, *, vault: VaultClient, path: str, roleset: str) -> None:
        self.path = path.strip("/")
        self.roleset = roleset
        self._vault = vault
        self.email: str | None = None
        self.project: str | None = None

    @property
    def name(self) -> str:
        return "gcp"

    async def load_roleset(self) -> None:
        path = f"{self.path}/roleset/{self.roleset}"
        data = _require(await self._vault.read(path), path, "service_account_email").data
        self.email = str(data["service_account_email"])
        self.project = str(data.get("project") or "")

    async def issue(self) -> LeaseState:
        if self.email is None:
            await self.load_roleset()

        path = f"{self.path}/token/{self.roleset}"
        resp = _require(await self._vault.read(path), path, "token")
        data = resp.data

        now = datetime.now(tz=UTC)
        if data.get("expires_at_seconds"):
            expires_at = datetime.fromtimestamp(int(data["expires_at_seconds"]), tz=UTC)
            lease = expires_at - now
        else:
            lease = timedelta(seconds=int(data.get("token_ttl") or resp.lease_duration))

        return LeaseState(
            payload={
                "access_token": data["token"],
                "email": self.email,
                "project": self.project,
            },
            issued_at=now,
            lease_duration=lease,
            renewable=resp.renewable,
        )


# --- Module Notes -----------------------------------------------------------
# Providers don't log in: `credbroker.sidecar.manager` owns the Vault session and
# re-authenticates when a provider call fails with 401/403.
