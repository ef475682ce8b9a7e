"""
credbroker.sidecar.manager

The renewal loop that keeps a fresh credential in the `LeaseHolder`.

Responsibilities:
- Log in to Vault with the pod's ServiceAccount token, and again whenever the
  session is missing, about to expire, or rejected with 401/403.
- Issue a credential through the provider and swap it into the holder.
- Sleep a jittered two thirds of the lease before renewing; back off
  exponentially after failures, without giving up.
"""

from __future__ import annotations

import asyncio
import enum
import random
from collections.abc import Callable
from datetime import timedelta

from credbroker.errors import StoreError, TokenError
from credbroker.kube.token import ServiceAccountToken, read_token
from credbroker.observability.logging import get_logger
from credbroker.sidecar.lease import LeaseHolder, LeaseState
from credbroker.sidecar.providers import CredentialProvider
from credbroker.sidecar.timing import backoff_duration, sleep_duration
from credbroker.vault.client import VaultClient, VaultSession

log = get_logger(__name__)


class ManagerState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    ACTIVE = "active"
    RENEWING = "renewing"
    FAILED = "failed"


class LeaseManager:
    def __init__(
        self,
        *,
        vault: VaultClient,
        provider: CredentialProvider,
        holder: LeaseHolder,
        kube_auth_backend: str,
        kube_auth_role: str,
        token_path: str,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 300.0,
        session_refresh_margin: timedelta = timedelta(seconds=30),
        rng: random.Random | None = None,
        token_reader: Callable[[str], ServiceAccountToken] = read_token,
    ) -> None:
        self.provider = provider
        self.holder = holder
        self.kube_auth_backend = kube_auth_backend
        self.kube_auth_role = kube_auth_role
        self.token_path = token_path
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.session_refresh_margin = session_refresh_margin
        self.state = ManagerState.UNAUTHENTICATED
        self.attempt = 0
        self._vault = vault
        self._rng = rng or random.Random()
        self._read_token = token_reader
        self._session: VaultSession | None = None

    @property
    def session(self) -> VaultSession | None:
        return self._session

    def _session_usable(self) -> bool:
        session = self._session
        if session is None:
            return False
        # A zero lease duration is a token that doesn't expire.
        if session.lease_duration <= timedelta(0):
            return True
        return not session.expires_within(self.session_refresh_margin)

    async def login(self) -> VaultSession:
        # Projected tokens rotate, so read the file on every login.
        token = self._read_token(self.token_path)
        session = await self._vault.login_kubernetes(
            mount=self.kube_auth_backend,
            role=self.kube_auth_role,
            jwt=token.jwt,
        )
        self._vault.set_token(session.client_token)
        self._session = session
        log.info(
            "vault_login",
            role=self.kube_auth_role,
            namespace=token.namespace,
            serviceaccount=token.name,
            lease_duration=session.lease_duration.total_seconds(),
        )
        return session

    async def renew_once(self) -> LeaseState:
        """
        One renewal attempt: (re)authenticate if needed, issue, swap into the holder.

        Raises:
            StoreError: Vault refused or failed, even after a fresh login.
            TokenError: the ServiceAccount token couldn't be read.
        """

        if not self._session_usable():
            await self.login()
        try:
            lease = await self.provider.issue()
        except StoreError as e:
            if not e.is_auth_error:
                raise
            # Token revoked or expired early: log in again and retry once.
            log.warning("vault_session_rejected", path=e.path, status_code=e.status_code)
            self._session = None
            await self.login()
            lease = await self.provider.issue()

        self.holder.swap(lease)
        log.info(
            "credentials_renewed",
            provider=self.provider.name,
            expires_at=lease.expires_at.isoformat(),
        )
        return lease

    def next_renewal(self, lease: LeaseState) -> float:
        if lease.lease_duration <= timedelta(0):
            # Nothing to schedule against; poll at the slowest retry rate.
            return self.retry_max_delay
        return sleep_duration(lease.lease_duration, self._rng).total_seconds()

    async def step(self) -> float:
        """
        Run one attempt and return the number of seconds to wait before the next.
        """

        if self.holder.current is not None:
            self.state = ManagerState.RENEWING
        try:
            lease = await self.renew_once()
        except (StoreError, TokenError) as e:
            self.attempt += 1
            self.state = ManagerState.FAILED
            delay = backoff_duration(
                self.attempt, base=self.retry_base_delay, maximum=self.retry_max_delay
            )
            log.error(
                "credentials_renewal_failed",
                provider=self.provider.name,
                attempt=self.attempt,
                retry_in=delay,
                error=str(e),
            )
            return delay

        self.attempt = 0
        self.state = ManagerState.ACTIVE
        return self.next_renewal(lease)

    async def run(self) -> None:
        """
        Renew forever. Cancel the task to stop.
        """

        log.info("lease_manager_started", provider=self.provider.name, role=self.kube_auth_role)
        try:
            while True:
                await asyncio.sleep(await self.step())
        finally:
            log.info("lease_manager_stopped", provider=self.provider.name)


# --- Module Notes -----------------------------------------------------------
# State transitions: UNAUTHENTICATED -> ACTIVE on the first issue, ACTIVE ->
# RENEWING while an attempt runs, RENEWING -> ACTIVE or FAILED. FAILED retries
# with backoff until an attempt succeeds.
