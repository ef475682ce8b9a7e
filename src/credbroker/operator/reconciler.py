"""
credbroker.operator.reconciler

Keeps one secret backend's Vault objects in step with the live ServiceAccounts.

Responsibilities:
- Write the policy, login role and backend role for admitted ServiceAccounts.
- Remove them when a ServiceAccount is deleted or stops being admitted.
- Sweep Vault for objects whose ServiceAccount no longer exists (garbage collection).

Every Vault object for a ServiceAccount shares one name, the managed key (see
`credbroker.keys`). Writes and removals are idempotent, so a partial failure is
repaired by the next reconcile of the same key.
"""

from __future__ import annotations

from credbroker.backends.base import SecretBackend
from credbroker.keys import KeyCodec, ManagedKey
from credbroker.kube.identities import IdentityEvent, IdentitySource, WorkloadIdentity
from credbroker.observability.logging import get_logger
from credbroker.operator.predicates import should_reconcile
from credbroker.vault.client import VaultClient

# Login token TTL in seconds for the Kubernetes auth roles we write.
LOGIN_ROLE_TTL = 900

log = get_logger(__name__)


class BackendReconciler:
    def __init__(
        self,
        *,
        backend: SecretBackend,
        vault: VaultClient,
        identities: IdentitySource,
        prefix: str,
        kube_auth_backend: str = "kubernetes",
    ) -> None:
        self.backend = backend
        self.codec = KeyCodec(prefix=prefix, backend=backend.name)
        self.kube_auth_backend = kube_auth_backend.strip("/")
        self._vault = vault
        self._identities = identities
        self._log = log.bind(backend=backend.name)

    @property
    def name(self) -> str:
        return self.backend.name

    def key_for(self, namespace: str, name: str) -> str:
        return self.codec.encode(namespace, name)

    def is_interested(self, event: IdentityEvent) -> bool:
        return should_reconcile(self.backend.admit, event)

    def _admitted(self, identity: WorkloadIdentity) -> bool:
        return self.backend.admit(identity.namespace, identity.name, identity.annotations)

    async def reconcile(self, namespace: str, name: str) -> None:
        """
        Bring Vault in line with the current state of one ServiceAccount.

        Raises:
            OrchestratorError: the ServiceAccount lookup failed.
            StoreError: a Vault call failed; the remaining steps were skipped.
        """

        identity = await self._identities.get(namespace, name)
        if identity is None or not self._admitted(identity):
            # Deleted, or its annotations were removed or no longer pass the rules.
            await self.remove(namespace, name)
            return
        await self.write(identity)

    async def write(self, identity: WorkloadIdentity) -> None:
        namespace, name = identity.namespace, identity.name
        key = self.key_for(namespace, name)
        fields = {"namespace": namespace, "serviceaccount": name, "key": key}

        policy = self.backend.render_policy(key)
        await self._vault.write(f"sys/policy/{key}", {"policy": policy})
        self._log.info("wrote_policy", **fields)

        await self._vault.write(
            f"auth/{self.kube_auth_backend}/role/{key}",
            {
                "bound_service_account_names": [name],
                "bound_service_account_namespaces": [namespace],
                "policies": ["default", key],
                "ttl": LOGIN_ROLE_TTL,
            },
        )
        self._log.info("wrote_login_role", **fields)

        await self.backend.write_role(key, identity.annotations)
        self._log.info("wrote_backend_role", **fields)

    async def remove(self, namespace: str, name: str) -> None:
        key = self.key_for(namespace, name)
        fields = {"namespace": namespace, "serviceaccount": name, "key": key}

        await self.backend.delete_role(key)
        self._log.info("deleted_backend_role", **fields)

        await self._vault.delete(f"auth/{self.kube_auth_backend}/role/{key}")
        self._log.info("deleted_login_role", **fields)

        await self._vault.delete(f"sys/policy/{key}")
        self._log.info("deleted_policy", **fields)

    async def find_orphans(self) -> list[ManagedKey]:
        """
        Managed keys present in Vault (backend roles, login roles or policies)
        without a live, admitted ServiceAccount. Keys this reconciler didn't
        produce are ignored.
        """

        listed: list[str] = []
        listed.extend(await self.backend.list_roles())
        listed.extend(await self._vault.list(f"auth/{self.kube_auth_backend}/role/"))
        listed.extend(await self._vault.list("sys/policy"))

        live = {
            (identity.namespace, identity.name)
            for identity in await self._identities.list()
            if self._admitted(identity)
        }

        orphans: dict[tuple[str, str], ManagedKey] = {}
        for raw in listed:
            key = self.codec.decode(raw)
            if key is None:
                continue
            ident = (key.namespace, key.name)
            if ident not in live and ident not in orphans:
                orphans[ident] = key
        return list(orphans.values())

    async def garbage_collect(self) -> int:
        """
        Remove every orphaned identity's objects. A listing or removal failure
        aborts the sweep. Returns the number of identities removed.
        """

        self._log.info("garbage_collection_started")
        orphans = await self.find_orphans()
        for key in orphans:
            await self.remove(key.namespace, key.name)
        self._log.info("garbage_collection_finished", removed=len(orphans))
        return len(orphans)


# --- Module Notes -----------------------------------------------------------
# The ServiceAccount list is taken once per sweep, after the Vault listings. An
# identity created mid-sweep may be removed and is then rewritten by its own
# create event.
