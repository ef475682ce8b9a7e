"""
credbroker.kube.identities

Kubernetes ServiceAccounts as workload identities.

Responsibilities:
- Define the `WorkloadIdentity` / `IdentityEvent` types the operator works with.
- Define the `IdentitySource` protocol (get/list/watch) the reconciler depends on.
- Implement it against the Kubernetes API with the official client.

The official client is blocking: point reads run in `asyncio.to_thread`, and the
watch runs in a dedicated thread that hands events to the event loop.
"""

from __future__ import annotations

import asyncio
import enum
import threading
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from kubernetes import client, config, watch
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException

from credbroker.errors import OrchestratorError
from credbroker.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class WorkloadIdentity:
    namespace: str
    name: str
    annotations: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_service_account(cls, sa: Any) -> WorkloadIdentity:
        meta = sa.metadata
        return cls(
            namespace=meta.namespace,
            name=meta.name,
            annotations=MappingProxyType(dict(meta.annotations or {})),
        )


class EventType(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class IdentityEvent:
    """
    One change to a ServiceAccount. `old` is only set for UPDATED events.
    """

    type: EventType
    new: WorkloadIdentity
    old: WorkloadIdentity | None = None

    @property
    def namespace(self) -> str:
        return self.new.namespace

    @property
    def name(self) -> str:
        return self.new.name


class IdentitySource(Protocol):
    async def get(self, namespace: str, name: str) -> WorkloadIdentity | None: ...

    async def list(self) -> list[WorkloadIdentity]: ...

    def watch(self) -> AsyncIterator[IdentityEvent]: ...


def load_kube_config() -> None:
    # In-cluster first; fall back to ~/.kube/config for local runs.
    try:
        config.load_incluster_config()
    except ConfigException:
        config.load_kube_config()


class KubeIdentitySource:
    def __init__(self, *, api: client.CoreV1Api | None = None, watch_timeout: int = 300) -> None:
        self._api = api or client.CoreV1Api()
        self._watch_timeout = watch_timeout
        self._stopped = threading.Event()
        self._watch: watch.Watch | None = None

    async def get(self, namespace: str, name: str) -> WorkloadIdentity | None:
        try:
            sa = await asyncio.to_thread(self._api.read_namespaced_service_account, name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise OrchestratorError(
                f"reading serviceaccount {namespace}/{name}: {e.status} {e.reason}"
            ) from e
        return WorkloadIdentity.from_service_account(sa)

    async def list(self) -> list[WorkloadIdentity]:
        items, _ = await asyncio.to_thread(self._list_with_version)
        return items

    def _list_with_version(self) -> tuple[list[WorkloadIdentity], str]:
        try:
            resp = self._api.list_service_account_for_all_namespaces()
        except ApiException as e:
            raise OrchestratorError(f"listing serviceaccounts: {e.status} {e.reason}") from e
        items = [WorkloadIdentity.from_service_account(sa) for sa in resp.items]
        return items, resp.metadata.resource_version

    async def watch(self) -> AsyncIterator[IdentityEvent]:
        """
        Yields CREATED/UPDATED/DELETED events for every ServiceAccount, starting
        with a CREATED event per existing object. Runs until `stop()` is called.
        """

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[IdentityEvent | BaseException | None] = asyncio.Queue()

        def emit(item: IdentityEvent | BaseException | None) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, item)

        thread = threading.Thread(
            target=self._run_watch, args=(emit,), name="serviceaccount-watch", daemon=True
        )
        thread.start()
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.stop()

    def stop(self) -> None:
        self._stopped.set()
        if self._watch is not None:
            self._watch.stop()

    def _run_watch(self, emit) -> None:
        # Local cache of last-seen objects: the API doesn't send the previous
        # version on MODIFIED, and update filtering needs it.
        cache: dict[tuple[str, str], WorkloadIdentity] = {}
        try:
            while not self._stopped.is_set():
                items, resource_version = self._list_with_version()
                seen = set()
                for identity in items:
                    key = (identity.namespace, identity.name)
                    seen.add(key)
                    old = cache.get(key)
                    if old is None:
                        emit(IdentityEvent(EventType.CREATED, identity))
                    elif old != identity:
                        emit(IdentityEvent(EventType.UPDATED, identity, old))
                    cache[key] = identity
                # Objects deleted while we weren't watching.
                for key in set(cache) - seen:
                    emit(IdentityEvent(EventType.DELETED, cache.pop(key)))

                self._stream(emit, cache, resource_version)
        except Exception as e:
            # Re-raised by `watch` on the event loop.
            emit(e)
            return
        emit(None)

    def _stream(self, emit, cache: dict[tuple[str, str], WorkloadIdentity], resource_version: str) -> None:
        while not self._stopped.is_set():
            self._watch = watch.Watch()
            try:
                for event in self._watch.stream(
                    self._api.list_service_account_for_all_namespaces,
                    resource_version=resource_version,
                    timeout_seconds=self._watch_timeout,
                ):
                    obj = event["object"]
                    resource_version = obj.metadata.resource_version
                    identity = WorkloadIdentity.from_service_account(obj)
                    key = (identity.namespace, identity.name)
                    kind = event["type"]
                    if kind == "ADDED":
                        old = cache.get(key)
                        cache[key] = identity
                        emit(
                            IdentityEvent(EventType.CREATED, identity)
                            if old is None
                            else IdentityEvent(EventType.UPDATED, identity, old)
                        )
                    elif kind == "MODIFIED":
                        old = cache.get(key)
                        cache[key] = identity
                        emit(IdentityEvent(EventType.UPDATED, identity, old or identity))
                    elif kind == "DELETED":
                        cache.pop(key, None)
                        emit(IdentityEvent(EventType.DELETED, identity))
            except ApiException as e:
                if e.status == 410:
                    # Resource version too old: relist.
                    log.info("serviceaccount_watch_expired")
                    return
                raise OrchestratorError(f"watching serviceaccounts: {e.status} {e.reason}") from e
            finally:
                self._watch.stop()


# --- Module Notes -----------------------------------------------------------
# The relist after a watch gap emits synthetic UPDATED/DELETED events, so the
# reconciler sees transitions that happened while the watch was down.
