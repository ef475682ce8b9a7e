"""
tests.conftest

Shared fakes for the operator and sidecar tests.

Responsibilities:
- An in-memory Vault served through `httpx.MockTransport`, so tests exercise the
  real `VaultClient`.
- An in-memory ServiceAccount source with a controllable watch stream.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from types import MappingProxyType
from typing import Any

import httpx
import pytest

from credbroker.errors import OrchestratorError
from credbroker.kube.identities import EventType, IdentityEvent, WorkloadIdentity
from credbroker.vault.client import VaultClient

Handler = Callable[[httpx.Request], httpx.Response]


class FakeVault:
    def __init__(self) -> None:
        self.data: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.handlers: dict[tuple[str, str], Handler] = {}
        self.failures: dict[tuple[str, str], int] = {}

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.removeprefix("/v1/")
        self.calls.append((method, path))

        if (method, path) in self.failures:
            return httpx.Response(self.failures[(method, path)], json={"errors": ["boom"]})
        if (method, path) in self.handlers:
            return self.handlers[(method, path)](request)

        if method == "LIST":
            prefix = path.rstrip("/") + "/"
            keys = sorted({p[len(prefix) :].split("/")[0] for p in self.data if p.startswith(prefix)})
            if not keys:
                return httpx.Response(404, json={"errors": []})
            return httpx.Response(200, json={"data": {"keys": keys}})
        if method == "GET":
            if path not in self.data:
                return httpx.Response(404, json={"errors": []})
            return httpx.Response(200, json={"data": self.data[path]})
        if method == "POST":
            self.data[path] = json.loads(request.content) if request.content else {}
            return httpx.Response(204)
        if method == "DELETE":
            self.data.pop(path, None)
            return httpx.Response(204)
        return httpx.Response(405)

    def client(self, token: str = "root") -> VaultClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handle), base_url="http://vault")
        return VaultClient(http=http, token=token)

    def writes(self) -> list[str]:
        return [path for method, path in self.calls if method == "POST"]

    def deletes(self) -> list[str]:
        return [path for method, path in self.calls if method == "DELETE"]


class FakeIdentities:
    def __init__(self, *identities: WorkloadIdentity) -> None:
        self.items: dict[tuple[str, str], WorkloadIdentity] = {
            (i.namespace, i.name): i for i in identities
        }
        self.events: asyncio.Queue[IdentityEvent | None] = asyncio.Queue()
        self.get_error: OrchestratorError | None = None
        self.list_calls = 0

    async def get(self, namespace: str, name: str) -> WorkloadIdentity | None:
        if self.get_error is not None:
            raise self.get_error
        return self.items.get((namespace, name))

    async def list(self) -> list[WorkloadIdentity]:
        self.list_calls += 1
        return list(self.items.values())

    async def watch(self) -> AsyncIterator[IdentityEvent]:
        while True:
            event = await self.events.get()
            if event is None:
                return
            yield event

    def put(self, identity: WorkloadIdentity) -> None:
        old = self.items.get((identity.namespace, identity.name))
        self.items[(identity.namespace, identity.name)] = identity
        if old is None:
            self.events.put_nowait(IdentityEvent(EventType.CREATED, identity))
        else:
            self.events.put_nowait(IdentityEvent(EventType.UPDATED, identity, old))

    def remove(self, namespace: str, name: str) -> None:
        identity = self.items.pop((namespace, name))
        self.events.put_nowait(IdentityEvent(EventType.DELETED, identity))

    def close(self) -> None:
        self.events.put_nowait(None)


def identity(namespace: str, name: str, annotations: dict[str, str] | None = None) -> WorkloadIdentity:
    return WorkloadIdentity(namespace, name, MappingProxyType(dict(annotations or {})))


@pytest.fixture
def vault() -> FakeVault:
    return FakeVault()


# --- Module Notes -----------------------------------------------------------
# FakeVault.list mimics Vault: direct children only, and 404 for an empty
# directory.
