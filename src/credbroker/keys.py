"""
credbroker.keys

Deterministic naming of the Vault objects managed for one ServiceAccount.

Responsibilities:
- Encode (prefix, backend, namespace, name) into a single Vault object name.
- Decode a listed Vault object name back, recognising only keys this operator owns.

A key looks like `vkcc_aws_team-a_svc`. Kubernetes names never contain `_`, so the
separator cannot collide with namespace or ServiceAccount names.
"""

from __future__ import annotations

from dataclasses import dataclass

from credbroker.errors import ConfigError, ParseError

SEPARATOR = "_"


@dataclass(frozen=True, slots=True)
class ManagedKey:
    prefix: str
    backend: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return SEPARATOR.join((self.prefix, self.backend, self.namespace, self.name))


class KeyCodec:
    def __init__(self, *, prefix: str, backend: str) -> None:
        for label, value in (("prefix", prefix), ("backend name", backend)):
            if not value:
                raise ConfigError(f"{label} must not be empty")
            if SEPARATOR in value:
                raise ConfigError(f"{label} must not contain a {SEPARATOR!r}: {value}")
        self.prefix = prefix
        self.backend = backend

    def encode(self, namespace: str, name: str) -> str:
        for label, value in (("namespace", namespace), ("name", name)):
            if not value or SEPARATOR in value:
                raise ParseError(f"{label} can't be encoded into a key: {value!r}")
        return str(ManagedKey(self.prefix, self.backend, namespace, name))

    def decode(self, key: str) -> ManagedKey | None:
        """
        Returns None for anything this codec didn't produce, including keys written
        by another prefix/backend. GC relies on this to leave foreign objects alone.
        """

        parts = key.split(SEPARATOR)
        if len(parts) != 4:
            return None
        prefix, backend, namespace, name = parts
        if prefix != self.prefix or backend != self.backend:
            return None
        if not namespace or not name:
            return None
        return ManagedKey(prefix, backend, namespace, name)


# --- Module Notes -----------------------------------------------------------
# The sidecar uses the same codec to derive its default login role and backend
# role names from its own token claims.
