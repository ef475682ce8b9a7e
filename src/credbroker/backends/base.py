"""
credbroker.backends.base

The capability interface every Vault secret backend implements.

Responsibilities:
- Define the `SecretBackend` protocol the reconciler is written against.
- Share the policy template helper used by both backends.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from jinja2 import Environment, StrictUndefined, Template

from credbroker.errors import ConfigError

_templates = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)


@runtime_checkable
class SecretBackend(Protocol):
    """
    Reconciles ServiceAccounts against one Vault secret backend (aws, gcp).
    """

    @property
    def name(self) -> str:
        """Backend name, also the second segment of every managed key."""
        ...

    def admit(self, namespace: str, name: str, annotations: Mapping[str, str]) -> bool:
        """
        True if the ServiceAccount requests a binding from this backend and the
        rules allow it. Never raises: parse and pattern errors deny.
        """
        ...

    async def write_role(self, key: str, annotations: Mapping[str, str]) -> None:
        """Create or update the backend role named `key`."""
        ...

    async def delete_role(self, key: str) -> None:
        """Delete the backend role named `key`; absent roles are not an error."""
        ...

    async def list_roles(self) -> list[str]:
        """List backend role names (used by garbage collection only)."""
        ...

    def render_policy(self, key: str) -> str:
        """Render a policy granting access to exactly the role named `key`."""
        ...


def compile_policy_template(source: str) -> Template:
    return _templates.from_string(source)


def require_path(path: str) -> str:
    path = path.strip("/")
    if not path:
        raise ConfigError("path can't be empty")
    return path


# --- Module Notes -----------------------------------------------------------
# Backends are plain classes satisfying this protocol; there is no shared base
# class. `credbroker.backends.registry` turns config sections into instances.
