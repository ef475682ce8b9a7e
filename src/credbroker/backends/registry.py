"""
credbroker.backends.registry

Builds the enabled secret backends from the operator configuration file.

Responsibilities:
- Map config sections to backend constructors.
- Refuse to start with no backend enabled.
"""

from __future__ import annotations

from collections.abc import Callable

from credbroker.backends.aws import AWSBackend
from credbroker.backends.base import SecretBackend
from credbroker.backends.gcp import GCPBackend
from credbroker.errors import ConfigError
from credbroker.operator.config import FileConfig
from credbroker.vault.client import VaultClient

BackendFactory = Callable[[FileConfig, VaultClient], SecretBackend | None]


def _aws(cfg: FileConfig, vault: VaultClient) -> SecretBackend | None:
    if not cfg.aws.enabled:
        return None
    return AWSBackend(
        vault=vault,
        path=cfg.aws.path,
        rules=cfg.aws.rules,
        default_ttl=cfg.aws.default_ttl,
    )


def _gcp(cfg: FileConfig, vault: VaultClient) -> SecretBackend | None:
    if not cfg.gcp.enabled:
        return None
    return GCPBackend(vault=vault, path=cfg.gcp.path, rules=cfg.gcp.rules)


# Order is the order reconcilers are started in.
BACKENDS: dict[str, BackendFactory] = {
    "aws": _aws,
    "gcp": _gcp,
}


def build_backends(cfg: FileConfig, vault: VaultClient) -> list[SecretBackend]:
    backends = [b for factory in BACKENDS.values() if (b := factory(cfg, vault)) is not None]
    if not backends:
        raise ConfigError("at least one backend must be enabled in the configuration file")
    return backends
