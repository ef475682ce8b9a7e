"""
credbroker.operator.__main__

Entrypoint for running the operator via `python -m credbroker.operator`.

Responsibilities:
- Load settings and the configuration file.
- Build the Vault client, the Kubernetes identity source and the backends.
- Run the controller until SIGTERM/SIGINT.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys

from credbroker.backends.registry import build_backends
from credbroker.errors import ConfigError
from credbroker.kube.identities import KubeIdentitySource, load_kube_config
from credbroker.observability.logging import configure_logging, get_logger
from credbroker.operator.config import FileConfig, load_config_from_file
from credbroker.operator.controller import Controller
from credbroker.operator.reconciler import BackendReconciler
from credbroker.settings import OperatorSettings, get_operator_settings, get_vault_settings
from credbroker.vault.client import VaultClient, create_http_client

log = get_logger(__name__)


async def run(settings: OperatorSettings, cfg: FileConfig) -> None:
    log.info("startup", env=settings.env, config_file=settings.config_file)
    vault_settings = get_vault_settings()
    http = create_http_client(vault_settings)
    try:
        vault = VaultClient(http=http, token=vault_settings.token)

        load_kube_config()
        identities = KubeIdentitySource()

        reconcilers = [
            BackendReconciler(
                backend=backend,
                vault=vault,
                identities=identities,
                prefix=cfg.prefix,
                kube_auth_backend=cfg.kubernetes_auth_backend,
            )
            for backend in build_backends(cfg, vault)
        ]
        controller = Controller(reconcilers=reconcilers, identities=identities, settings=settings)

        task = asyncio.create_task(controller.run())
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, task.cancel)

        with contextlib.suppress(asyncio.CancelledError):
            await task
        log.info("shutdown")
    finally:
        await http.aclose()


def main() -> None:
    settings = get_operator_settings()
    configure_logging(
        service_name=settings.service_name,
        level=settings.log_level,
    )
    try:
        cfg = load_config_from_file(settings.config_file)
        asyncio.run(run(settings, cfg))
    except ConfigError as e:
        log.error("invalid_configuration", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()


# --- Module Notes -----------------------------------------------------------
# VAULT_ADDR / VAULT_TOKEN / VAULT_CACERT configure the Vault client, as with the
# Vault CLI. The operator's token needs write access to sys/policy, the
# Kubernetes auth mount and every enabled secret backend.
