"""
credbroker.sidecar.__main__

Entrypoint for running the sidecar via `python -m credbroker.sidecar`.

Responsibilities:
- Load settings and read the pod's ServiceAccount token.
- Derive default role names the same way the operator writes them.
- Serve credentials and ops endpoints while the lease manager renews.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from datetime import timedelta

import uvicorn
from fastapi import FastAPI

from credbroker.errors import ConfigError, ParseError, TokenError
from credbroker.keys import KeyCodec
from credbroker.kube.token import read_token
from credbroker.observability.logging import configure_logging, get_logger
from credbroker.settings import SidecarSettings, get_sidecar_settings, get_vault_settings
from credbroker.sidecar.app import create_credentials_app, create_ops_app
from credbroker.sidecar.lease import LeaseHolder
from credbroker.sidecar.manager import LeaseManager
from credbroker.sidecar.providers import AWSProvider, CredentialProvider, GCPProvider
from credbroker.vault.client import VaultClient, create_http_client

log = get_logger(__name__)


class _Server(uvicorn.Server):
    # Two servers share the process; shutdown signals are handled in `run`.
    @contextlib.contextmanager
    def capture_signals(self):
        yield


def _server(app: FastAPI, host: str, port: int) -> _Server:
    return _Server(uvicorn.Config(app, host=host, port=port, log_config=None))  # structlog


def build_provider(settings: SidecarSettings, vault: VaultClient, default_name: str) -> CredentialProvider:
    if settings.provider == "aws":
        return AWSProvider(
            vault=vault,
            path=settings.backend_path,
            role=settings.role or default_name,
            role_arn=settings.role_arn,
        )
    return GCPProvider(vault=vault, path=settings.backend_path, roleset=settings.role or default_name)


async def run(settings: SidecarSettings, default_name: str) -> None:
    log.info("startup", env=settings.env, provider=settings.provider)
    http = create_http_client(get_vault_settings())
    vault = VaultClient(http=http)
    holder = LeaseHolder()
    manager = LeaseManager(
        vault=vault,
        provider=build_provider(settings, vault, default_name),
        holder=holder,
        kube_auth_backend=settings.kube_auth_backend,
        kube_auth_role=settings.kube_auth_role or default_name,
        token_path=settings.kube_token_path,
        retry_base_delay=settings.retry_base_delay,
        retry_max_delay=settings.retry_max_delay,
        session_refresh_margin=timedelta(seconds=settings.session_refresh_margin),
    )
    servers = [
        _server(
            create_credentials_app(
                provider=settings.provider,
                holder=holder,
                credentials_path=settings.credentials_path,
            ),
            settings.listen_host,
            settings.listen_port,
        ),
        _server(create_ops_app(holder=holder), settings.ops_host, settings.ops_port),
    ]

    tasks = [asyncio.create_task(manager.run(), name="lease-manager")]
    tasks.extend(asyncio.create_task(s.serve(), name="uvicorn") for s in servers)
    stopping = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stopping.set)

    stop_task = asyncio.create_task(stopping.wait())
    try:
        done, _ = await asyncio.wait([*tasks, stop_task], return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task is not stop_task and not task.cancelled():
                task.result()
    finally:
        stop_task.cancel()
        for server in servers:
            server.should_exit = True
        tasks[0].cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await http.aclose()
        log.info("shutdown")


def main() -> None:
    settings = get_sidecar_settings()
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    try:
        token = read_token(settings.kube_token_path)
        codec = KeyCodec(prefix=settings.prefix, backend=settings.provider)
        default_name = codec.encode(token.namespace, token.name)
    except (TokenError, ConfigError, ParseError) as e:
        log.error("invalid_configuration", token_path=settings.kube_token_path, error=str(e))
        sys.exit(1)

    asyncio.run(run(settings, default_name))


if __name__ == "__main__":
    main()


# --- Module Notes -----------------------------------------------------------
# AWS workloads point AWS_CONTAINER_CREDENTIALS_FULL_URI at
# http://127.0.0.1:8000/credentials; GCP workloads set GCE_METADATA_HOST to
# 127.0.0.1:8000.
