"""
credbroker.settings

Central configuration models (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the operator and the sidecar.
- Hide secrets from repr/logging (e.g., the Vault token).
- Offer cached settings instances for the process entrypoints.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VaultSettings(BaseSettings):
    """
    Uses the same variable names as the Vault CLI so existing manifests keep working.
    """

    model_config = SettingsConfigDict(env_prefix="VAULT_", case_sensitive=False)

    addr: str = "http://127.0.0.1:8200"
    token: str = Field(default="", repr=False)
    cacert: str | None = None
    timeout: float = 60.0


class OperatorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CREDBROKER_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "credbroker-operator"
    log_level: str = "INFO"

    # YAML file holding backends and rules (see `credbroker.operator.config`).
    config_file: str = ""

    # 0 disables periodic re-sweeps; the startup sweep always runs.
    gc_interval_seconds: float = 0.0

    # Rate-limited requeue of failed reconciles.
    requeue_base_delay: float = 0.5
    requeue_max_delay: float = 300.0


class SidecarSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CREDBROKER_SIDECAR_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "credbroker-sidecar"
    log_level: str = "INFO"

    provider: Literal["aws", "gcp"] = "aws"

    # Must match the operator's prefix so default role names line up.
    prefix: str = "vkcc"
    # Secret backend mount path; defaults to the provider name.
    backend: str = ""
    # AWS role / GCP roleset; defaults to <prefix>_<provider>_<namespace>_<serviceaccount>.
    role: str = ""
    role_arn: str = ""

    kube_auth_role: str = ""
    kube_auth_backend: str = "kubernetes"
    kube_token_path: str = "/var/run/secrets/kubernetes.io/serviceaccount/token"

    listen_host: str = "127.0.0.1"
    listen_port: int = 8000
    ops_host: str = "0.0.0.0"
    ops_port: int = 8099

    # AWS container credentials path (AWS_CONTAINER_CREDENTIALS_FULL_URI).
    credentials_path: str = "/credentials"

    retry_base_delay: float = 1.0
    retry_max_delay: float = 300.0
    # Re-login when the Vault session has less than this many seconds left.
    session_refresh_margin: float = 30.0

    @property
    def backend_path(self) -> str:
        return self.backend or self.provider


@lru_cache(maxsize=1)
def get_vault_settings() -> VaultSettings:
    return VaultSettings()


@lru_cache(maxsize=1)
def get_operator_settings() -> OperatorSettings:
    # Cache avoids re-parsing env vars; the entrypoint reads this once.
    return OperatorSettings()


@lru_cache(maxsize=1)
def get_sidecar_settings() -> SidecarSettings:
    return SidecarSettings()


# --- Module Notes -----------------------------------------------------------
# Authorization rules are not env-driven: they live in the operator's YAML file,
# loaded by `credbroker.operator.config`.
