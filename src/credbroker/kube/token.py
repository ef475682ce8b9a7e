"""
credbroker.kube.token

Reads the pod's own ServiceAccount token.

Responsibilities:
- Read the token file mounted into the sidecar's pod.
- Extract namespace and ServiceAccount name from its claims.

The token is not verified here: Vault's Kubernetes auth method does that via the
TokenReview API during login.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jwt

from credbroker.errors import TokenError

DEFAULT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"

_SUBJECT_PREFIX = "system:serviceaccount:"


@dataclass(frozen=True, slots=True)
class ServiceAccountToken:
    jwt: str
    namespace: str
    name: str


def read_token(path: str = DEFAULT_TOKEN_PATH) -> ServiceAccountToken:
    """
    Read and decode the token at `path`. Called before every login, since
    projected tokens are rotated by the kubelet.

    Raises:
        TokenError: the file is missing or empty, or its claims don't name a
            ServiceAccount.
    """

    try:
        raw = Path(path).read_text().strip()
    except OSError as e:
        raise TokenError(f"can't read serviceaccount token from {path}: {e}") from e
    if not raw:
        raise TokenError(f"serviceaccount token file {path} is empty")

    try:
        claims = jwt.decode(raw, options={"verify_signature": False})
    except jwt.DecodeError as e:
        raise TokenError(f"can't decode serviceaccount token: {e}") from e

    namespace, name = service_account_from_claims(claims)
    return ServiceAccountToken(jwt=raw, namespace=namespace, name=name)


def service_account_from_claims(claims: dict[str, Any]) -> tuple[str, str]:
    # Projected (bound) tokens nest the identity under "kubernetes.io".
    nested = claims.get("kubernetes.io")
    if isinstance(nested, dict):
        namespace = nested.get("namespace")
        sa = nested.get("serviceaccount")
        if isinstance(namespace, str) and isinstance(sa, dict) and isinstance(sa.get("name"), str):
            return namespace, sa["name"]

    # Legacy secret-based tokens.
    namespace = claims.get("kubernetes.io/serviceaccount/namespace")
    name = claims.get("kubernetes.io/serviceaccount/service-account.name")
    if isinstance(namespace, str) and isinstance(name, str) and namespace and name:
        return namespace, name

    sub = claims.get("sub")
    if isinstance(sub, str) and sub.startswith(_SUBJECT_PREFIX):
        namespace, _, name = sub[len(_SUBJECT_PREFIX) :].partition(":")
        if namespace and name:
            return namespace, name

    raise TokenError("serviceaccount token doesn't carry a namespace and name")
