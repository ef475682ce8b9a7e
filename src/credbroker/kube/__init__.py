"""
credbroker.kube

Kubernetes boundary: ServiceAccounts as identities, and the pod's own token.
"""

from credbroker.kube.identities import (
    EventType,
    IdentityEvent,
    IdentitySource,
    KubeIdentitySource,
    WorkloadIdentity,
    load_kube_config,
)
from credbroker.kube.token import ServiceAccountToken, read_token

__all__ = [
    "EventType",
    "IdentityEvent",
    "IdentitySource",
    "KubeIdentitySource",
    "ServiceAccountToken",
    "WorkloadIdentity",
    "load_kube_config",
    "read_token",
]
