"""
credbroker.backends

Vault secret backends the operator can reconcile ServiceAccounts against.

Responsibilities:
- The `SecretBackend` protocol (`base`).
- AWS assumed-role and GCP roleset implementations (`aws`, `gcp`).
- Construction from configuration (`registry`).
"""

from credbroker.backends.aws import AWS_ROLE_ANNOTATION, AWSBackend
from credbroker.backends.base import SecretBackend
from credbroker.backends.gcp import GCP_BINDINGS_ANNOTATION, GCP_PROJECT_ANNOTATION, GCPBackend

__all__ = [
    "AWS_ROLE_ANNOTATION",
    "AWSBackend",
    "GCP_BINDINGS_ANNOTATION",
    "GCP_PROJECT_ANNOTATION",
    "GCPBackend",
    "SecretBackend",
]
