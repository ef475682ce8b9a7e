"""
credbroker.operator

The Vault-backed ServiceAccount operator.

Responsibilities:
- Load the operator configuration file (`config`).
- Reconcile ServiceAccounts against each enabled secret backend (`reconciler`).
- Drive reconcilers from the Kubernetes watch (`controller`).
"""

# Package marker.
