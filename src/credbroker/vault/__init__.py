"""
credbroker.vault

Vault client boundary.

Responsibilities:
- Async HTTP access to Vault's logical and auth APIs (`client`).
"""

from credbroker.vault.client import VaultClient, VaultResponse, VaultSession, create_http_client

__all__ = ["VaultClient", "VaultResponse", "VaultSession", "create_http_client"]
