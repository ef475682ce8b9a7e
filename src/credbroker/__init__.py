"""
credbroker

Top-level package for the Vault-backed cloud credentials broker.

Responsibilities:
- Expose package version metadata.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"


# --- Module Notes -----------------------------------------------------------
# Keep this file minimal; both the operator and the sidecar import from here.
