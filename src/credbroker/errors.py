"""
credbroker.errors

Error taxonomy shared by the operator and the sidecar.

Responsibilities:
- Separate local decision failures (parse/pattern) from external call failures.
- Carry enough context on external failures to decide on re-authentication.
"""

from __future__ import annotations

from collections.abc import Sequence


class CredbrokerError(Exception):
    """Base exception for all credbroker errors."""


class ConfigError(CredbrokerError):
    """Raised when configuration is missing or invalid."""


class ParseError(CredbrokerError):
    """Raised when an annotation payload (role ARN, bindings) is malformed."""


class PatternSyntaxError(CredbrokerError):
    """Raised when a glob pattern in a rule is malformed."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"syntax error in pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class StoreError(CredbrokerError):
    """Raised when a call to Vault fails (transport, permission, server error)."""

    def __init__(
        self,
        message: str,
        *,
        path: str,
        status_code: int | None = None,
        errors: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.path = path
        self.status_code = status_code
        self.errors = tuple(errors)

    @property
    def is_auth_error(self) -> bool:
        # Vault answers 403 for expired/revoked tokens as well as missing grants.
        return self.status_code in (401, 403)


class OrchestratorError(CredbrokerError):
    """Raised when a Kubernetes API call fails for a reason other than not-found."""


class TokenError(CredbrokerError):
    """Raised when the local ServiceAccount token cannot be read or decoded."""


# --- Module Notes -----------------------------------------------------------
# Parse and pattern errors never leave a backend's `admit`: they turn into a deny.
# Store and orchestrator errors surface to the control loops, which own retries.
