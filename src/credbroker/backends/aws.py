"""
credbroker.backends.aws

Vault AWS secret backend (assumed-role credentials).

Responsibilities:
- Admit ServiceAccounts annotated with a role ARN that the AWS rules allow.
- Write/delete/list `<path>/roles/<key>` roles of type `assumed_role`.
- Render the policy granting `<path>/creds/<key>` and `<path>/sts/<key>`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta

from credbroker.backends.base import compile_policy_template, require_path
from credbroker.errors import ParseError, PatternSyntaxError
from credbroker.observability.logging import get_logger
from credbroker.rules.models import AWSRules
from credbroker.vault.client import VaultClient

AWS_ROLE_ANNOTATION = "vault.uw.systems/aws-role"

_POLICY_TEMPLATE = """
path "{{ path }}/creds/{{ name }}" {
  capabilities = ["create", "read", "update", "delete", "list"]
}
path "{{ path }}/sts/{{ name }}" {
  capabilities = ["create", "read", "update", "delete", "list"]
}
"""

log = get_logger(__name__)


class AWSBackend:
    def __init__(
        self,
        *,
        vault: VaultClient,
        path: str = "aws",
        rules: AWSRules | None = None,
        default_ttl: timedelta = timedelta(minutes=15),
    ) -> None:
        self.path = require_path(path)
        self.rules = rules if rules is not None else AWSRules()
        self.default_ttl = default_ttl
        self._vault = vault
        self._template = compile_policy_template(_POLICY_TEMPLATE)

    @property
    def name(self) -> str:
        return "aws"

    def admit(self, namespace: str, name: str, annotations: Mapping[str, str]) -> bool:
        role_arn = annotations.get(AWS_ROLE_ANNOTATION, "")
        if not role_arn:
            return False

        try:
            return self.rules.allow(namespace, role_arn)
        except (ParseError, PatternSyntaxError) as e:
            log.error(
                "aws_rules_evaluation_failed",
                namespace=namespace,
                serviceaccount=name,
                role_arn=role_arn,
                error=str(e),
            )
            return False

    async def write_role(self, key: str, annotations: Mapping[str, str]) -> None:
        await self._vault.write(
            f"{self.path}/roles/{key}",
            {
                "default_sts_ttl": int(self.default_ttl.total_seconds()),
                "role_arns": [annotations[AWS_ROLE_ANNOTATION]],
                "credential_type": "assumed_role",
            },
        )

    async def delete_role(self, key: str) -> None:
        await self._vault.delete(f"{self.path}/roles/{key}")

    async def list_roles(self) -> list[str]:
        return await self._vault.list(f"{self.path}/roles/")

    def render_policy(self, key: str) -> str:
        return self._template.render(path=self.path, name=key)
