"""
credbroker.backends.gcp

Vault GCP secret backend (rolesets issuing OAuth2 access tokens).

Responsibilities:
- Admit ServiceAccounts annotated with a project and well-formed bindings that
  the GCP rules allow.
- Write/delete/list `<path>/roleset/<key>` rolesets.
- Render the policy granting the roleset's token/key paths and read on the roleset.
"""

from __future__ import annotations

from collections.abc import Mapping

import yaml

from credbroker.backends.base import compile_policy_template, require_path
from credbroker.errors import ParseError, PatternSyntaxError
from credbroker.observability.logging import get_logger
from credbroker.rules.models import GCPRules
from credbroker.vault.client import VaultClient

GCP_PROJECT_ANNOTATION = "vault.uw.systems/gcp-project"
GCP_BINDINGS_ANNOTATION = "vault.uw.systems/gcp-bindings"

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

_POLICY_TEMPLATE = """
path "{{ path }}/token/{{ name }}" {
  capabilities = ["create", "read", "update", "delete", "list"]
}
path "{{ path }}/key/{{ name }}" {
  capabilities = ["create", "read", "update", "delete", "list"]
}
path "{{ path }}/roleset/{{ name }}" {
  capabilities = ["read"]
}
"""

log = get_logger(__name__)


def parse_bindings(text: str) -> dict[str, list[str]]:
    """
    Parse the bindings annotation: a YAML mapping of GCP resource name to a
    non-empty list of role names.

    Raises:
        ParseError: the text isn't YAML, isn't a mapping, is empty, or a resource
            has no roles.
    """

    try:
        raw = yaml.safe_load(text) if text else None
    except yaml.YAMLError as e:
        raise ParseError(f"bindings are not valid yaml: {e}") from e

    if raw is None or raw == {}:
        raise ParseError("bindings are empty")
    if not isinstance(raw, dict):
        raise ParseError(f"bindings must be a mapping of resource to roles, got {type(raw).__name__}")

    bindings: dict[str, list[str]] = {}
    for resource, roles in raw.items():
        if not isinstance(roles, list):
            raise ParseError(f"roles must be a list for resource {resource}: {roles!r}")
        if not roles:
            raise ParseError(f"roles can't be empty for resource {resource}")
        if not all(isinstance(role, str) for role in roles):
            raise ParseError(f"roles must be strings for resource {resource}: {roles!r}")
        bindings[str(resource)] = list(roles)
    return bindings


def render_bindings(bindings: Mapping[str, list[str]]) -> str:
    """
    Render bindings in the HCL form Vault expects for a roleset, one block per resource.
    """

    return "\n\n".join(_render_binding(resource, roles) for resource, roles in bindings.items())


def _render_binding(resource: str, roles: list[str]) -> str:
    quoted = ", ".join(f'"{role}"' for role in roles)
    return f'resource "{resource}" {{\n  roles = [{quoted}]\n}}\n'


class GCPBackend:
    def __init__(
        self,
        *,
        vault: VaultClient,
        path: str = "gcp",
        rules: GCPRules | None = None,
    ) -> None:
        self.path = require_path(path)
        self.rules = rules if rules is not None else GCPRules()
        self._vault = vault
        self._template = compile_policy_template(_POLICY_TEMPLATE)

    @property
    def name(self) -> str:
        return "gcp"

    def admit(self, namespace: str, name: str, annotations: Mapping[str, str]) -> bool:
        project = annotations.get(GCP_PROJECT_ANNOTATION, "")
        if not project:
            return False

        try:
            parse_bindings(annotations.get(GCP_BINDINGS_ANNOTATION, ""))
        except ParseError as e:
            log.error(
                "gcp_bindings_rejected",
                namespace=namespace,
                serviceaccount=name,
                error=str(e),
            )
            return False

        try:
            return self.rules.allow(namespace, project)
        except PatternSyntaxError as e:
            log.error(
                "gcp_rules_evaluation_failed",
                namespace=namespace,
                serviceaccount=name,
                project=project,
                error=str(e),
            )
            return False

    async def write_role(self, key: str, annotations: Mapping[str, str]) -> None:
        bindings = parse_bindings(annotations.get(GCP_BINDINGS_ANNOTATION, ""))
        await self._vault.write(
            f"{self.path}/roleset/{key}",
            {
                "secret_type": "access_token",
                "project": annotations[GCP_PROJECT_ANNOTATION],
                "bindings": render_bindings(bindings),
                "token_scopes": [CLOUD_PLATFORM_SCOPE],
            },
        )

    async def delete_role(self, key: str) -> None:
        await self._vault.delete(f"{self.path}/roleset/{key}")

    async def list_roles(self) -> list[str]:
        return await self._vault.list(f"{self.path}/roleset/")

    def render_policy(self, key: str) -> str:
        return self._template.render(path=self.path, name=key)


# --- Module Notes -----------------------------------------------------------
# Bindings render in annotation order: re-writing an unchanged ServiceAccount
# produces an identical roleset, and Vault rebinds on any change.
