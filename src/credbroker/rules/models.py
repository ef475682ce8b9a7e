"""
credbroker.rules.models

Authorization rules deciding which namespaces may obtain which cloud identities.

Responsibilities:
- Define AWS (role ARN) and GCP (project) rules as immutable models loaded from YAML.
- Evaluate an ordered rule list: the first matching rule wins.
- Keep the "empty rule list permits everything" default explicit.

Dimension semantics:
- AWS: an empty `accountIDs` list is a wildcard; empty namespace or role-name
  pattern lists never match.
- GCP: empty namespace pattern or project lists never match.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, RootModel

from credbroker.errors import ParseError
from credbroker.rules import patterns

_ROLE_RESOURCE_PREFIX = "role/"


@dataclass(frozen=True, slots=True)
class Arn:
    partition: str
    service: str
    region: str
    account_id: str
    resource: str

    @property
    def role_name(self) -> str | None:
        # Only IAM role resources carry a role name; anything else can't match a rule.
        if self.resource.startswith(_ROLE_RESOURCE_PREFIX):
            return self.resource[len(_ROLE_RESOURCE_PREFIX) :]
        return None


def parse_arn(value: str) -> Arn:
    """
    Parse `arn:partition:service:region:account-id:resource`.

    The resource part may itself contain colons.
    """

    if not value.startswith("arn:"):
        raise ParseError(f"arn: invalid prefix: {value!r}")
    sections = value.split(":", 5)
    if len(sections) != 6:
        raise ParseError(f"arn: not enough sections: {value!r}")
    _, partition, service, region, account_id, resource = sections
    return Arn(
        partition=partition,
        service=service,
        region=region,
        account_id=account_id,
        resource=resource,
    )


def _matches_any(candidate: str, globs: tuple[str, ...]) -> bool:
    # An empty pattern list never matches. Pattern errors propagate.
    return any(patterns.match(p, candidate) for p in globs)


class AWSRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    namespace_patterns: tuple[str, ...] = Field(default=(), alias="namespacePatterns")
    role_name_patterns: tuple[str, ...] = Field(default=(), alias="roleNamePatterns")
    account_ids: tuple[str, ...] = Field(default=(), alias="accountIDs")

    def allows(self, namespace: str, role_arn: Arn) -> bool:
        account_allowed = self.matches_account_id(role_arn.account_id)
        namespace_allowed = _matches_any(namespace, self.namespace_patterns)

        role_allowed = False
        role_name = role_arn.role_name
        if role_name is not None:
            role_allowed = _matches_any(role_name, self.role_name_patterns)

        return account_allowed and namespace_allowed and role_allowed

    def matches_account_id(self, account_id: str) -> bool:
        if not self.account_ids:
            return True
        return account_id in self.account_ids


class AWSRules(RootModel[tuple[AWSRule, ...]]):
    model_config = ConfigDict(frozen=True)

    root: tuple[AWSRule, ...] = ()

    def __iter__(self):  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def allow(self, namespace: str, role_arn: str) -> bool:
        """
        True if the first rule allowing `namespace` to assume `role_arn` exists,
        or if there are no rules at all.

        Raises:
            ParseError: `role_arn` is not a valid ARN.
            PatternSyntaxError: a rule pattern is malformed.
        """

        arn = parse_arn(role_arn)
        for rule in self.root:
            if rule.allows(namespace, arn):
                return True
        return len(self.root) == 0


class GCPRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    namespace_patterns: tuple[str, ...] = Field(default=(), alias="namespacePatterns")
    projects: tuple[str, ...] = ()

    def allows(self, namespace: str, project: str) -> bool:
        return _matches_any(namespace, self.namespace_patterns) and project in self.projects


class GCPRules(RootModel[tuple[GCPRule, ...]]):
    model_config = ConfigDict(frozen=True)

    root: tuple[GCPRule, ...] = ()

    def __iter__(self):  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def allow(self, namespace: str, project: str) -> bool:
        for rule in self.root:
            if rule.allows(namespace, project):
                return True
        return len(self.root) == 0


# --- Module Notes -----------------------------------------------------------
# Rules are evaluated lazily: a malformed pattern in rule N only surfaces when
# rules 0..N-1 did not match. `credbroker.operator.config` validates every pattern
# at load time so operators see the mistake at startup instead.
