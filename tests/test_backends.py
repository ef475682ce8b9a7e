"""
tests.test_backends

AWS and GCP backends: admission, Vault payloads and policies.

Responsibilities:
- Admission decisions per annotation and rule set.
- Role payloads written to Vault and policies rendered per key.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from credbroker.backends import (
    AWS_ROLE_ANNOTATION,
    GCP_BINDINGS_ANNOTATION,
    GCP_PROJECT_ANNOTATION,
    AWSBackend,
    GCPBackend,
    SecretBackend,
)
from credbroker.backends.gcp import parse_bindings, render_bindings
from credbroker.errors import ConfigError, ParseError
from credbroker.rules import AWSRules, GCPRules

VALID_BINDINGS = """
"//cloudresourcemanager.googleapis.com/projects/my-project":
  - "roles/dns.admin"
  - "roles/storage.admin"
"""

INVALID_BINDINGS = """
- "//cloudresourcemanager.googleapis.com/projects/my-project":
  - "roles/dns.admin"
  - "roles/storage.admin"
"""


def gcp_annotations(project: str | None = "my-project", bindings: str | None = VALID_BINDINGS) -> dict[str, str]:
    annotations = {}
    if project is not None:
        annotations[GCP_PROJECT_ANNOTATION] = project
    if bindings is not None:
        annotations[GCP_BINDINGS_ANNOTATION] = bindings
    return annotations


def test_backends_satisfy_protocol(vault) -> None:
    client = vault.client()
    assert isinstance(AWSBackend(vault=client), SecretBackend)
    assert isinstance(GCPBackend(vault=client), SecretBackend)


def test_backends_reject_empty_path(vault) -> None:
    with pytest.raises(ConfigError):
        AWSBackend(vault=vault.client(), path="/")
    with pytest.raises(ConfigError):
        GCPBackend(vault=vault.client(), path="")


def test_gcp_admit_without_rules(vault) -> None:
    gb = GCPBackend(vault=vault.client())

    assert gb.admit("foobar", "", gcp_annotations())
    assert not gb.admit("foobar", "", gcp_annotations(project=""))
    assert not gb.admit("foobar", "", gcp_annotations(bindings=None))
    assert not gb.admit("foobar", "", gcp_annotations(bindings=INVALID_BINDINGS))


def test_gcp_admit_with_rules(vault) -> None:
    rules = GCPRules.model_validate(
        [
            {"namespacePatterns": ["foo", "bar-*"], "projects": ["my-project", "my-other-project"]},
            {"namespacePatterns": ["kube-system", "foo?"], "projects": ["another-project"]},
            {"projects": ["fuubar"]},
            {"namespacePatterns": ["fuubar"]},
        ]
    )
    gb = GCPBackend(vault=vault.client(), rules=rules)

    assert gb.admit("bar-foo", "", gcp_annotations("my-project"))
    assert gb.admit("foo", "", gcp_annotations("my-project"))
    # The second rule is evaluated.
    assert gb.admit("kube-system", "", gcp_annotations("another-project"))
    assert gb.admit("fooz", "", gcp_annotations("another-project"))
    assert not gb.admit("foo", "", gcp_annotations("another-project"))
    # Not a substring match.
    assert not gb.admit("foobar", "", gcp_annotations("my-project"))
    # A rule without namespace patterns doesn't admit.
    assert not gb.admit("foo", "", gcp_annotations("fuubar"))
    # A rule without projects doesn't admit.
    assert not gb.admit("fuubar", "", gcp_annotations("my-project"))


def test_gcp_admit_denies_on_bad_pattern(vault) -> None:
    rules = GCPRules.model_validate([{"namespacePatterns": ["[a-"], "projects": ["my-project"]}])
    assert not GCPBackend(vault=vault.client(), rules=rules).admit("foo", "svc", gcp_annotations())


def test_parse_bindings_errors() -> None:
    for text in ("", "{}", "[]", "a: b", "a: []", "a: [1]", "a: [b"):
        with pytest.raises(ParseError):
            parse_bindings(text)


def test_render_bindings_keeps_annotation_order() -> None:
    bindings = parse_bindings(VALID_BINDINGS + '"//second": ["roles/viewer"]\n')
    assert render_bindings(bindings) == (
        'resource "//cloudresourcemanager.googleapis.com/projects/my-project" {\n'
        '  roles = ["roles/dns.admin", "roles/storage.admin"]\n'
        "}\n"
        "\n\n"
        'resource "//second" {\n'
        '  roles = ["roles/viewer"]\n'
        "}\n"
    )


@pytest.mark.asyncio
async def test_gcp_write_role(vault) -> None:
    gb = GCPBackend(vault=vault.client(), path="gcp-prod")
    await gb.write_role("vkcc_gcp_foo_svc", gcp_annotations())

    data = vault.data["gcp-prod/roleset/vkcc_gcp_foo_svc"]
    assert data["secret_type"] == "access_token"
    assert data["project"] == "my-project"
    assert data["token_scopes"] == ["https://www.googleapis.com/auth/cloud-platform"]
    assert 'roles = ["roles/dns.admin", "roles/storage.admin"]' in data["bindings"]

    assert await gb.list_roles() == ["vkcc_gcp_foo_svc"]
    await gb.delete_role("vkcc_gcp_foo_svc")
    await gb.delete_role("vkcc_gcp_foo_svc")
    assert await gb.list_roles() == []


def test_gcp_policy_grants_only_the_key(vault) -> None:
    policy = GCPBackend(vault=vault.client()).render_policy("vkcc_gcp_foo_svc")
    assert 'path "gcp/token/vkcc_gcp_foo_svc"' in policy
    assert 'path "gcp/key/vkcc_gcp_foo_svc"' in policy
    assert 'path "gcp/roleset/vkcc_gcp_foo_svc" {\n  capabilities = ["read"]\n}' in policy
    assert "*" not in policy


def test_aws_admit(vault) -> None:
    rules = AWSRules.model_validate(
        [{"namespacePatterns": ["team-*"], "roleNamePatterns": ["team-*"], "accountIDs": ["000000000000"]}]
    )
    ab = AWSBackend(vault=vault.client(), rules=rules)

    assert ab.admit("team-a", "svc", {AWS_ROLE_ANNOTATION: "arn:aws:iam::000000000000:role/team-a"})
    assert not ab.admit("team-a", "svc", {})
    assert not ab.admit("team-a", "svc", {AWS_ROLE_ANNOTATION: ""})
    assert not ab.admit("team-a", "svc", {AWS_ROLE_ANNOTATION: "not-an-arn"})
    assert not ab.admit("other", "svc", {AWS_ROLE_ANNOTATION: "arn:aws:iam::000000000000:role/team-a"})


@pytest.mark.asyncio
async def test_aws_write_role(vault) -> None:
    ab = AWSBackend(vault=vault.client(), default_ttl=timedelta(minutes=15))
    arn = "arn:aws:iam::000000000000:role/team-a"
    await ab.write_role("vkcc_aws_team-a_svc", {AWS_ROLE_ANNOTATION: arn})

    assert vault.data["aws/roles/vkcc_aws_team-a_svc"] == {
        "default_sts_ttl": 900,
        "role_arns": [arn],
        "credential_type": "assumed_role",
    }


def test_aws_policy(vault) -> None:
    policy = AWSBackend(vault=vault.client(), path="aws-dev").render_policy("k")
    assert 'path "aws-dev/creds/k" {\n  capabilities = ["create", "read", "update", "delete", "list"]\n}' in policy
    assert 'path "aws-dev/sts/k"' in policy


# --- Module Notes -----------------------------------------------------------
# Backend tests use the in-memory Vault from conftest through the real client.
