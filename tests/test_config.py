"""
tests.test_config

Operator configuration file loading and backend construction.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from credbroker.backends import AWSBackend, GCPBackend
from credbroker.backends.registry import build_backends
from credbroker.errors import ConfigError
from credbroker.operator.config import load_config, load_config_from_file, parse_duration

CONFIG = """
kubernetesAuthBackend: k8s-prod
prefix: acme
aws:
  enabled: true
  path: aws-prod
  defaultTTL: 1h30m
  rules:
    - namespacePatterns: ["team-*"]
      roleNamePatterns: ["team-*"]
      accountIDs: ["000000000000"]
gcp:
  enabled: true
  rules:
    - namespacePatterns: ["team-*"]
      projects: ["my-project"]
"""


def test_defaults() -> None:
    cfg = load_config(None)
    assert cfg.kubernetes_auth_backend == "kubernetes"
    assert cfg.prefix == "vkcc"
    assert cfg.aws.enabled is False
    assert cfg.aws.path == "aws"
    assert cfg.aws.default_ttl == timedelta(minutes=15)
    assert len(cfg.aws.rules) == 0
    assert cfg.gcp.path == "gcp"


def test_load_from_file(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    cfg = load_config_from_file(str(path))

    assert cfg.kubernetes_auth_backend == "k8s-prod"
    assert cfg.prefix == "acme"
    assert cfg.aws.default_ttl == timedelta(hours=1, minutes=30)
    assert cfg.aws.rules.allow("team-a", "arn:aws:iam::000000000000:role/team-a")
    assert cfg.gcp.rules.allow("team-a", "my-project")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("15m", timedelta(minutes=15)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("900s", timedelta(seconds=900)),
        ("1.5h", timedelta(minutes=90)),
        ("500ms", timedelta(milliseconds=500)),
        ("120", timedelta(seconds=120)),
        (60, timedelta(minutes=1)),
        (timedelta(hours=2), timedelta(hours=2)),
    ],
)
def test_parse_duration(value, expected) -> None:
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "fifteen", "15x", "m15", "-5m", True, None])
def test_parse_duration_rejects(value) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


@pytest.mark.parametrize(
    "data",
    [
        {"prefix": "my_prefix"},
        {"prefix": ""},
        {"aws": {"defaultTTL": "soon"}},
        {"aws": {"unknown": True}},
        {"aws": {"rules": [{"namespacePatterns": ["[a-"], "roleNamePatterns": ["*"]}]}},
        {"gcp": {"rules": [{"namespacePatterns": ["ok"], "projects": ["p"]}, {"namespacePatterns": ["\\"]}]}},
    ],
)
def test_invalid_config(data) -> None:
    with pytest.raises(ConfigError):
        load_config(data)


def test_load_from_file_errors(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config_from_file("")
    with pytest.raises(ConfigError):
        load_config_from_file(str(tmp_path / "missing.yaml"))

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config_from_file(str(bad))


def test_build_backends(vault) -> None:
    cfg = load_config({"aws": {"enabled": True, "path": "aws-prod"}, "gcp": {"enabled": True}})
    backends = build_backends(cfg, vault.client())

    assert [b.name for b in backends] == ["aws", "gcp"]
    assert isinstance(backends[0], AWSBackend)
    assert backends[0].path == "aws-prod"
    assert isinstance(backends[1], GCPBackend)


def test_build_backends_requires_one_enabled(vault) -> None:
    with pytest.raises(ConfigError):
        build_backends(load_config({}), vault.client())
