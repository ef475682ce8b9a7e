"""
credbroker.operator.config

Operator configuration file (YAML): enabled backends, mount paths and rules.

Responsibilities:
- Parse the file into immutable pydantic models with the documented defaults.
- Accept Go-style durations (`15m`, `1h30m`) for TTLs.
- Reject configurations the key codec or the rule engine can't work with.

Example:

    kubernetesAuthBackend: kubernetes
    prefix: vkcc
    aws:
      enabled: true
      defaultTTL: 15m
      rules:
        - namespacePatterns: ["team-*"]
          roleNamePatterns: ["team-*"]
          accountIDs: ["000000000000"]
    gcp:
      enabled: false
"""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from credbroker.errors import ConfigError, PatternSyntaxError
from credbroker.keys import SEPARATOR
from credbroker.rules import patterns
from credbroker.rules.models import AWSRules, GCPRules

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration given as seconds (int/float), a timedelta, or a Go-style
    string such as `15m`, `1h30m` or `900s`.
    """

    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, int | float):
        return timedelta(seconds=value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if text.isdigit():
        return timedelta(seconds=int(text))

    seconds = 0.0
    pos = 0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        seconds += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=seconds)


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class AWSConfig(_Section):
    enabled: bool = False
    path: str = "aws"
    default_ttl: timedelta = Field(default=timedelta(minutes=15), alias="defaultTTL")
    rules: AWSRules = Field(default_factory=AWSRules)

    @field_validator("default_ttl", mode="before")
    @classmethod
    def _parse_ttl(cls, v: Any) -> timedelta:
        return parse_duration(v)


class GCPConfig(_Section):
    enabled: bool = False
    path: str = "gcp"
    rules: GCPRules = Field(default_factory=GCPRules)


class FileConfig(_Section):
    kubernetes_auth_backend: str = Field(default="kubernetes", alias="kubernetesAuthBackend")
    prefix: str = "vkcc"
    aws: AWSConfig = Field(default_factory=AWSConfig)
    gcp: GCPConfig = Field(default_factory=GCPConfig)

    @field_validator("prefix")
    @classmethod
    def _check_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("prefix must not be empty")
        if SEPARATOR in v:
            raise ValueError(f"prefix must not contain a {SEPARATOR!r}: {v}")
        return v

    def all_patterns(self) -> list[str]:
        found: list[str] = []
        for aws_rule in self.aws.rules:
            found.extend(aws_rule.namespace_patterns)
            found.extend(aws_rule.role_name_patterns)
        for gcp_rule in self.gcp.rules:
            found.extend(gcp_rule.namespace_patterns)
        return found


def load_config(data: dict[str, Any] | None) -> FileConfig:
    try:
        cfg = FileConfig.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

    # Surface malformed globs at startup rather than at the first matching event.
    for pattern in cfg.all_patterns():
        try:
            patterns.validate(pattern)
        except PatternSyntaxError as e:
            raise ConfigError(str(e)) from e
    return cfg


def load_config_from_file(file: str) -> FileConfig:
    if not file:
        raise ConfigError("must provide a config file")
    try:
        text = Path(file).read_text()
    except OSError as e:
        raise ConfigError(f"can't read config file {file}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"can't parse config file {file}: {e}") from e
    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"config file {file} must contain a mapping")
    return load_config(data)
