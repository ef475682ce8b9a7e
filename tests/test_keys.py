"""
tests.test_keys

Managed key encoding and ownership checks.
"""

from __future__ import annotations

import pytest

from credbroker.errors import ConfigError, ParseError
from credbroker.keys import KeyCodec, ManagedKey


def test_encode_decode() -> None:
    codec = KeyCodec(prefix="vkcc", backend="aws")
    key = codec.encode("team-a", "svc")
    assert key == "vkcc_aws_team-a_svc"
    assert codec.decode(key) == ManagedKey("vkcc", "aws", "team-a", "svc")


@pytest.mark.parametrize(
    "key",
    [
        "other_aws_team-a_svc",
        "vkcc_gcp_team-a_svc",
        "vkcc_aws_team-a",
        "vkcc_aws_team-a_svc_extra",
        "vkcc_aws__svc",
        "vkcc_aws_team-a_",
        "default",
        "",
    ],
)
def test_decode_rejects_foreign_keys(key: str) -> None:
    assert KeyCodec(prefix="vkcc", backend="aws").decode(key) is None


@pytest.mark.parametrize(("prefix", "backend"), [("", "aws"), ("vk_cc", "aws"), ("vkcc", ""), ("vkcc", "a_b")])
def test_codec_rejects_invalid_configuration(prefix: str, backend: str) -> None:
    with pytest.raises(ConfigError):
        KeyCodec(prefix=prefix, backend=backend)


def test_encode_rejects_fields_with_separator() -> None:
    codec = KeyCodec(prefix="vkcc", backend="aws")
    with pytest.raises(ParseError):
        codec.encode("team_a", "svc")
    with pytest.raises(ParseError):
        codec.encode("team-a", "")
