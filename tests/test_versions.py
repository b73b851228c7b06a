import pytest

from aerogate.core.errors import ErrorKind, StructuralError
from aerogate.core.oracles import DottedVersionOracle
from aerogate.core.versions import (
    compare_versions, get_image_version, is_enterprise_image, parse_image_reference,
)


@pytest.mark.parametrize("image, expected", [
    ("aerospike/aerospike-server-enterprise:8.0.0.2", "8.0.0.2"),
    ("aerospike/aerospike-server-enterprise:7.1.0.10", "7.1.0.10"),
    ("registry.example.com:5000/aerospike/aerospike-server-enterprise:6.4.0.1", "6.4.0.1"),
    ("aerospike-server-enterprise:ee-7.0.0.5-slim", "7.0.0.5"),
    ("aerospike/aerospike-server-enterprise:7.2.0.1@sha256:abc123", "7.2.0.1"),
])
def test_image_version_resolution(image, expected):
    """VERSION TEST: the dotted run inside the tag is the server version."""
    assert get_image_version(image) == expected


@pytest.mark.parametrize("image", [
    "aerospike/aerospike-server-enterprise:latest",
    "aerospike/aerospike-server-enterprise",
    "registry.example.com:5000/aerospike/aerospike-server-enterprise",
])
def test_image_without_pinned_version_is_rejected(image):
    with pytest.raises(StructuralError) as exc:
        get_image_version(image)
    assert exc.value.kind == ErrorKind.STRUCTURAL
    assert "mandatory" in exc.value.message
    assert exc.value.field == "spec.image"


def test_tag_without_digits_is_invalid_format():
    with pytest.raises(StructuralError, match="invalid image version format"):
        get_image_version("aerospike/aerospike-server-enterprise:stable")


def test_registry_port_is_not_a_tag():
    registry, name, tag = parse_image_reference("localhost:5000/aerospike/server")
    assert registry == "localhost:5000"
    assert name == "aerospike/server"
    assert tag == ""


@pytest.mark.parametrize("left, right, expected", [
    ("7.1.0.0", "6.0.0.0", 1),
    ("6.0", "6.0.0.0", 0),
    ("2.2.0", "2.21.0", -1),
    ("10.0.0.0", "9.9.9.9", 1),
])
def test_compare_versions_is_numeric(left, right, expected):
    assert compare_versions(left, right) == expected


def test_enterprise_detection():
    assert is_enterprise_image("aerospike/aerospike-server-enterprise:7.0.0.1")
    assert not is_enterprise_image("aerospike/aerospike-server:7.0.0.1")


def test_dotted_oracle_allows_any_parseable_transition():
    oracle = DottedVersionOracle()
    assert oracle.is_valid_upgrade("7.1.0.0", "6.4.0.0") is None
    assert oracle.is_valid_upgrade("7.1.0.0", "not-a-version") is not None
