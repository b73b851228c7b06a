import pytest

from aerogate.core.config_tree import (
    ConfigTree, Kind, LookupState, effective_racks, lookup, merge_config,
)
from aerogate.core.errors import StructuralError
from aerogate.core.models import (
    IntOrPercent, PersistentVolumeSource, Rack, RackConfig, StorageSpec, Volume, VolumeMode, VolumeSource,
)
from aerogate.core.paths import PathResolver, is_path_parent_or_same


def _pv(name, path, mode=VolumeMode.FILESYSTEM):
    return Volume(name=name, attachment_path=path,
                  source=VolumeSource(persistent_volume=PersistentVolumeSource(volume_mode=mode)))


# --- Lookup ---

def test_lookup_reports_three_states():
    """TRI-STATE TEST: absent, wrong type and present are told apart."""
    config = {"service": {"proto-fd-max": "lots"}, "network": []}

    assert lookup(config, ["security"]).state == LookupState.ABSENT
    assert lookup(config, ["service", "proto-fd-max"], Kind.INT).state == LookupState.WRONG_TYPE
    assert lookup(config, ["network", "service"]).state == LookupState.WRONG_TYPE
    assert lookup(config, ["service"], Kind.MAP).present


def test_lookup_accepts_integral_floats():
    result = lookup({"replication-factor": 3.0}, ["replication-factor"], Kind.INT)
    assert result.present
    assert result.value == 3


def test_lookup_does_not_treat_booleans_as_integers():
    assert lookup({"port": True}, ["port"], Kind.INT).wrong_type


def test_require_names_the_path():
    tree = ConfigTree({"service": {}})
    with pytest.raises(StructuralError, match="aerospikeConfig.network not present"):
        tree.network().require()


def test_missing_replication_factor_uses_default():
    tree = ConfigTree({"namespaces": [{"name": "test"}]})
    assert tree.namespace("test").replication_factor(default=2) == 2


def test_namespace_views_skip_non_mapping_entries():
    tree = ConfigTree({"namespaces": [{"name": "a"}, "garbage", {"name": "b"}]})
    assert [ns.name for ns in tree.namespace_entries()] == ["a", "b"]


def test_device_tokens_split_shadow_devices():
    tree = ConfigTree({"namespaces": [{
        "name": "test",
        "storage-engine": {"type": "device", "devices": ["/dev/xvdb /dev/xvdf", "/dev/xvdc"]},
    }]})
    assert tree.namespace("test").device_tokens() == ["/dev/xvdb", "/dev/xvdf", "/dev/xvdc"]


@pytest.mark.parametrize("security, enabled", [
    (None, False),
    ({}, True),
    ({"enable-security": False}, False),
    ({"enable-security": True}, True),
])
def test_security_enabled(security, enabled):
    raw = {"service": {}}
    if security is not None:
        raw["security"] = security
    assert ConfigTree(raw).security_enabled() is enabled


def test_tls_file_paths_split_ca_material():
    tree = ConfigTree({"network": {"tls": [
        {"name": "a", "cert-file": "/etc/tls/cert.pem", "key-file": "/etc/tls/key.pem", "ca-path": "/etc/ca"},
        {"name": "b", "ca-file": "/etc/ca2/ca.pem"},
    ]}})
    non_ca, ca = tree.tls_file_paths()
    assert non_ca == ["/etc/tls/cert.pem", "/etc/tls/key.pem"]
    assert ca == ["/etc/ca/", "/etc/ca2/ca.pem"]


def test_migrate_fill_delay_must_be_integer():
    with pytest.raises(StructuralError):
        ConfigTree({"service": {"migrate-fill-delay": "soon"}}).migrate_fill_delay()


# --- Rack resolution ---

def test_merge_config_merges_named_lists_by_name():
    base = {
        "service": {"proto-fd-max": 15000},
        "namespaces": [{"name": "test", "replication-factor": 2}, {"name": "bar", "replication-factor": 3}],
    }
    override = {"namespaces": [{"name": "test", "strong-consistency": True}, {"name": "new"}]}

    merged = merge_config(base, override)

    assert merged["service"] == {"proto-fd-max": 15000}
    assert merged["namespaces"] == [
        {"name": "test", "replication-factor": 2, "strong-consistency": True},
        {"name": "bar", "replication-factor": 3},
        {"name": "new"},
    ]
    # inputs are left untouched
    assert "strong-consistency" not in base["namespaces"][0]


def test_no_declared_racks_yields_default_rack():
    storage = StorageSpec(volumes=(_pv("workdir", "/opt/aerospike"),))
    racks = effective_racks({"service": {}}, storage, RackConfig(), default_rack_id=0)

    assert len(racks) == 1
    assert racks[0].id == 0
    assert racks[0].storage is storage


def test_rack_storage_overrides_cluster_storage_only_when_it_has_volumes():
    cluster = StorageSpec(volumes=(_pv("workdir", "/opt/aerospike"),))
    own = StorageSpec(volumes=(_pv("data", "/mnt/data"),))
    rack_config = RackConfig(racks=(Rack(id=1, storage=own), Rack(id=2, storage=StorageSpec())))

    racks = {r.id: r for r in effective_racks({}, cluster, rack_config)}

    assert racks[1].storage is own
    assert racks[2].storage is cluster


# --- Paths ---

@pytest.mark.parametrize("parent, child, expected", [
    ("/opt/aerospike", "/opt/aerospike", True),
    ("/opt/aerospike", "/opt/aerospike/smd", True),
    ("/opt/aerospike/", "/opt/aerospike/smd/", True),
    ("/opt/aero", "/opt/aerospike", False),
    ("/opt/aerospike/smd", "/opt/aerospike", False),
    ("/", "/etc/aerospike", True),
])
def test_is_path_parent_or_same(parent, child, expected):
    assert is_path_parent_or_same(parent, child) is expected


def test_resolver_separates_block_and_filesystem_volumes():
    storage = StorageSpec(volumes=(
        _pv("workdir", "/opt/aerospike"),
        _pv("ns", "/dev/xvdb", VolumeMode.BLOCK),
        Volume(name="secrets", attachment_path="/etc/secrets", source=VolumeSource(secret_name="s")),
    ))
    resolver = PathResolver(storage)

    assert resolver.block_devices() == ["/dev/xvdb"]
    assert resolver.filesystem_mounts() == ["/opt/aerospike"]
    assert resolver.filesystem_mounts(only_persistent=False) == ["/opt/aerospike", "/etc/secrets"]
    assert resolver.is_file_covered("/opt/aerospike/data/test.dat")
    assert not resolver.is_file_covered("/etc/secrets/features.conf")
    assert resolver.volume_for_path("/etc/secrets").name == "secrets"


# --- IntOrPercent ---

@pytest.mark.parametrize("value, total, round_up, expected", [
    (2, 10, False, 2),
    ("25%", 10, False, 2),
    ("25%", 10, True, 3),
    ("100%", 7, True, 7),
])
def test_int_or_percent_scaling(value, total, round_up, expected):
    assert IntOrPercent(value).scaled(total, round_up) == expected


def test_int_or_percent_rejects_garbage():
    with pytest.raises(ValueError):
        IntOrPercent("two").scaled(10)
