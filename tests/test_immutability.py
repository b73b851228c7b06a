"""
Immutability phase: frozen fields compared between the accepted and the
incoming descriptor.
"""

import copy

import pytest

from aerogate.core.errors import ErrorKind, ImmutabilityViolation
from aerogate.core.models import PersistentVolumeSource, StorageSpec, Volume, VolumeSource
from aerogate.rules.immutability import check_storage_change


def _volume(doc, name):
    return next(v for v in doc["spec"]["storage"]["volumes"] if v["name"] == name)


def _network(doc):
    return doc["spec"]["aerospikeConfig"]["network"]


def _tls(doc, name="tls-a", ca_file="/etc/aerospike/secret/cacert.pem"):
    entry = {
        "name": name,
        "cert-file": "/etc/aerospike/secret/svc_cluster_chain.pem",
        "key-file": "/etc/aerospike/secret/svc_key.pem",
    }
    if ca_file:
        entry["ca-file"] = ca_file
    _network(doc)["tls"] = [entry]
    _network(doc)["service"].update({"tls-name": name, "tls-port": 4333})
    return doc


def test_unchanged_descriptor_is_admitted(engine, manifest, build):
    """IDEMPOTENCY TEST: diffing a descriptor against itself never rejects."""
    old = build(manifest)
    new = build(copy.deepcopy(manifest))
    result = engine.admit(new, old)
    assert result.allowed, result.message


# --- Storage ---

@pytest.mark.parametrize("change", [
    lambda pv: pv.update(storageClass="gp3"),
    lambda pv: pv.update(size="10Gi"),
])
def test_persistent_volume_backing_is_frozen(engine, manifest, build, change):
    old = build(manifest)
    change(_volume(manifest, "workdir")["source"]["persistentVolume"])

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert result.field_path == "spec.storage.volumes[workdir].source"


def test_cascade_delete_may_change(engine, manifest, build):
    old = build(manifest)
    _volume(manifest, "workdir")["cascadeDelete"] = False
    manifest["spec"]["storage"]["filesystemVolumePolicy"]["cascadeDelete"] = False
    assert engine.admit(build(manifest), old).allowed


def test_only_non_persistent_volumes_can_be_added(engine, manifest, build):
    old = build(manifest)
    volumes = manifest["spec"]["storage"]["volumes"]

    volumes.append({"name": "extra-secret", "aerospike": {"path": "/etc/extra"},
                    "source": {"secret": {"secretName": "extra"}}})
    assert engine.admit(build(manifest), old).allowed

    volumes.append({"name": "data", "aerospike": {"path": "/mnt/data"},
                    "source": {"persistentVolume": {"storageClass": "ssd", "size": "1Gi"}}})
    result = engine.admit(build(manifest), old)
    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot add persistent volume data" in result.message


def test_persistent_volume_cannot_be_removed():
    pv = Volume(name="data", attachment_path="/mnt/data",
                source=VolumeSource(persistent_volume=PersistentVolumeSource(size="1Gi")))
    with pytest.raises(ImmutabilityViolation, match="cannot remove persistent volume data"):
        check_storage_change(StorageSpec(volumes=(pv,)), StorageSpec())


def test_rack_storage_source_change_is_rejected(engine, manifest, build):
    """Each rack's own volumes are compared with the same rack in the old descriptor."""
    manifest["spec"]["rackConfig"] = {
        "racks": [{"id": 1, "storage": copy.deepcopy(manifest["spec"]["storage"])}, {"id": 2}],
    }
    old = build(manifest)

    rack_secret = next(v for v in manifest["spec"]["rackConfig"]["racks"][0]["storage"]["volumes"]
                       if v["name"] == "aerospike-config-secret")
    rack_secret["source"] = {"configMap": {"name": "aerospike-config"}}

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert result.field_path == "spec.rackConfig.racks[1].storage.volumes[aerospike-config-secret].source"


# --- Racks ---

def test_rack_identity_is_frozen(engine, manifest, build):
    manifest["spec"]["rackConfig"] = {"racks": [{"id": 1, "zone": "us-west-2a"}, {"id": 2}]}
    old = build(manifest)
    manifest["spec"]["rackConfig"]["racks"][0]["zone"] = "us-west-2b"

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert "us-west-2a" in result.message
    assert "us-west-2b" in result.message


def test_racks_can_be_added(engine, manifest, build, add_racks):
    old = build(add_racks(manifest, 1))
    assert engine.admit(build(add_racks(manifest, 1, 2)), old).allowed


# --- Namespaces ---

@pytest.mark.parametrize("key, value", [
    ("replication-factor", 3),
    ("strong-consistency", True),
])
def test_frozen_namespace_fields(engine, manifest, build, key, value):
    old = build(manifest)
    manifest["spec"]["aerospikeConfig"]["namespaces"][0][key] = value

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert f"{key} cannot be updated, namespace test" in result.message


def test_rack_override_namespace_fields_are_frozen(engine, manifest, build):
    manifest["spec"]["rackConfig"] = {"racks": [{"id": 1}, {"id": 2}]}
    old = build(manifest)
    manifest["spec"]["rackConfig"]["racks"][1]["aerospikeConfig"] = {
        "namespaces": [{"name": "test", "replication-factor": 3}],
    }

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert "spec.rackConfig.racks[2].aerospikeConfig" in result.field_path


def test_security_cannot_be_disabled(engine, manifest, build):
    old = build(manifest)
    del manifest["spec"]["aerospikeConfig"]["security"]

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot disable cluster security" in result.message


# --- Network ---

def test_ports_are_frozen(engine, manifest, build):
    old = build(manifest)
    _network(manifest)["service"]["port"] = 3100

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot modify port number" in result.message


def test_port_removal_needs_both_tls_and_plain_set_before(engine, manifest, build):
    old_plain = build(manifest)
    old_both = build(_tls(manifest))
    del _network(manifest)["service"]["port"]
    new = build(manifest)

    result = engine.admit(new, old_plain)
    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot remove tls or non-tls configurations" in result.message

    assert engine.admit(new, old_both).allowed


def test_tls_name_is_frozen(engine, manifest, build):
    old = build(_tls(manifest, name="tls-a"))
    result = engine.admit(build(_tls(manifest, name="tls-b")), old)
    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot modify tls name" in result.message


def test_used_tls_ca_file_is_frozen(engine, manifest, build):
    old = build(_tls(manifest))

    result = engine.admit(build(_tls(manifest, ca_file="/etc/aerospike/secret/other-ca.pem")), old)
    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot change ca-file of used tls" in result.message

    result = engine.admit(build(_tls(manifest, ca_file=None)), old)
    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot remove used `ca-file` or `ca-path` from tls" in result.message


# --- Pod and network policy ---

def test_multi_pod_per_host_is_frozen(engine, manifest, build):
    old = build(manifest)
    manifest["spec"]["podSpec"]["multiPodPerHost"] = False

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert result.field_path == "spec.podSpec.multiPodPerHost"


def test_host_network_may_toggle_without_multi_pod_per_host(engine, manifest, build):
    manifest["spec"]["podSpec"]["multiPodPerHost"] = False
    old = build(manifest)
    manifest["spec"]["podSpec"]["hostNetwork"] = True
    assert engine.admit(build(manifest), old).allowed


def test_fabric_network_type_is_frozen(engine, manifest, build):
    old = build(manifest)
    manifest["spec"]["aerospikeNetworkPolicy"] = {"fabric": "hostInternal"}

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert "cannot update fabric type" in result.message


def test_custom_interface_names_are_frozen(engine, manifest, build):
    manifest["spec"]["podSpec"]["metadata"] = {
        "annotations": {"k8s.v1.cni.cncf.io/networks": "ipvlan-conf-1,ipvlan-conf-2"},
    }
    manifest["spec"]["aerospikeNetworkPolicy"] = {
        "access": "customInterface",
        "customAccessNetworkNames": ["ipvlan-conf-1"],
    }
    old = build(manifest)
    manifest["spec"]["aerospikeNetworkPolicy"]["customAccessNetworkNames"] = ["ipvlan-conf-2"]

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.IMMUTABILITY
    assert "customAccessNetworkNames" in result.message
