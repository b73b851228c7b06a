"""
Orchestrator behaviour: phase ordering, result shape, file loading and
directory review.
"""

import copy
import logging

import pytest
from ruamel.yaml import YAML

from aerogate.core.errors import ErrorKind, StructuralError
from aerogate.core.loader import ManifestError, descriptor_from_manifest, read_manifest, status_from_manifest


def _write(path, *docs):
    yaml = YAML()
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump_all(list(docs), f)
    return path


def test_first_failing_phase_decides(engine, manifest, build):
    """ORDERING TEST: a structural fault wins over an immutability fault in the same change."""
    old = build(manifest)
    manifest["spec"]["aerospikeConfig"]["namespaces"][0]["replication-factor"] = 3
    manifest["spec"]["image"] = "aerospike/aerospike-server:7.1.0.0"

    result = engine.admit(build(manifest), old)

    assert result.reason == ErrorKind.STRUCTURAL


def test_admission_does_not_touch_inputs(engine, manifest, build, running_status):
    new = build(manifest)
    status = running_status(manifest)
    before = copy.deepcopy((new.aerospike_config, status.aerospike_config))

    engine.admit(new, new, status)

    assert (new.aerospike_config, status.aerospike_config) == before


def test_result_as_dict(engine, manifest, build):
    manifest["spec"]["size"] = 300
    data = engine.admit(build(manifest)).to_dict()
    assert data == {
        "allowed": False,
        "warnings": [],
        "reason": "StructuralError",
        "message": "cluster size cannot be more than 256",
        "field": "spec.size",
        "bound": 256,
    }


def test_decisions_are_logged(engine, manifest, build, caplog):
    with caplog.at_level(logging.INFO, logger="aerogate.engine"):
        engine.admit(build(manifest))
        manifest["spec"]["size"] = 0
        engine.admit(build(manifest))

    assert "Validate create: aerospike/aerocluster" in caplog.text
    assert "Rejected aerospike/aerocluster: StructuralError" in caplog.text


# --- Manifests on disk ---

def test_read_manifest_uses_first_document(tmp_path, manifest):
    path = _write(tmp_path / "cluster.yaml", manifest, {"kind": "ConfigMap"})
    assert read_manifest(path)["kind"] == "AerospikeCluster"


@pytest.mark.parametrize("content", ["", "spec: [unclosed\n", "- just\n- a list\n"])
def test_unreadable_manifests(tmp_path, content):
    path = tmp_path / "cluster.yaml"
    path.write_text(content)
    with pytest.raises(ManifestError):
        read_manifest(path)


@pytest.mark.parametrize("path, value, field", [
    (("size",), "three", "spec.size"),
    (("rackConfig",), {"racks": ["rack-1"]}, "spec.rackConfig.racks[0]"),
    (("storage", "volumes"), ["workdir"], "spec.storage.volumes[0]"),
    (("storage", "volumes", 0, "source"), "pv", "spec.storage.volumes[0].source"),
    (("operatorClientCert",), {"secretCertSource": "aerospike-secret"},
     "spec.operatorClientCert.secretCertSource"),
    (("operations",), [["WarmRestart"]], "spec.operations[0]"),
])
def test_malformed_fields_are_structural(manifest, path, value, field):
    """SHAPE TEST: wrong-typed fields name their path instead of crashing the loader."""
    target = manifest["spec"]
    for key in path[:-1]:
        target = target[key]
    target[path[-1]] = value

    with pytest.raises(StructuralError) as exc:
        descriptor_from_manifest(manifest)
    assert exc.value.field == field


def test_malformed_status_is_structural(manifest):
    manifest["status"] = {"size": 3, "rackConfig": {"racks": [7]}}
    with pytest.raises(StructuralError, match="status.rackConfig.racks\\[0\\]"):
        status_from_manifest(manifest)


def test_admit_files_rejects_malformed_manifest(engine, tmp_path, manifest):
    manifest["spec"]["rackConfig"] = {"racks": ["rack-1"]}
    path = _write(tmp_path / "cluster.yaml", manifest)

    result = engine.admit_files(path)

    assert result.reason == ErrorKind.STRUCTURAL
    assert result.field_path == "spec.rackConfig.racks[0]"


def test_unhashable_namespace_name_in_rack_override(engine, manifest, build, add_racks):
    add_racks(manifest, 1, 2)
    manifest["spec"]["rackConfig"]["racks"][0]["aerospikeConfig"] = {
        "namespaces": [{"name": ["test"], "replication-factor": 2}],
    }

    result = engine.admit(build(manifest))

    assert not result.allowed
    assert "namespaces[0].name" in result.message


def test_bare_spec_takes_name_from_caller(manifest):
    descriptor = descriptor_from_manifest(manifest["spec"], name="from-file")
    assert descriptor.namespaced_name == "default/from-file"


def test_status_block_is_optional(manifest):
    assert status_from_manifest(manifest) is None
    manifest["status"] = {"size": 3, "pods": {"aerocluster-0-0": None}}
    status = status_from_manifest(manifest)
    assert status.pod_names() == {"aerocluster-0-0"}
    assert not status.has_accepted_config


def test_admit_files_update(engine, tmp_path, manifest):
    old_path = _write(tmp_path / "old.yaml", manifest)
    manifest["spec"]["aerospikeConfig"]["network"]["service"]["port"] = 3100
    new_path = _write(tmp_path / "new.yaml", manifest)

    assert engine.admit_files(old_path).allowed
    result = engine.admit_files(new_path, old_path)
    assert result.reason == ErrorKind.IMMUTABILITY


def test_admit_files_uses_embedded_status(engine, tmp_path, manifest):
    manifest["status"] = copy.deepcopy(manifest["spec"])
    del manifest["spec"]["aerospikeConfig"]["security"]
    path = _write(tmp_path / "cluster.yaml", manifest)

    result = engine.admit_files(path)

    assert result.reason == ErrorKind.SAFETY


def test_admit_files_with_separate_status(engine, tmp_path, manifest):
    status_path = _write(tmp_path / "status.yaml", {"status": copy.deepcopy(manifest["spec"])})
    manifest["spec"]["operations"] = [{"kind": "PodRestart", "id": "restart-1"}]
    path = _write(tmp_path / "cluster.yaml", manifest)

    assert engine.admit_files(path).reason == ErrorKind.STRUCTURAL
    assert engine.admit_files(path, status_path=status_path).allowed


# --- Directory review ---

def test_review_directory(engine, tmp_path, manifest):
    _write(tmp_path / "good.yaml", manifest)
    nested = tmp_path / "team-b"
    nested.mkdir()
    bad = copy.deepcopy(manifest)
    bad["spec"]["image"] = "aerospike/aerospike-server:7.1.0.0"
    _write(nested / "bad.yaml", bad)
    (tmp_path / "broken.yaml").write_text("spec: [unclosed\n")
    (tmp_path / "notes.txt").write_text("not a manifest")

    progress = []
    reports = engine.review_directory(tmp_path, progress_callback=lambda done, total: progress.append((done, total)))

    by_file = {r["file_path"]: r for r in reports}
    assert set(by_file) == {"good.yaml", "broken.yaml", "team-b/bad.yaml"}
    assert by_file["good.yaml"]["status"] == "ADMITTED"
    assert by_file["team-b/bad.yaml"]["status"] == "REJECTED"
    assert by_file["team-b/bad.yaml"]["reason"] == "StructuralError"
    assert by_file["broken.yaml"]["status"] == "UNREADABLE"
    assert progress[-1] == (3, 3)

    summary = engine.generate_summary(reports)
    assert (summary["total_files"], summary["admitted"], summary["rejected"], summary["unreadable"]) == (3, 1, 1, 1)


def test_review_single_file(engine, tmp_path, manifest):
    path = _write(tmp_path / "good.yaml", manifest)
    reports = engine.review_directory(path)
    assert [r["file_path"] for r in reports] == ["good.yaml"]
    assert engine.generate_summary([])["admission_rate"] == 0
