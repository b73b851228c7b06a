"""
Shared fixtures: a known-good cluster manifest, builders for descriptors
and statuses, and an orchestrator wired with a stub certificate reader.
"""

import pytest
from ruamel.yaml import YAML

from aerogate.core.engine import AdmissionOrchestrator
from aerogate.core.loader import descriptor_from_manifest, status_from_manifest

BASE_MANIFEST = """
apiVersion: asdb.aerospike.com/v1
kind: AerospikeCluster
metadata:
  name: aerocluster
  namespace: aerospike
spec:
  size: 3
  image: aerospike/aerospike-server-enterprise:7.1.0.0
  storage:
    filesystemVolumePolicy:
      initMethod: deleteFiles
      cascadeDelete: true
    blockVolumePolicy:
      cascadeDelete: true
    volumes:
      - name: workdir
        aerospike:
          path: /opt/aerospike
        source:
          persistentVolume:
            storageClass: ssd
            volumeMode: Filesystem
            size: 1Gi
      - name: ns
        aerospike:
          path: /dev/nvme0n1
        source:
          persistentVolume:
            storageClass: ssd
            volumeMode: Block
            size: 5Gi
      - name: aerospike-config-secret
        aerospike:
          path: /etc/aerospike/secret
        source:
          secret:
            secretName: aerospike-secret
  podSpec:
    multiPodPerHost: true
  aerospikeConfig:
    service:
      cluster-name: aerocluster
      feature-key-file: /etc/aerospike/secret/features.conf
    security: {}
    network:
      service:
        port: 3000
      fabric:
        port: 3001
      heartbeat:
        port: 3002
    namespaces:
      - name: test
        replication-factor: 2
        storage-engine:
          type: device
          devices:
            - /dev/nvme0n1
"""


class StaticCertReader:
    """Returns fixed certificate names and records which paths were read."""

    def __init__(self, common_name="", dns_names=None):
        self.common_name = common_name
        self.dns_names = dns_names or []
        self.paths = []

    def read_names(self, path):
        self.paths.append(path)
        return self.common_name, list(self.dns_names)


@pytest.fixture
def manifest():
    """A fresh, mutable copy of the known-good manifest."""
    return YAML(typ="safe").load(BASE_MANIFEST)


@pytest.fixture
def build():
    return descriptor_from_manifest


@pytest.fixture
def running_status():
    """Builds the status a reconciler would record after applying 'doc'."""
    def _status(doc, pods=None, init_image="aerospike/aerospike-kubernetes-init:2.24.0"):
        spec = doc["spec"]
        names = pods if pods is not None else [f"aerocluster-0-{i}" for i in range(spec["size"])]
        return status_from_manifest({
            "status": {
                "size": spec["size"],
                "image": spec["image"],
                "aerospikeConfig": spec["aerospikeConfig"],
                "storage": spec.get("storage"),
                "rackConfig": spec.get("rackConfig", {}),
                "operations": spec.get("operations", []),
                "pods": {n: {"image": spec["image"], "initImage": init_image} for n in names},
            }
        })
    return _status


@pytest.fixture
def cert_reader():
    return StaticCertReader()


@pytest.fixture
def engine(cert_reader):
    return AdmissionOrchestrator(cert_reader=cert_reader)


@pytest.fixture
def add_racks():
    """Declares racks on a manifest and makes the given namespaces rack-enabled."""
    def _add_racks(doc, *rack_ids, namespaces=("test",)):
        doc["spec"]["rackConfig"] = {
            "namespaces": list(namespaces),
            "racks": [{"id": rack_id} for rack_id in rack_ids],
        }
        return doc
    return _add_racks
