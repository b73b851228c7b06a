#!/usr/bin/env python3
"""
AEROGATE MANIFEST LOADER
------------------------
Reads cluster manifests (a full custom resource, or a bare spec mapping)
with ruamel.yaml and builds the frozen models the engine works on.

A file that is not YAML, or not a mapping, raises ManifestError. A
mapping whose fields have the wrong shape is a malformed descriptor and
raises StructuralError naming the offending field.

Author: AeroGate Team
Date: 2026-10-18
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ruamel.yaml import YAML, YAMLError

from aerogate.core.errors import StructuralError
from aerogate.core.models import (
    NETWORK_DIRECTIONS, CertPathInOperator, ClientCertSpec, ClusterDescriptor, ClusterStatus,
    ContainerSpec, IntOrPercent, NetworkPolicy, OperationSpec, PersistentVolumeSource, PodPolicy,
    PodStatus, Rack, RackConfig, Resources, SecretCertSource, StorageSpec, ValidationPolicy, Volume,
    VolumeMode, VolumePolicy, VolumeSource,
)

logger = logging.getLogger("aerogate.loader")

# policy attribute -> manifest key, in NETWORK_DIRECTIONS order
_POLICY_TYPE_KEYS = ["access", "alternateAccess", "tlsAccess", "tlsAlternateAccess", "fabric", "tlsFabric"]


class ManifestError(ValueError):
    """The file cannot be read as a YAML mapping."""


def read_manifest(path: Union[str, Path]) -> Dict[str, Any]:
    """Loads the first YAML document of 'path' as a mapping."""
    manifest_path = Path(path)
    yaml = YAML(typ="safe")
    try:
        docs = [d for d in yaml.load_all(manifest_path.read_text(encoding="utf-8-sig")) if d is not None]
    except YAMLError as e:
        raise ManifestError(f"{manifest_path} is not valid YAML: {e}")

    if not docs:
        raise ManifestError(f"{manifest_path} is empty")
    if not isinstance(docs[0], dict):
        raise ManifestError(f"{manifest_path} does not contain a mapping")
    if len(docs) > 1:
        logger.warning(f"{manifest_path} holds {len(docs)} documents; only the first is used")
    return docs[0]


def _join(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def _as_map(value: Any, path: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StructuralError(f"'{path}' must be a mapping, got {type(value).__name__}", field=path)
    return value


def _map(data: Dict[str, Any], key: str, path: str = "") -> Dict[str, Any]:
    return _as_map(data.get(key), _join(path, key))


def _list(data: Dict[str, Any], key: str, path: str = "") -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        field = _join(path, key)
        raise StructuralError(f"'{field}' must be a list, got {type(value).__name__}", field=field)
    return value


def _items(data: Dict[str, Any], key: str, path: str = ""):
    """Yields (path, mapping) for every entry of a list of mappings."""
    list_path = _join(path, key)
    for i, item in enumerate(_list(data, key, path)):
        item_path = _join(list_path, i)
        if not isinstance(item, dict):
            raise StructuralError(f"'{item_path}' must be a mapping, got {type(item).__name__}", field=item_path)
        yield item_path, item


def _int(value: Any, field: str, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise StructuralError(f"'{field}' must be an integer, got {value!r}", field=field)
    return value


def _int_or_percent(value: Any, field: str) -> Optional[IntOrPercent]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise StructuralError(f"'{field}' must be an integer or a percentage, got {value!r}", field=field)
    return IntOrPercent(value)


def _resources(data: Any, path: str) -> Optional[Resources]:
    data = _as_map(data, path)
    if not data:
        return None
    return Resources(requests=data.get("requests"), limits=data.get("limits"))


def _volume_policy(data: Dict[str, Any]) -> VolumePolicy:
    return VolumePolicy(
        init_method=data.get("initMethod"),
        wipe_method=data.get("wipeMethod"),
        cascade_delete=data.get("cascadeDelete"),
    )


def parse_volume(data: Dict[str, Any], path: str = "volumes") -> Volume:
    source_path = _join(path, "source")
    source = _map(data, "source", path)
    persistent = None
    if source.get("persistentVolume") is not None:
        pv = _map(source, "persistentVolume", source_path)
        mode = pv.get("volumeMode", VolumeMode.FILESYSTEM.value)
        try:
            volume_mode = VolumeMode(mode)
        except ValueError:
            field = _join(_join(source_path, "persistentVolume"), "volumeMode")
            raise StructuralError(f"'{field}' must be Filesystem or Block, got {mode!r}", field=field)
        persistent = PersistentVolumeSource(
            storage_class=pv.get("storageClass"),
            volume_mode=volume_mode,
            size=str(pv["size"]) if pv.get("size") is not None else None,
            access_modes=tuple(pv.get("accessModes") or ()),
        )

    secret = _map(source, "secret", source_path) if "secret" in source else None
    config_map = _map(source, "configMap", source_path) if "configMap" in source else None
    volume_source = VolumeSource(
        persistent_volume=persistent,
        secret_name=secret.get("secretName", "") if secret is not None else None,
        config_map_name=config_map.get("name", "") if config_map is not None else None,
        # an emptyDir written as "emptyDir: {}" or a bare "emptyDir:" both count
        empty_dir=(source["emptyDir"] or {}) if "emptyDir" in source else None,
    )

    return Volume(
        name=data.get("name", ""),
        source=volume_source,
        attachment_path=_map(data, "aerospike", path).get("path"),
        init_method=data.get("initMethod"),
        wipe_method=data.get("wipeMethod"),
        cascade_delete=data.get("cascadeDelete"),
    )


def parse_storage(data: Any, path: str = "storage") -> StorageSpec:
    data = _as_map(data, path)
    if not data:
        return StorageSpec()
    return StorageSpec(
        volumes=tuple(parse_volume(v, p) for p, v in _items(data, "volumes", path)),
        filesystem_policy=_volume_policy(_map(data, "filesystemVolumePolicy", path)),
        block_policy=_volume_policy(_map(data, "blockVolumePolicy", path)),
        cleanup_threads=_int(data.get("cleanupThreads"), _join(path, "cleanupThreads"), 1),
    )


def _containers(data: Dict[str, Any], key: str, path: str) -> tuple:
    return tuple(
        ContainerSpec(name=c.get("name", ""), resources=_resources(c.get("resources"), _join(p, "resources")))
        for p, c in _items(data, key, path)
    )


def parse_pod_spec(data: Dict[str, Any], path: str = "podSpec") -> PodPolicy:
    metadata = _map(data, "metadata", path)
    init_spec = data.get("aerospikeInitContainer")
    init_path = _join(path, "aerospikeInitContainer")
    aerospike_path = _join(path, "aerospikeContainer")
    return PodPolicy(
        multi_pod_per_host=bool(data.get("multiPodPerHost", False)),
        host_network=bool(data.get("hostNetwork", False)),
        dns_policy=data.get("dnsPolicy"),
        dns_config=data.get("dnsConfig"),
        sidecars=_containers(data, "sidecars", path),
        init_containers=_containers(data, "initContainers", path),
        labels=dict(metadata.get("labels") or {}),
        annotations=dict(metadata.get("annotations") or {}),
        aerospike_resources=_resources(_map(data, "aerospikeContainer", path).get("resources"),
                                       _join(aerospike_path, "resources")),
        init_container_resources=_resources(_as_map(init_spec, init_path).get("resources"),
                                            _join(init_path, "resources")),
        has_init_container_spec=init_spec is not None,
    )


def parse_rack_config(data: Dict[str, Any], path: str = "rackConfig") -> RackConfig:
    racks = []
    for rack_path, rack in _items(data, "racks", path):
        storage = rack.get("storage")
        racks.append(Rack(
            id=_int(rack.get("id"), _join(rack_path, "id")),
            node_name=rack.get("nodeName", ""),
            rack_label=rack.get("rackLabel", ""),
            region=rack.get("region", ""),
            zone=rack.get("zone", ""),
            storage=parse_storage(storage, _join(rack_path, "storage")) if storage is not None else None,
            aerospike_config=_map(rack, "aerospikeConfig", rack_path) or None,
        ))
    return RackConfig(
        racks=tuple(racks),
        namespaces=tuple(_list(data, "namespaces", path)),
        rolling_update_batch_size=_int_or_percent(data.get("rollingUpdateBatchSize"),
                                                  _join(path, "rollingUpdateBatchSize")),
        scale_down_batch_size=_int_or_percent(data.get("scaleDownBatchSize"), _join(path, "scaleDownBatchSize")),
        max_ignorable_pods=_int_or_percent(data.get("maxIgnorablePods"), _join(path, "maxIgnorablePods")),
    )


def parse_network_policy(data: Dict[str, Any]) -> NetworkPolicy:
    defaults = NetworkPolicy()
    values: Dict[str, Any] = {}
    for key, (_, type_attr, names_attr, names_field) in zip(_POLICY_TYPE_KEYS, NETWORK_DIRECTIONS):
        values[type_attr] = data.get(key, getattr(defaults, type_attr))
        names = data.get(names_field)
        values[names_attr] = tuple(names) if names is not None else None
    return NetworkPolicy(**values)


def parse_client_cert(data: Any, path: str = "operatorClientCert") -> Optional[ClientCertSpec]:
    if data is None:
        return None
    data = _as_map(data, path)
    secret = _map(data, "secretCertSource", path) if data.get("secretCertSource") is not None else None
    local = _map(data, "certPathInOperator", path) if data.get("certPathInOperator") is not None else None
    return ClientCertSpec(
        tls_client_name=data.get("tlsClientName", ""),
        secret_cert_source=SecretCertSource(
            secret_name=secret.get("secretName", ""),
            secret_namespace=secret.get("secretNamespace", ""),
            ca_certs_filename=secret.get("caCertsFilename", ""),
            ca_certs_source=secret.get("caCertsSource"),
            client_cert_filename=secret.get("clientCertFilename", ""),
            client_key_filename=secret.get("clientKeyFilename", ""),
        ) if secret is not None else None,
        cert_path_in_operator=CertPathInOperator(
            ca_certs_path=local.get("caCertsPath", ""),
            client_cert_path=local.get("clientCertPath", ""),
            client_key_path=local.get("clientKeyPath", ""),
        ) if local is not None else None,
    )


def parse_operations(data: Dict[str, Any], path: str = "") -> tuple:
    return tuple(
        OperationSpec(kind=op.get("kind", ""), id=op.get("id", ""), pod_list=tuple(op.get("podList") or ()))
        for _, op in _items(data, "operations", path)
    )


def descriptor_from_manifest(doc: Dict[str, Any], name: str = "", namespace: str = "default") -> ClusterDescriptor:
    """
    Builds a ClusterDescriptor from a full custom resource or a bare spec.
    'name' and 'namespace' are used when the document has no metadata.

    Raises:
        StructuralError: a field has the wrong shape.
    """
    doc = copy.deepcopy(doc)
    metadata = _map(doc, "metadata")
    if "spec" in doc:
        spec, at = _map(doc, "spec"), "spec"
    else:
        spec, at = doc, ""
    validation = _map(spec, "validationPolicy", at)

    return ClusterDescriptor(
        name=metadata.get("name", name),
        namespace=metadata.get("namespace", namespace),
        size=_int(spec.get("size"), _join(at, "size")),
        image=str(spec.get("image", "")),
        aerospike_config=_map(spec, "aerospikeConfig", at),
        pod_spec=parse_pod_spec(_map(spec, "podSpec", at), _join(at, "podSpec")),
        storage=parse_storage(spec.get("storage"), _join(at, "storage")),
        rack_config=parse_rack_config(_map(spec, "rackConfig", at), _join(at, "rackConfig")),
        network_policy=parse_network_policy(_map(spec, "aerospikeNetworkPolicy", at)),
        operator_client_cert=parse_client_cert(spec.get("operatorClientCert"), _join(at, "operatorClientCert")),
        operations=parse_operations(spec, at),
        validation_policy=ValidationPolicy(
            skip_work_dir_validate=bool(validation.get("skipWorkDirValidate", False)),
        ),
        disable_pdb=bool(spec.get("disablePDB", False)),
        max_unavailable=_int_or_percent(spec.get("maxUnavailable"), _join(at, "maxUnavailable")),
        enable_dynamic_config_update=bool(spec.get("enableDynamicConfigUpdate", False)),
    )


def status_from_manifest(doc: Dict[str, Any]) -> Optional[ClusterStatus]:
    """Reads the 'status' block of a custom resource, or a bare status mapping."""
    doc = copy.deepcopy(doc)
    data = _map(doc, "status") if "status" in doc else (doc if "spec" not in doc else None)
    if not data:
        return None

    pods = {}
    for pod_name, pod in _map(data, "pods", "status").items():
        pod = _as_map(pod, f"status.pods.{pod_name}")
        pods[pod_name] = PodStatus(name=pod_name, image=pod.get("image", ""), init_image=pod.get("initImage", ""))

    return ClusterStatus(
        size=_int(data.get("size"), "status.size"),
        image=str(data.get("image", "")),
        aerospike_config=_map(data, "aerospikeConfig", "status") or None,
        storage=parse_storage(data.get("storage"), "status.storage"),
        rack_config=parse_rack_config(_map(data, "rackConfig", "status"), "status.rackConfig"),
        operations=parse_operations(data, "status"),
        pods=pods,
    )
