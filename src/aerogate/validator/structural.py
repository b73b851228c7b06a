#!/usr/bin/env python3
"""
AEROGATE STRUCTURAL VALIDATOR - The Gatekeeper
----------------------------------------------
First phase of admission. Confirms that a single descriptor is well
formed before any later phase dereferences its configuration: descriptor
fields, rack layout, pod and network policy, storage, and per rack the
effective server configuration (schema oracle first, then the cross-field
rules the schema cannot express).

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from aerogate.core.config_tree import (
    ConfigTree, EffectiveRack, NamespaceConfig, effective_racks,
)
from aerogate.core.errors import (
    ExternalValidationError, PreconditionError, SafetyViolation, StructuralError,
)
from aerogate.core.models import ClusterDescriptor, ClusterStatus, StorageSpec
from aerogate.core.oracles import CertificateReader, SchemaValidator
from aerogate.core.paths import PathResolver
from aerogate.core.settings import DEFAULT_SETTINGS, EngineSettings
from aerogate.core.versions import get_image_version, is_enterprise_image
from aerogate.validator import network, podspec, storage

logger = logging.getLogger("aerogate.validator")

OPERATION_KINDS = ["WarmRestart", "PodRestart"]
SYSLOG_ONLY_PARAMS = ["facility", "path", "tag"]
FORBIDDEN_RACK_OVERRIDES = ["network", "security"]


def storage_claims(config: ConfigTree) -> Tuple[Dict[str, str], Dict[str, str]]:
    """
    Maps every device and file token to the namespace that claims it.

    Raises:
        StructuralError: a token is claimed twice.
    """
    devices: Dict[str, str] = {}
    files: Dict[str, str] = {}
    for ns in config.namespace_entries():
        for what, tokens, claims in (("device", ns.device_tokens(), devices),
                                     ("file", ns.file_tokens(), files)):
            for token in tokens:
                if token in claims:
                    raise StructuralError(
                        f"{what} {token} is already being referenced in multiple namespaces "
                        f"({claims[token]}, {ns.name})",
                        field=f"namespaces[{ns.name}].storage-engine",
                    )
                claims[token] = ns.name
    return devices, files


class StructuralValidator:
    """
    Validates one descriptor in isolation. Status is only consulted to
    tell a creation from an update for on-demand operations.
    """

    def __init__(self, schema_validator: SchemaValidator, cert_reader: CertificateReader,
                 settings: EngineSettings = DEFAULT_SETTINGS):
        self.schema_validator = schema_validator
        self.cert_reader = cert_reader
        self.settings = settings

    def validate(self, descriptor: ClusterDescriptor,
                 status: Optional[ClusterStatus] = None) -> List[EffectiveRack]:
        """
        Runs every structural rule and returns the effective racks so that
        later phases do not have to resolve them again.
        """
        self.validate_descriptor(descriptor)
        self.validate_operations(descriptor, status)

        version = get_image_version(descriptor.image)

        if not descriptor.aerospike_config:
            raise StructuralError("aerospikeConfig cannot be empty", field="spec.aerospikeConfig")

        self.validate_rack_layout(descriptor)
        storage.validate_storage_spec(descriptor.storage)

        racks = effective_racks(descriptor.aerospike_config, descriptor.storage,
                                descriptor.rack_config, self.settings.default_rack_id)

        podspec.validate_pod_spec(descriptor.pod_spec, [r.storage for r in racks])
        network.validate_network_policy(descriptor, self.settings)

        for rack in racks:
            logger.debug(f"Validating effective config of rack {rack.id}")
            self.validate_rack(rack, descriptor, version)

        self.validate_rack_namespaces(descriptor, racks)
        self.validate_sc_namespaces(racks)

        cluster_config = ConfigTree(descriptor.aerospike_config)
        network.validate_client_cert_spec(descriptor.operator_client_cert, cluster_config)
        network.validate_tls_client_names(cluster_config, descriptor.operator_client_cert, self.cert_reader)

        return racks

    def validate_descriptor(self, descriptor: ClusterDescriptor) -> None:
        if not descriptor.name or " " in descriptor.name:
            raise StructuralError(f"aerospikeCluster name cannot be empty or have spaces: {descriptor.name!r}",
                                  field="metadata.name")
        if not descriptor.namespace or " " in descriptor.namespace:
            raise StructuralError(
                f"aerospikeCluster namespace name cannot be empty or have spaces: {descriptor.namespace!r}",
                field="metadata.namespace",
            )

        if not is_enterprise_image(descriptor.image):
            raise StructuralError(f"CommunityEdition Cluster not supported: {descriptor.image}",
                                  field="spec.image")

        if descriptor.size <= 0:
            raise StructuralError("invalid cluster size 0", field="spec.size")
        if descriptor.size > self.settings.max_cluster_size:
            raise StructuralError(
                f"cluster size cannot be more than {self.settings.max_cluster_size}",
                field="spec.size", bound=self.settings.max_cluster_size,
            )

    def validate_operations(self, descriptor: ClusterDescriptor, status: Optional[ClusterStatus]) -> None:
        if not descriptor.operations:
            return

        if status is None or not status.has_accepted_config:
            raise StructuralError("operation cannot be added during aerospike cluster creation",
                                  field="spec.operations")

        if len(descriptor.operations) > 1:
            raise StructuralError("only one operation can be set at a time", field="spec.operations")

        for op in descriptor.operations:
            if op.kind not in OPERATION_KINDS:
                raise StructuralError(f"invalid operation kind {op.kind}, supported {OPERATION_KINDS}",
                                      field="spec.operations.kind")
            if not op.id:
                raise StructuralError("operation id cannot be empty", field="spec.operations.id")

    def validate_rack_layout(self, descriptor: ClusterDescriptor) -> None:
        rack_config = descriptor.rack_config
        seen = set()
        for rack in rack_config.racks:
            if rack.id in seen:
                raise StructuralError(f"duplicate rackID {rack.id} not allowed, racks {len(rack_config.racks)}",
                                      field="spec.rackConfig.racks")
            seen.add(rack.id)

            if rack.id < self.settings.min_rack_id or rack.id > self.settings.max_rack_id:
                raise StructuralError(
                    f"invalid rackID {rack.id}, should be in range "
                    f"{self.settings.min_rack_id}..{self.settings.max_rack_id}",
                    field="spec.rackConfig.racks.id", bound=self.settings.max_rack_id,
                )

            for key in FORBIDDEN_RACK_OVERRIDES:
                if rack.aerospike_config and key in rack.aerospike_config:
                    raise StructuralError(f"you can't give {key} config at rack level",
                                          field=f"spec.rackConfig.racks[{rack.id}].aerospikeConfig.{key}")

            if rack.storage is not None:
                storage.validate_storage_spec(rack.storage, where=f"spec.rackConfig.racks[{rack.id}].storage")

        for ns_name in rack_config.namespaces:
            if not isinstance(ns_name, str) or not ns_name or " " in ns_name:
                raise StructuralError(f"namespace name `{ns_name}` cannot have spaces",
                                      field="spec.rackConfig.namespaces")

    def validate_rack(self, rack: EffectiveRack, descriptor: ClusterDescriptor, version: str) -> None:
        """Storage first, then the schema oracle, then the cross-field config rules."""
        storage.validate_storage_spec(rack.storage, where=f"rack {rack.id} storage")

        try:
            ok, errors = self.schema_validator.validate(rack.config.raw, version)
        except Exception as e:
            raise ExternalValidationError(f"schema validation failed for version {version}: {e}")
        if not ok:
            raise ExternalValidationError(
                f"generated config not valid for version {version}: {'; '.join(str(e) for e in errors)}"
            )

        self.validate_config(rack.config, rack.storage)
        storage.validate_required_file_storage(rack.config, rack.storage, self.settings)
        storage.validate_work_directory(rack.config, rack.storage, descriptor.validation_policy, self.settings)

    def validate_config(self, config: ConfigTree, rack_storage: StorageSpec) -> None:
        service = config.service().require()
        if service.get("advertise-ipv6") is True:
            raise StructuralError("advertise-ipv6 is not supported", field="service.advertise-ipv6")
        if not service.get("cluster-name"):
            raise PreconditionError("aerospikeCluster name not found in config. Looks like object is not mutated "
                                    "by webhook", field="service.cluster-name")

        network_conf = config.network().require()
        if not isinstance(network_conf.get("service"), dict):
            raise StructuralError("aerospikeConfig.network.service not a valid map or not present",
                                  field="network.service")

        tls_names = network.validate_tls_block(config)
        network.validate_connections(config, tls_names)
        network.validate_tls_authenticate_client(network_conf["service"])

        self.validate_namespaces(config, rack_storage)
        self.validate_logging(config)

    def validate_namespaces(self, config: ConfigTree, rack_storage: StorageSpec) -> None:
        entries = config.namespaces().require()
        if not entries:
            raise StructuralError("aerospikeConfig.namespaces cannot be empty", field="namespaces")
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise StructuralError(f"namespace entry #{i} is not a map: {entry!r}", field="namespaces")

        resolver = PathResolver(rack_storage)
        for ns in config.namespace_entries():
            self.validate_namespace(ns, resolver)
        storage_claims(config)

    def validate_namespace(self, ns: NamespaceConfig, resolver: PathResolver) -> None:
        if not isinstance(ns.raw.get("name"), str) or not ns.raw["name"]:
            raise StructuralError(f"namespace #{ns.index} has no name", field="namespaces.name")

        engine = ns.storage_engine().require()

        if ns.strong_consistency and ns.is_in_memory:
            raise StructuralError(
                f"in-memory storage is not supported with strong-consistency, namespace {ns.name}",
                field=ns.field("storage-engine").path,
            )

        if not ns.strong_consistency:
            mrt = ns.mrt_fields_set()
            if mrt:
                raise StructuralError(f"{mrt} are allowed only with strong-consistency, namespace {ns.name}",
                                      field=ns.field(mrt[0]).path)

        self.validate_index_mounts(ns, resolver)

        if ns.is_in_memory:
            return
        if not ns.is_device_or_pmem:
            raise StructuralError(f"storage-engine type {engine.get('type')!r} not supported, namespace {ns.name}",
                                  field=ns.field("storage-engine").path)

        devices = ns.devices()
        files = ns.files()
        if devices.absent and files.absent:
            raise StructuralError(f"storage-engine for namespace {ns.name} must have devices or files",
                                  field=ns.field("storage-engine").path)

        if not devices.absent:
            for entry in self._storage_entries(devices.require(), ns, "devices"):
                for token in entry.split():
                    if not resolver.is_block_device(token):
                        raise StructuralError(
                            f"namespace storage device related devicePath {token} not found in Storage config "
                            f"{resolver.block_devices()}, namespace {ns.name}",
                            field=devices.path,
                        )

        if not files.absent:
            for entry in self._storage_entries(files.require(), ns, "files"):
                for token in entry.split():
                    if not resolver.is_file_covered(token):
                        raise StructuralError(
                            f"namespace storage file related mountPath for {token} not found in Storage config "
                            f"{resolver.filesystem_mounts()}, namespace {ns.name}",
                            field=files.path,
                        )

    def _storage_entries(self, entries: list, ns: NamespaceConfig, what: str) -> List[str]:
        if not entries:
            raise StructuralError(f"no {what} for namespace {ns.name}", field=f"{ns.field(what).path}")
        for entry in entries:
            if not isinstance(entry, str):
                raise StructuralError(f"namespace {ns.name} storage {what} entry {entry!r} is not a string",
                                      field=f"namespaces[{ns.name}].storage-engine.{what}")
            if len(entry.split()) > 2:
                raise StructuralError(
                    f"invalid {what} entry {entry!r} for namespace {ns.name}, "
                    f"at most a primary and a shadow path are allowed",
                    field=f"namespaces[{ns.name}].storage-engine.{what}",
                )
        return entries

    def validate_index_mounts(self, ns: NamespaceConfig, resolver: PathResolver) -> None:
        if ns.is_shmem_index:
            return
        ns.index_type().require()

        mounts = ns.index_mounts()
        if mounts.wrong_type:
            mounts.require()
        mount_points = resolver.filesystem_mounts()
        for mount in mounts.get([]):
            if mount not in mount_points:
                raise StructuralError(
                    f"namespace index-type mount {mount} not found in Storage config {mount_points}, "
                    f"namespace {ns.name}",
                    field=mounts.path,
                )

    def validate_logging(self, config: ConfigTree) -> None:
        logging_conf = config.logging()
        if logging_conf.absent:
            return
        for sink in logging_conf.require():
            if not isinstance(sink, dict):
                raise StructuralError(f"logging entry {sink!r} is not a map", field="logging")
            if sink.get("name") == "syslog":
                continue
            for param in SYSLOG_ONLY_PARAMS:
                if param in sink:
                    raise StructuralError(f"can use {param} only with `syslog` in aerospikeConfig.logging",
                                          field=f"logging[{sink.get('name')}].{param}")

    def validate_rack_namespaces(self, descriptor: ClusterDescriptor, racks: List[EffectiveRack]) -> None:
        """Every rack-enabled namespace must be defined in every rack's effective config."""
        for ns_name in descriptor.rack_config.namespaces:
            for rack in racks:
                if rack.config.namespace(ns_name) is None:
                    raise StructuralError(
                        f"rackConfig namespace {ns_name} not found in aerospikeConfig of rack {rack.id}",
                        field="spec.rackConfig.namespaces",
                    )

    def validate_sc_namespaces(self, racks: List[EffectiveRack]) -> None:
        """Strong consistency is a cluster-wide property; the first rack sets the baseline."""
        baseline: Optional[Set[str]] = None
        for rack in racks:
            sc_names = {ns.name for ns in rack.config.namespace_entries() if ns.strong_consistency}
            if baseline is None:
                baseline = sc_names
            elif sc_names != baseline:
                raise SafetyViolation(
                    f"all racks should have same strong-consistency namespaces: "
                    f"{sorted(baseline)} vs {sorted(sc_names)} (rack {rack.id})",
                    field="namespaces.strong-consistency",
                )
