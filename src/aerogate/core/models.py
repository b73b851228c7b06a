#!/usr/bin/env python3
"""
AEROGATE CORE MODELS
--------------------
Defines the snapshots the admission engine reasons about: the incoming
and previously accepted ClusterDescriptor and the last-observed
ClusterStatus. These models are read-only inputs; nothing in the engine
mutates them.

Author: AeroGate Team
Date: 2026-10-18
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

PERCENT_PATTERN = re.compile(r"^(-?\d+)%$")


@dataclass(frozen=True)
class IntOrPercent:
    """
    A count that may be given as an absolute integer or as a percentage
    string such as "25%".
    """
    value: Union[int, str]

    @property
    def is_percent(self) -> bool:
        return isinstance(self.value, str)

    def percent(self) -> int:
        """Returns the numeric part of a percentage string, or raises ValueError."""
        match = PERCENT_PATTERN.match(str(self.value).strip())
        if not match:
            raise ValueError(f"invalid value for IntOrString: '{self.value}' is not a percentage")
        return int(match.group(1))

    def scaled(self, total: int, round_up: bool = False) -> int:
        """Resolves the value against 'total' (percentages only)."""
        if not self.is_percent:
            return int(self.value)
        ratio = self.percent() * total / 100
        return math.ceil(ratio) if round_up else math.floor(ratio)

    def __str__(self) -> str:
        return str(self.value)


class VolumeMode(str, Enum):
    BLOCK = "Block"
    FILESYSTEM = "Filesystem"


class SourceKind(str, Enum):
    PERSISTENT_VOLUME = "persistentVolume"
    SECRET = "secret"
    EMPTY_DIR = "emptyDir"
    CONFIG_MAP = "configMap"


@dataclass(frozen=True)
class PersistentVolumeSource:
    storage_class: Optional[str] = None
    volume_mode: VolumeMode = VolumeMode.FILESYSTEM
    size: Optional[str] = None
    access_modes: tuple = ()


@dataclass(frozen=True)
class VolumeSource:
    persistent_volume: Optional[PersistentVolumeSource] = None
    secret_name: Optional[str] = None
    config_map_name: Optional[str] = None
    empty_dir: Optional[Dict[str, Any]] = None

    def declared_kinds(self) -> List[SourceKind]:
        kinds = []
        if self.persistent_volume is not None:
            kinds.append(SourceKind.PERSISTENT_VOLUME)
        if self.secret_name is not None:
            kinds.append(SourceKind.SECRET)
        if self.config_map_name is not None:
            kinds.append(SourceKind.CONFIG_MAP)
        if self.empty_dir is not None:
            kinds.append(SourceKind.EMPTY_DIR)
        return kinds

    @property
    def kind(self) -> Optional[SourceKind]:
        kinds = self.declared_kinds()
        return kinds[0] if len(kinds) == 1 else None


@dataclass(frozen=True)
class Volume:
    name: str
    source: VolumeSource
    attachment_path: Optional[str] = None   # aerospike.path inside the server container
    init_method: Optional[str] = None
    wipe_method: Optional[str] = None
    cascade_delete: Optional[bool] = None

    @property
    def mode(self) -> VolumeMode:
        if self.source.persistent_volume is not None:
            return self.source.persistent_volume.volume_mode
        return VolumeMode.FILESYSTEM

    @property
    def is_persistent(self) -> bool:
        return self.source.persistent_volume is not None


@dataclass(frozen=True)
class VolumePolicy:
    init_method: Optional[str] = None
    wipe_method: Optional[str] = None
    cascade_delete: Optional[bool] = None


@dataclass(frozen=True)
class StorageSpec:
    volumes: tuple = ()
    filesystem_policy: VolumePolicy = VolumePolicy()
    block_policy: VolumePolicy = VolumePolicy()
    cleanup_threads: int = 1

    def volume(self, name: str) -> Optional[Volume]:
        for vol in self.volumes:
            if vol.name == name:
                return vol
        return None


@dataclass(frozen=True)
class Resources:
    requests: Optional[Dict[str, Any]] = None
    limits: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ContainerSpec:
    name: str
    resources: Optional[Resources] = None


@dataclass(frozen=True)
class PodPolicy:
    multi_pod_per_host: bool = False
    host_network: bool = False
    dns_policy: Optional[str] = None
    dns_config: Optional[Dict[str, Any]] = None
    sidecars: tuple = ()
    init_containers: tuple = ()
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    aerospike_resources: Optional[Resources] = None
    # None means the init container spec block is absent altogether
    init_container_resources: Optional[Resources] = None
    has_init_container_spec: bool = False


@dataclass(frozen=True)
class Rack:
    id: int
    node_name: str = ""
    rack_label: str = ""
    region: str = ""
    zone: str = ""
    storage: Optional[StorageSpec] = None
    aerospike_config: Optional[Dict[str, Any]] = None

    def identity(self) -> Dict[str, str]:
        return {
            "nodeName": self.node_name,
            "rackLabel": self.rack_label,
            "region": self.region,
            "zone": self.zone,
        }


@dataclass(frozen=True)
class RackConfig:
    racks: tuple = ()
    namespaces: tuple = ()
    rolling_update_batch_size: Optional[IntOrPercent] = None
    scale_down_batch_size: Optional[IntOrPercent] = None
    max_ignorable_pods: Optional[IntOrPercent] = None

    def rack(self, rack_id: int) -> Optional[Rack]:
        for rack in self.racks:
            if rack.id == rack_id:
                return rack
        return None


# (direction label, policy attribute, custom names attribute, custom names field)
NETWORK_DIRECTIONS = [
    ("access", "access_type", "custom_access_network_names", "customAccessNetworkNames"),
    ("alternateAccess", "alternate_access_type", "custom_alternate_access_network_names",
     "customAlternateAccessNetworkNames"),
    ("tlsAccess", "tls_access_type", "custom_tls_access_network_names", "customTLSAccessNetworkNames"),
    ("tlsAlternateAccess", "tls_alternate_access_type", "custom_tls_alternate_access_network_names",
     "customTLSAlternateAccessNetworkNames"),
    ("fabric", "fabric_type", "custom_fabric_network_names", "customFabricNetworkNames"),
    ("tlsFabric", "tls_fabric_type", "custom_tls_fabric_network_names", "customTLSFabricNetworkNames"),
]

CUSTOM_INTERFACE = "customInterface"


@dataclass(frozen=True)
class NetworkPolicy:
    access_type: str = "hostInternal"
    alternate_access_type: str = "hostExternal"
    tls_access_type: str = "hostInternal"
    tls_alternate_access_type: str = "hostExternal"
    fabric_type: str = ""
    tls_fabric_type: str = ""
    custom_access_network_names: Optional[tuple] = None
    custom_alternate_access_network_names: Optional[tuple] = None
    custom_tls_access_network_names: Optional[tuple] = None
    custom_tls_alternate_access_network_names: Optional[tuple] = None
    custom_fabric_network_names: Optional[tuple] = None
    custom_tls_fabric_network_names: Optional[tuple] = None


@dataclass(frozen=True)
class SecretCertSource:
    secret_name: str = ""
    secret_namespace: str = ""
    ca_certs_filename: str = ""
    ca_certs_source: Optional[Dict[str, Any]] = None
    client_cert_filename: str = ""
    client_key_filename: str = ""


@dataclass(frozen=True)
class CertPathInOperator:
    ca_certs_path: str = ""
    client_cert_path: str = ""
    client_key_path: str = ""


@dataclass(frozen=True)
class ClientCertSpec:
    tls_client_name: str = ""
    secret_cert_source: Optional[SecretCertSource] = None
    cert_path_in_operator: Optional[CertPathInOperator] = None

    def is_configured(self) -> bool:
        return bool(
            (self.secret_cert_source and self.secret_cert_source.client_cert_filename)
            or (self.cert_path_in_operator and self.cert_path_in_operator.client_cert_path)
        )


@dataclass(frozen=True)
class OperationSpec:
    kind: str
    id: str
    pod_list: tuple = ()


@dataclass(frozen=True)
class ValidationPolicy:
    skip_work_dir_validate: bool = False


@dataclass(frozen=True)
class ClusterDescriptor:
    """
    The user-submitted cluster resource. Replaced wholesale on every
    change; there are no partial patches at this layer.
    """
    name: str
    namespace: str
    size: int
    image: str
    aerospike_config: Dict[str, Any] = field(default_factory=dict)
    pod_spec: PodPolicy = PodPolicy()
    storage: StorageSpec = StorageSpec()
    rack_config: RackConfig = RackConfig()
    network_policy: NetworkPolicy = NetworkPolicy()
    operator_client_cert: Optional[ClientCertSpec] = None
    operations: tuple = ()
    validation_policy: ValidationPolicy = ValidationPolicy()
    disable_pdb: bool = False
    max_unavailable: Optional[IntOrPercent] = None
    enable_dynamic_config_update: bool = False

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class PodStatus:
    name: str
    image: str = ""
    init_image: str = ""


@dataclass(frozen=True)
class ClusterStatus:
    """Last-observed runtime state, as recorded by the reconciler."""
    size: int = 0
    image: str = ""
    aerospike_config: Optional[Dict[str, Any]] = None
    storage: StorageSpec = StorageSpec()
    rack_config: RackConfig = RackConfig()
    operations: tuple = ()
    pods: Dict[str, PodStatus] = field(default_factory=dict)

    @property
    def has_accepted_config(self) -> bool:
        return bool(self.aerospike_config)

    def pod_names(self) -> set:
        return set(self.pods)
