#!/usr/bin/env python3
"""
AEROGATE CONFIG TREE ACCESSOR
-----------------------------
Typed, read-only navigation over the loosely structured server
configuration (service / network / namespaces / logging / security).

Every lookup reports one of three outcomes instead of raising on a bad
shape: the key is ABSENT, the value has the WRONG_TYPE, or it is PRESENT.
The accessor never validates; callers decide what a given outcome means.

Author: AeroGate Team
Date: 2026-10-18
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from aerogate.core.errors import StructuralError
from aerogate.core.models import Rack, RackConfig, StorageSpec

NETWORK_CONNECTION_TYPES = ["service", "heartbeat", "fabric"]
MRT_FIELDS = ["mrt-duration", "disable-mrt-writes"]


class LookupState(str, Enum):
    ABSENT = "absent"
    WRONG_TYPE = "wrong-type"
    PRESENT = "present"


class Kind(str, Enum):
    MAP = "map"
    LIST = "list"
    STR = "string"
    INT = "integer"
    BOOL = "boolean"
    ANY = "any"


def _matches(value: Any, kind: Kind) -> bool:
    if kind == Kind.ANY:
        return True
    if kind == Kind.MAP:
        return isinstance(value, dict)
    if kind == Kind.LIST:
        return isinstance(value, list)
    if kind == Kind.STR:
        return isinstance(value, str)
    if kind == Kind.BOOL:
        return isinstance(value, bool)
    if kind == Kind.INT:
        # YAML may hand over 3.0 for 3; bool is not a number here
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    return False


@dataclass(frozen=True)
class Lookup:
    state: LookupState
    path: str
    value: Any = None
    expected: Kind = Kind.ANY

    @property
    def present(self) -> bool:
        return self.state == LookupState.PRESENT

    @property
    def absent(self) -> bool:
        return self.state == LookupState.ABSENT

    @property
    def wrong_type(self) -> bool:
        return self.state == LookupState.WRONG_TYPE

    def get(self, default: Any = None) -> Any:
        return self.value if self.present else default

    def require(self) -> Any:
        """Returns the value or raises StructuralError naming the path."""
        if self.absent:
            raise StructuralError(f"aerospikeConfig.{self.path} not present", field=self.path)
        if self.wrong_type:
            raise StructuralError(
                f"aerospikeConfig.{self.path} is not a valid {self.expected.value}: {self.value!r}",
                field=self.path,
            )
        return self.value


def lookup(root: Any, keys: Iterable[str], kind: Kind = Kind.ANY, prefix: str = "") -> Lookup:
    """Walks 'keys' from 'root', reporting where and how the walk stopped."""
    current = root
    walked: List[str] = [prefix] if prefix else []
    for key in keys:
        if not isinstance(current, dict):
            return Lookup(LookupState.WRONG_TYPE, ".".join(walked), current, Kind.MAP)
        walked.append(key)
        if key not in current:
            return Lookup(LookupState.ABSENT, ".".join(walked), None, kind)
        current = current[key]

    path = ".".join(walked)
    if not _matches(current, kind):
        return Lookup(LookupState.WRONG_TYPE, path, current, kind)
    if kind == Kind.INT:
        current = int(current)
    return Lookup(LookupState.PRESENT, path, current, kind)


class NamespaceConfig:
    """View over one entry of the 'namespaces' list."""

    def __init__(self, raw: Dict[str, Any], index: int = 0):
        self.raw = raw
        self.index = index

    @property
    def name(self) -> str:
        value = self.raw.get("name")
        return value if isinstance(value, str) else f"<namespace #{self.index}>"

    def field(self, key: str, kind: Kind = Kind.ANY) -> Lookup:
        return lookup(self.raw, [key], kind, prefix=f"namespaces[{self.name}]")

    def replication_factor(self, default: int = 2) -> int:
        rf = self.field("replication-factor", Kind.INT)
        if rf.absent:
            return default
        if rf.wrong_type:
            raise StructuralError(f"namespace replication-factor {rf.value!r} is not an integer", field=rf.path)
        return rf.value

    def has_replication_factor(self) -> bool:
        return "replication-factor" in self.raw

    @property
    def strong_consistency(self) -> bool:
        return self.raw.get("strong-consistency") is True

    def storage_engine(self) -> Lookup:
        return self.field("storage-engine", Kind.MAP)

    @property
    def storage_type(self) -> Optional[str]:
        engine = self.storage_engine()
        if not engine.present:
            return None
        value = engine.value.get("type")
        return value if isinstance(value, str) else None

    @property
    def is_in_memory(self) -> bool:
        return self.storage_type == "memory"

    @property
    def is_device_or_pmem(self) -> bool:
        return self.storage_type in ("device", "pmem")

    def devices(self) -> Lookup:
        return lookup(self.raw, ["storage-engine", "devices"], Kind.LIST, prefix=f"namespaces[{self.name}]")

    def files(self) -> Lookup:
        return lookup(self.raw, ["storage-engine", "files"], Kind.LIST, prefix=f"namespaces[{self.name}]")

    def device_tokens(self) -> List[str]:
        return _tokens(self.devices().get([]))

    def file_tokens(self) -> List[str]:
        return _tokens(self.files().get([]))

    def index_type(self) -> Lookup:
        return self.field("index-type", Kind.MAP)

    @property
    def is_shmem_index(self) -> bool:
        # missing index-type defaults to shmem
        index = self.index_type()
        if index.absent:
            return True
        return index.present and index.value.get("type") == "shmem"

    def index_mounts(self) -> Lookup:
        return lookup(self.raw, ["index-type", "mounts"], Kind.LIST, prefix=f"namespaces[{self.name}]")

    def mrt_fields_set(self) -> List[str]:
        return [f for f in MRT_FIELDS if f in self.raw]


def _tokens(entries: List[Any]) -> List[str]:
    tokens: List[str] = []
    for entry in entries:
        if isinstance(entry, str):
            tokens.extend(entry.split())
    return tokens


class ConnectionConfig:
    """View over network.<service|heartbeat|fabric>."""

    def __init__(self, connection_type: str, raw: Optional[Dict[str, Any]]):
        self.connection_type = connection_type
        self.raw = raw if isinstance(raw, dict) else {}
        self.exists = raw is not None

    @property
    def tls_name(self) -> Optional[str]:
        value = self.raw.get("tls-name")
        return value if isinstance(value, str) else None

    def has(self, key: str) -> bool:
        return key in self.raw

    def get(self, key: str) -> Any:
        return self.raw.get(key)

    def tls_params(self) -> List[str]:
        return sorted(k for k in self.raw if str(k).startswith("tls-"))


class TLSEntry:
    """View over one entry of network.tls."""

    def __init__(self, raw: Dict[str, Any]):
        self.raw = raw

    @property
    def name(self) -> Optional[str]:
        value = self.raw.get("name")
        return value if isinstance(value, str) else None

    def has(self, key: str) -> bool:
        return key in self.raw

    def get(self, key: str) -> Any:
        return self.raw.get(key)


class ConfigTree:
    """
    Read-only accessor for a whole server configuration.

    Wraps the raw mapping as loaded from YAML; the mapping itself is
    never modified.
    """

    def __init__(self, raw: Optional[Dict[str, Any]]):
        self.raw = raw if raw is not None else {}

    def lookup(self, *keys: str, kind: Kind = Kind.ANY) -> Lookup:
        return lookup(self.raw, keys, kind)

    def service(self) -> Lookup:
        return self.lookup("service", kind=Kind.MAP)

    def network(self) -> Lookup:
        return self.lookup("network", kind=Kind.MAP)

    def namespaces(self) -> Lookup:
        return self.lookup("namespaces", kind=Kind.LIST)

    def logging(self) -> Lookup:
        return self.lookup("logging", kind=Kind.LIST)

    def namespace_entries(self) -> List[NamespaceConfig]:
        """Views for the namespace entries that are mappings; others are skipped."""
        entries = self.namespaces().get([])
        return [NamespaceConfig(ns, i) for i, ns in enumerate(entries) if isinstance(ns, dict)]

    def namespace(self, name: str) -> Optional[NamespaceConfig]:
        for ns in self.namespace_entries():
            if ns.raw.get("name") == name:
                return ns
        return None

    def tls_entries(self) -> List[TLSEntry]:
        entries = self.lookup("network", "tls", kind=Kind.LIST).get([])
        return [TLSEntry(t) for t in entries if isinstance(t, dict)]

    def tls_entry(self, name: str) -> Optional[TLSEntry]:
        for entry in self.tls_entries():
            if entry.name == name:
                return entry
        return None

    def connection(self, connection_type: str) -> ConnectionConfig:
        network = self.network().get({})
        return ConnectionConfig(connection_type, network.get(connection_type))

    def used_tls_names(self) -> set:
        names = set()
        for conn_type in NETWORK_CONNECTION_TYPES:
            tls_name = self.connection(conn_type).tls_name
            if tls_name:
                names.add(tls_name)
        return names

    def security_enabled(self) -> bool:
        """
        A present 'security' section enables security unless it carries an
        explicit enable-security: false (pre-5.7 style).
        """
        security = self.lookup("security")
        if security.absent or security.value is None:
            return False
        if isinstance(security.value, dict) and security.value.get("enable-security") is False:
            return False
        return True

    def configured_work_directory(self) -> str:
        value = self.lookup("service", "work-directory", kind=Kind.STR)
        return value.get("")

    def work_directory(self, default: str) -> str:
        return self.configured_work_directory() or default

    def feature_key_files(self) -> List[str]:
        single = self.lookup("service", "feature-key-file", kind=Kind.STR)
        if single.present:
            return [single.value]
        many = self.lookup("service", "feature-key-files", kind=Kind.LIST)
        return [p for p in many.get([]) if isinstance(p, str)]

    def tls_file_paths(self) -> Tuple[List[str], List[str]]:
        """Returns (non-CA paths, CA paths); ca-path entries gain a trailing slash."""
        non_ca: List[str] = []
        ca: List[str] = []
        for entry in self.tls_entries():
            for key in ("cert-file", "key-file"):
                if isinstance(entry.get(key), str):
                    non_ca.append(entry.get(key))
            if isinstance(entry.get("ca-file"), str):
                ca.append(entry.get("ca-file"))
            if isinstance(entry.get("ca-path"), str):
                ca.append(entry.get("ca-path").rstrip("/") + "/")
        return non_ca, ca

    def default_password_file(self) -> Optional[str]:
        value = self.lookup("security", "default-password-file", kind=Kind.STR)
        return value.get()

    def migrate_fill_delay(self) -> int:
        value = self.lookup("service", "migrate-fill-delay", kind=Kind.INT)
        if value.wrong_type:
            raise StructuralError(f"migrate-fill-delay {value.value!r} is not an integer", field=value.path)
        return value.get(0)


def _is_named_list(items: List[Any]) -> bool:
    return all(isinstance(i, dict) and isinstance(i.get("name"), str) for i in items)


def merge_config(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merges a rack override onto the cluster configuration. Mappings
    merge key by key; lists of named mappings (namespaces, tls) merge by
    name; any other value in the override replaces the base value.
    """
    merged = copy.deepcopy(base) if base else {}
    if not override:
        return merged

    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_config(current, value)
        elif (isinstance(current, list) and isinstance(value, list)
              and _is_named_list(current) and _is_named_list(value)):
            by_name = {item["name"]: i for i, item in enumerate(current)}
            result = list(current)
            for item in value:
                if item["name"] in by_name:
                    idx = by_name[item["name"]]
                    result[idx] = merge_config(result[idx], item)
                else:
                    result.append(copy.deepcopy(item))
            merged[key] = result
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass(frozen=True)
class EffectiveRack:
    rack: Rack
    config: ConfigTree
    storage: StorageSpec

    @property
    def id(self) -> int:
        return self.rack.id


def effective_racks(base_config: Optional[Dict[str, Any]], storage: StorageSpec,
                    rack_config: RackConfig, default_rack_id: int = 0) -> List[EffectiveRack]:
    """
    Resolves what each rack actually runs: a default rack when none are
    declared, the cluster config merged with the rack override, and the
    rack's own storage when it declares volumes.
    """
    racks = list(rack_config.racks) or [Rack(id=default_rack_id)]
    resolved = []
    for rack in racks:
        rack_storage = rack.storage if rack.storage is not None and rack.storage.volumes else storage
        config = ConfigTree(merge_config(base_config or {}, rack.aerospike_config))
        resolved.append(EffectiveRack(rack=rack, config=config, storage=rack_storage))
    return resolved
