#!/usr/bin/env python3
"""
AEROGATE IMMUTABILITY RULES
---------------------------
Old-versus-new comparison for fields that are frozen once a descriptor
has been accepted. Only runs on updates.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
from typing import Any, Dict

from aerogate.core.config_tree import NETWORK_CONNECTION_TYPES, ConfigTree, effective_racks
from aerogate.core.errors import ImmutabilityViolation
from aerogate.core.models import (
    CUSTOM_INTERFACE, NETWORK_DIRECTIONS, ClusterDescriptor, NetworkPolicy, StorageSpec, Volume,
)
from aerogate.core.settings import DEFAULT_SETTINGS, EngineSettings

logger = logging.getLogger("aerogate.rules")

NETWORK_PORTS = ["port", "access-port", "alternate-access-port"]
FROZEN_NAMESPACE_FIELDS = ["replication-factor", "strong-consistency"]

_MISSING = object()


def _volume_signature(volume: Volume) -> Dict[str, Any]:
    """Everything about a volume's backing that may not change; cascadeDelete is left out."""
    pv = volume.source.persistent_volume
    return {
        "source": volume.source.kind.value if volume.source.kind else None,
        "mode": volume.mode.value,
        "storageClass": pv.storage_class if pv else None,
        "size": pv.size if pv else None,
        "secretName": volume.source.secret_name,
        "configMap": volume.source.config_map_name,
    }


def check_storage_change(old: StorageSpec, new: StorageSpec, where: str = "spec.storage") -> None:
    old_volumes = {v.name: v for v in old.volumes}
    new_volumes = {v.name: v for v in new.volumes}

    for name, new_volume in new_volumes.items():
        old_volume = old_volumes.get(name)
        if old_volume is None:
            if new_volume.is_persistent:
                raise ImmutabilityViolation(f"storage config cannot be updated: cannot add persistent volume {name}",
                                            field=f"{where}.volumes[{name}]")
            continue
        old_sig = _volume_signature(old_volume)
        new_sig = _volume_signature(new_volume)
        if old_sig != new_sig:
            changed = [k for k in old_sig if old_sig[k] != new_sig[k]]
            raise ImmutabilityViolation(
                f"storage config cannot be updated: volume {name} changed {changed}",
                field=f"{where}.volumes[{name}].source", old=old_sig, new=new_sig,
            )

    for name, old_volume in old_volumes.items():
        if name not in new_volumes and old_volume.is_persistent:
            raise ImmutabilityViolation(f"storage config cannot be updated: cannot remove persistent volume {name}",
                                        field=f"{where}.volumes[{name}]")


def _value_updated(old: Dict[str, Any], new: Dict[str, Any], key: str) -> bool:
    return old.get(key, _MISSING) != new.get(key, _MISSING)


class ImmutabilityChecker:
    """
    Compares the previously accepted descriptor with the incoming one.
    Raises ImmutabilityViolation on the first frozen field that differs.
    """

    def __init__(self, settings: EngineSettings = DEFAULT_SETTINGS):
        self.settings = settings

    def check(self, new: ClusterDescriptor, old: ClusterDescriptor) -> None:
        check_storage_change(old.storage, new.storage)
        self.check_pod_policy(new, old)
        self.check_network_policy(old.network_policy, new.network_policy)
        self.check_config_update(ConfigTree(old.aerospike_config), ConfigTree(new.aerospike_config),
                                 "spec.aerospikeConfig")
        self.check_racks(new, old)

    def check_pod_policy(self, new: ClusterDescriptor, old: ClusterDescriptor) -> None:
        new_pod, old_pod = new.pod_spec, old.pod_spec
        if new_pod.multi_pod_per_host != old_pod.multi_pod_per_host:
            raise ImmutabilityViolation("cannot update MultiPodPerHost setting",
                                        field="spec.podSpec.multiPodPerHost",
                                        old=old_pod.multi_pod_per_host, new=new_pod.multi_pod_per_host)

        if (new_pod.host_network != old_pod.host_network
                and (new_pod.multi_pod_per_host or old_pod.multi_pod_per_host)):
            raise ImmutabilityViolation("cannot toggle hostNetwork while MultiPodPerHost is enabled",
                                        field="spec.podSpec.hostNetwork",
                                        old=old_pod.host_network, new=new_pod.host_network)

    def check_network_policy(self, old: NetworkPolicy, new: NetworkPolicy) -> None:
        if old.fabric_type != new.fabric_type:
            raise ImmutabilityViolation("cannot update fabric type", field="spec.aerospikeNetworkPolicy.fabric",
                                        old=old.fabric_type, new=new.fabric_type)
        if old.tls_fabric_type != new.tls_fabric_type:
            raise ImmutabilityViolation("cannot update tlsFabric type",
                                        field="spec.aerospikeNetworkPolicy.tlsFabric",
                                        old=old.tls_fabric_type, new=new.tls_fabric_type)

        for _, type_attr, names_attr, names_field in NETWORK_DIRECTIONS:
            if getattr(old, type_attr) != CUSTOM_INTERFACE or getattr(new, type_attr) != CUSTOM_INTERFACE:
                continue
            old_names = getattr(old, names_attr)
            new_names = getattr(new, names_attr)
            if old_names != new_names:
                raise ImmutabilityViolation(
                    f"cannot change/update {names_field}",
                    field=f"spec.aerospikeNetworkPolicy.{names_field}",
                    old=list(old_names or []), new=list(new_names or []),
                )

    def check_racks(self, new: ClusterDescriptor, old: ClusterDescriptor) -> None:
        new_racks = {r.id: r for r in effective_racks(new.aerospike_config, new.storage, new.rack_config,
                                                      self.settings.default_rack_id)}
        old_racks = {r.id: r for r in effective_racks(old.aerospike_config, old.storage, old.rack_config,
                                                      self.settings.default_rack_id)}

        for rack_id, old_rack in old_racks.items():
            new_rack = new_racks.get(rack_id)
            if new_rack is None:
                continue

            old_identity = old_rack.rack.identity()
            new_identity = new_rack.rack.identity()
            for key, old_value in old_identity.items():
                if new_identity[key] != old_value:
                    raise ImmutabilityViolation(
                        f"old RackConfig (NodeName, RackLabel, Region, Zone) cannot be updated, rack {rack_id}",
                        field=f"spec.rackConfig.racks[{rack_id}].{key}", old=old_value, new=new_identity[key],
                    )

            old_own = old_rack.rack.storage or StorageSpec()
            new_own = new_rack.rack.storage or StorageSpec()
            if old_own.volumes or new_own.volumes:
                check_storage_change(old_rack.storage, new_rack.storage,
                                     where=f"spec.rackConfig.racks[{rack_id}].storage")

            if old_rack.rack.aerospike_config or new_rack.rack.aerospike_config:
                self.check_config_update(old_rack.config, new_rack.config,
                                         f"spec.rackConfig.racks[{rack_id}].aerospikeConfig")

    def check_config_update(self, old: ConfigTree, new: ConfigTree, where: str) -> None:
        logger.debug(f"Checking {where} update")
        if old.security_enabled() and not new.security_enabled():
            raise ImmutabilityViolation("cannot disable cluster security in running cluster",
                                        field=f"{where}.security", old=True, new=False)

        self.check_tls_update(old, new, where)
        for conn_type in NETWORK_CONNECTION_TYPES:
            self.check_connection_update(old, new, conn_type, where)
        self.check_namespace_update(old, new, where)

    def check_tls_update(self, old: ConfigTree, new: ConfigTree, where: str) -> None:
        """
        A TLS entry in use by a connection keeps its CA material: ca-file
        cannot change and CA settings cannot disappear altogether.
        """
        old_tls = old.lookup("network", "tls")
        new_tls = new.lookup("network", "tls")
        if not (old_tls.present and new_tls.present) or old_tls.value == new_tls.value:
            return

        old_used = old.used_tls_names()
        new_used = new.used_tls_names()
        old_entries = {e.name: e for e in old.tls_entries() if e.name in old_used}

        for entry in new.tls_entries():
            if entry.name not in new_used or entry.name not in old_entries:
                continue
            previous = old_entries[entry.name]
            had_ca = previous.has("ca-file") or previous.has("ca-path")
            has_ca = entry.has("ca-file") or entry.has("ca-path")
            if had_ca and not has_ca:
                raise ImmutabilityViolation("cannot remove used `ca-file` or `ca-path` from tls",
                                            field=f"{where}.network.tls[{entry.name}]")
            if previous.has("ca-file") and entry.has("ca-file") and previous.get("ca-file") != entry.get("ca-file"):
                raise ImmutabilityViolation("cannot change ca-file of used tls",
                                            field=f"{where}.network.tls[{entry.name}].ca-file",
                                            old=previous.get("ca-file"), new=entry.get("ca-file"))

    def check_connection_update(self, old: ConfigTree, new: ConfigTree, conn_type: str, where: str) -> None:
        old_conn = old.connection(conn_type)
        new_conn = new.connection(conn_type)
        field = f"{where}.network.{conn_type}"

        if old_conn.has("tls-name") and new_conn.has("tls-name") and old_conn.get("tls-name") != new_conn.get("tls-name"):
            raise ImmutabilityViolation("cannot modify tls name", field=f"{field}.tls-name",
                                        old=old_conn.get("tls-name"), new=new_conn.get("tls-name"))

        for port in NETWORK_PORTS:
            tls_port = f"tls-{port}"
            for key in (port, tls_port):
                if old_conn.has(key) and new_conn.has(key) and old_conn.get(key) != new_conn.get(key):
                    raise ImmutabilityViolation(f"cannot modify {key} number", field=f"{field}.{key}",
                                                old=old_conn.get(key), new=new_conn.get(key))

            removed = ((old_conn.has(tls_port) and not new_conn.has(tls_port))
                       or (old_conn.has(port) and not new_conn.has(port)))
            if removed and not (old_conn.has(port) and old_conn.has(tls_port)):
                raise ImmutabilityViolation(
                    "cannot remove tls or non-tls configurations unless both configurations have been set initially",
                    field=f"{field}.{port}",
                )

    def check_namespace_update(self, old: ConfigTree, new: ConfigTree, where: str) -> None:
        for ns in new.namespace_entries():
            previous = old.namespace(ns.name)
            if previous is None:
                continue
            for key in FROZEN_NAMESPACE_FIELDS:
                if _value_updated(previous.raw, ns.raw, key):
                    raise ImmutabilityViolation(
                        f"{key} cannot be updated, namespace {ns.name}",
                        field=f"{where}.namespaces[{ns.name}].{key}",
                        old=previous.raw.get(key), new=ns.raw.get(key),
                    )

