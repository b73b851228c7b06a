#!/usr/bin/env python3
"""
AEROGATE DISTRIBUTED SAFETY RULES
---------------------------------
Invariants that span members, racks or generations: security downgrade,
supported versions and upgrade paths, strong-consistency replication
bounds, migrate-fill-delay agreement, device reuse relative to what is
running, the dynamic-config gate and on-demand operation safety.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
from typing import Dict, List, Optional

from aerogate.core.config_tree import ConfigTree, EffectiveRack, effective_racks
from aerogate.core.errors import (
    ExternalValidationError, ImmutabilityViolation, SafetyViolation,
)
from aerogate.core.models import ClusterDescriptor, ClusterStatus
from aerogate.core.oracles import VersionOracle
from aerogate.core.settings import DEFAULT_SETTINGS, EngineSettings
from aerogate.core.versions import get_image_version
from aerogate.validator.structural import storage_claims

logger = logging.getLogger("aerogate.rules")


class DistributedSafetyChecker:
    """
    Checks that need more than one descriptor, or more than one rack, to
    decide. 'racks' are the incoming descriptor's effective racks.
    """

    def __init__(self, version_oracle: VersionOracle, settings: EngineSettings = DEFAULT_SETTINGS):
        self.version_oracle = version_oracle
        self.settings = settings

    def check(self, new: ClusterDescriptor, racks: List[EffectiveRack],
              old: Optional[ClusterDescriptor] = None, status: Optional[ClusterStatus] = None) -> None:
        self.check_security(new, status)
        self.check_version(new, old)
        self.check_sc_replication(new, racks)
        self.check_migrate_fill_delay(racks)
        if status is not None:
            self.check_device_reuse(new, racks, status)
            self.check_dynamic_config(new, status)
        if old is not None:
            self.check_operations(new, old, status)

    def check_security(self, new: ClusterDescriptor, status: Optional[ClusterStatus]) -> None:
        if status is None or not status.has_accepted_config:
            return
        running = ConfigTree(status.aerospike_config)
        if running.security_enabled() and not ConfigTree(new.aerospike_config).security_enabled():
            raise SafetyViolation("cannot disable cluster security in running cluster",
                                  field="spec.aerospikeConfig.security")

    def _compare(self, left: str, right: str) -> int:
        try:
            return self.version_oracle.compare(left, right)
        except Exception as e:
            raise ExternalValidationError(f"failed to check image version: {e}")

    def check_version(self, new: ClusterDescriptor, old: Optional[ClusterDescriptor]) -> None:
        version = get_image_version(new.image)
        if self._compare(version, self.settings.base_version) < 0:
            raise SafetyViolation(
                f"image version {version} not supported. Base version {self.settings.base_version}",
                field="spec.image",
            )

        if old is None:
            return

        old_version = get_image_version(old.image)
        try:
            err = self.version_oracle.is_valid_upgrade(old_version, version)
        except Exception as e:
            raise ExternalValidationError(f"failed to start upgrade: {e}")
        if err:
            raise ExternalValidationError(f"failed to start upgrade: {err}", field="spec.image",
                                          old=old_version, new=version)

    def check_sc_replication(self, new: ClusterDescriptor, racks: List[EffectiveRack]) -> None:
        """AP namespaces may run with more copies than members; SC namespaces may not."""
        for rack in racks:
            for ns in rack.config.namespace_entries():
                if not ns.strong_consistency:
                    continue
                rf = ns.replication_factor(self.settings.default_replication_factor)
                if rf > new.size:
                    raise SafetyViolation(
                        f"strong-consistency namespace {ns.name} replication-factor {rf} cannot be more than "
                        f"cluster size {new.size}",
                        field=f"namespaces[{ns.name}].replication-factor", bound=new.size,
                    )

    def check_migrate_fill_delay(self, racks: List[EffectiveRack]) -> None:
        baseline = None
        for rack in racks:
            delay = rack.config.migrate_fill_delay()
            if baseline is None:
                baseline = (rack.id, delay)
            elif delay != baseline[1]:
                raise SafetyViolation(
                    f"migrate-fill-delay value should be same across all racks: rack {baseline[0]} has "
                    f"{baseline[1]}, rack {rack.id} has {delay}",
                    field="service.migrate-fill-delay",
                )

    def check_device_reuse(self, new: ClusterDescriptor, racks: List[EffectiveRack], status: ClusterStatus) -> None:
        """
        A device or file moving between namespaces must be dropped first and
        observed gone before it is reassigned.

        The cluster-level config is compared with the running cluster-level
        config, and each rack with the running rack of the same ID. A rack
        that is not running yet is compared with every running rack.
        """
        if not status.has_accepted_config:
            return

        running_racks = {
            r.id: r.config for r in effective_racks(status.aerospike_config, status.storage, status.rack_config,
                                                    self.settings.default_rack_id)
        }
        comparisons = [(ConfigTree(new.aerospike_config), [ConfigTree(status.aerospike_config)])]
        for rack in racks:
            running = running_racks.get(rack.id)
            comparisons.append((rack.config, [running] if running is not None else list(running_racks.values())))

        for config, running_configs in comparisons:
            devices, files = storage_claims(config)
            for running in running_configs:
                self._check_claims(devices, files, running)

    def _check_claims(self, devices: Dict[str, str], files: Dict[str, str], running: ConfigTree) -> None:
        for ns in running.namespace_entries():
            for what, tokens, claims in (("device", ns.device_tokens(), devices),
                                         ("file", ns.file_tokens(), files)):
                for token in tokens:
                    owner = claims.get(token)
                    if owner and owner != ns.name:
                        raise SafetyViolation(
                            f"{what} {token} can not be removed and re-used in a different namespace at the "
                            f"same time. It has to be removed first. currentNamespace `{owner}`, "
                            f"oldNamespace `{ns.name}`",
                            field=f"namespaces[{owner}].storage-engine",
                        )

    def check_dynamic_config(self, new: ClusterDescriptor, status: ClusterStatus) -> None:
        if not new.enable_dynamic_config_update or not status.pods:
            return

        minimum = self.settings.min_init_version_for_dynamic_config
        for pod in status.pods.values():
            if pod.init_image:
                version = get_image_version(pod.init_image, field=f"status.pods.{pod.name}.initImage")
                too_old = self._compare(version, minimum) < 0
            else:
                too_old = True
            if too_old:
                logger.debug(f"Pod {pod.name} init image {pod.init_image!r} is older than {minimum}")
                raise SafetyViolation(
                    f"cannot enable enableDynamicConfigUpdate flag, some init containers are running version "
                    f"less than {minimum}",
                    field="spec.enableDynamicConfigUpdate",
                )

    def check_operations(self, new: ClusterDescriptor, old: ClusterDescriptor,
                         status: Optional[ClusterStatus]) -> None:
        if not new.operations:
            return

        new_op = new.operations[0]
        old_op = old.operations[0] if old.operations else None
        if old_op is not None and old_op.id == new_op.id and old_op != new_op:
            raise ImmutabilityViolation(f"operation {new_op.id} cannot be updated", field="spec.operations",
                                        old=old_op, new=new_op)

        status = status or ClusterStatus()
        unknown = set(new_op.pod_list) - status.pod_names()
        if unknown:
            raise SafetyViolation(f"invalid pod names in operation {sorted(unknown)}",
                                  field="spec.operations.podList")

        if tuple(new.operations) == tuple(status.operations):
            return

        if new.size > status.size:
            raise SafetyViolation("cannot change Spec.Operations along with cluster scale-up",
                                  field="spec.operations")
        new_racks = len(new.rack_config.racks)
        if new_racks != len(status.rack_config.racks) or new_racks != len(old.rack_config.racks):
            raise SafetyViolation("cannot change Spec.Operations along with rack addition/removal",
                                  field="spec.operations")
        if new.image != status.image or new.image != old.image:
            raise SafetyViolation("cannot change Spec.Operations along with image update",
                                  field="spec.operations")
