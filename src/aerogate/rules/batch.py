#!/usr/bin/env python3
"""
AEROGATE BATCH SAFETY
---------------------
Decides whether rolling-update and scale-down batch sizes, and the
maxUnavailable disruption budget, can be honoured without losing data
given the replication factors and rack topology.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from aerogate.core.config_tree import EffectiveRack, effective_racks
from aerogate.core.errors import SafetyViolation, StructuralError
from aerogate.core.models import ClusterDescriptor, ClusterStatus, IntOrPercent, RackConfig
from aerogate.core.settings import DEFAULT_SETTINGS, EngineSettings

logger = logging.getLogger("aerogate.rules")

ROLLING_UPDATE_FIELD = "spec.rackConfig.rollingUpdateBatchSize"
SCALE_DOWN_FIELD = "spec.rackConfig.scaleDownBatchSize"
MAX_IGNORABLE_PODS_FIELD = "spec.rackConfig.maxIgnorablePods"
MAX_UNAVAILABLE_FIELD = "spec.maxUnavailable"


def validate_int_or_percent(value: IntOrPercent, field: str) -> int:
    """
    Resolves 'value' against 100 and returns the count.

    Raises:
        StructuralError: the value is neither an integer nor "N%".
        SafetyViolation: the value is negative, or above 100 percent.
    """
    try:
        count = value.scaled(100)
    except ValueError as e:
        raise StructuralError(f"{field}: {e}", field=field)

    if count < 0:
        raise SafetyViolation(f"can not use negative {field}: {value}", field=field, bound=0)
    if value.is_percent and count > 100:
        raise SafetyViolation(f"{field}: {value} must not be greater than 100 percent", field=field, bound=100)
    return count


@dataclass
class NamespacePlacement:
    racks: int = 0
    replication_factor: int = 0
    strong_consistency: bool = False


class BatchSafetyCalculator:
    """Batch-size and disruption-budget safety for one incoming descriptor."""

    def __init__(self, settings: EngineSettings = DEFAULT_SETTINGS):
        self.settings = settings

    def check(self, new: ClusterDescriptor, racks: List[EffectiveRack],
              status: Optional[ClusterStatus] = None) -> List[str]:
        """Returns advisory warnings; raises on the first unsafe value."""
        rack_config = new.rack_config
        self.check_batch_size(rack_config.rolling_update_batch_size, ROLLING_UPDATE_FIELD, False,
                              rack_config, racks, status)
        self.check_batch_size(rack_config.scale_down_batch_size, SCALE_DOWN_FIELD, True,
                              rack_config, racks, status)

        if rack_config.max_ignorable_pods is not None:
            validate_int_or_percent(rack_config.max_ignorable_pods, MAX_IGNORABLE_PODS_FIELD)

        return self.check_max_unavailable(new, racks)

    def check_batch_size(self, batch_size: Optional[IntOrPercent], field: str, scale_down: bool,
                         rack_config: RackConfig, racks: List[EffectiveRack],
                         status: Optional[ClusterStatus]) -> None:
        if batch_size is None:
            return
        if validate_int_or_percent(batch_size, field) == 0:
            return

        self.check_topology(rack_config, racks, field, scale_down)

        if status is not None and status.has_accepted_config:
            running = effective_racks(status.aerospike_config, status.storage, status.rack_config,
                                      self.settings.default_rack_id)
            try:
                self.check_topology(status.rack_config, running, field, scale_down)
            except SafetyViolation as e:
                raise SafetyViolation(f"status invalid for {field}: update, {e.message}", field=field)

    def placements(self, racks: List[EffectiveRack]) -> Dict[str, NamespacePlacement]:
        """Per namespace: how many racks carry it, its lowest factor and whether any rack runs it SC."""
        placements: Dict[str, NamespacePlacement] = {}
        for rack in racks:
            for ns in rack.config.namespace_entries():
                rf = ns.replication_factor(self.settings.default_replication_factor)
                placement = placements.get(ns.name)
                if placement is None:
                    placements[ns.name] = NamespacePlacement(1, rf, ns.strong_consistency)
                    continue
                placement.racks += 1
                placement.replication_factor = min(placement.replication_factor, rf)
                placement.strong_consistency = placement.strong_consistency or ns.strong_consistency
        return placements

    def check_topology(self, rack_config: RackConfig, racks: List[EffectiveRack],
                       field: str, scale_down: bool) -> None:
        if len(rack_config.racks) < 2:
            raise SafetyViolation(f"can not use {field} when number of racks is less than two", field=field)

        for name, placement in sorted(self.placements(racks).items()):
            if name not in rack_config.namespaces:
                raise SafetyViolation(f"can not use {field} when there is any non-rack enabled namespace {name}",
                                      field=field)
            if placement.racks <= 1:
                raise SafetyViolation(f"can not use {field} when namespace `{name}` is configured in only one rack",
                                      field=field)
            if placement.replication_factor <= 1:
                raise SafetyViolation(
                    f"can not use {field} when namespace `{name}` is configured with replication-factor 1",
                    field=field,
                )
            if scale_down and placement.strong_consistency:
                raise SafetyViolation(
                    f"can not use {field} when namespace `{name}` is configured with Strong Consistency",
                    field=field,
                )

    def safe_max_unavailable(self, size: int, racks: List[EffectiveRack]) -> int:
        """
        The lowest replication factor across every namespace of every rack,
        capped by cluster size. Factor-1 namespaces already tolerate total
        loss and do not lower the bound.
        """
        bound = size
        for rack in racks:
            for ns in rack.config.namespace_entries():
                rf = ns.replication_factor(self.settings.default_replication_factor)
                if rf == 1:
                    continue
                bound = min(bound, rf)
        return bound

    def check_max_unavailable(self, new: ClusterDescriptor, racks: List[EffectiveRack]) -> List[str]:
        if new.disable_pdb:
            return [
                "Spec field 'spec.maxUnavailable' will be omitted from Custom Resource (CR) "
                "because 'spec.disablePDB' is true."
            ]

        requested = new.max_unavailable or IntOrPercent(1)
        validate_int_or_percent(requested, MAX_UNAVAILABLE_FIELD)

        if new.size == 1:
            logger.debug("Cluster size is 1; skipping maxUnavailable bound")
            return []

        bound = self.safe_max_unavailable(new.size, racks)
        resolved = requested.scaled(new.size, round_up=True)
        if resolved >= bound:
            raise SafetyViolation(
                f"maxUnavailable {requested} cannot be greater than or equal to {bound} as it may result in "
                f"data loss. Set it to a lower value",
                field=MAX_UNAVAILABLE_FIELD, bound=bound,
            )
        return []
