#!/usr/bin/env python3
"""
AEROGATE POD POLICY RULES
-------------------------
Pod-level checks: networking mode, DNS policy, container naming, reserved
labels and resource requests/limits.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from aerogate.core.errors import StructuralError
from aerogate.core.models import PodPolicy, Resources, StorageSpec

logger = logging.getLogger("aerogate.validator")

SERVER_CONTAINER_NAME = "aerospike-server"
INIT_CONTAINER_NAME = "aerospike-init"
RESERVED_LABELS = ["app", "aerospike.com/rack-id", "aerospike.com/cr"]

QUANTITY_PATTERN = re.compile(r"^([+-]?[0-9.]+)([eE][+-]?[0-9]+|[a-zA-Z]*)$")
QUANTITY_SUFFIXES = {
    "": Decimal(1),
    "n": Decimal("1e-9"), "u": Decimal("1e-6"), "m": Decimal("1e-3"),
    "k": Decimal("1e3"), "M": Decimal("1e6"), "G": Decimal("1e9"),
    "T": Decimal("1e12"), "P": Decimal("1e15"), "E": Decimal("1e18"),
    "Ki": Decimal(2) ** 10, "Mi": Decimal(2) ** 20, "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40, "Pi": Decimal(2) ** 50, "Ei": Decimal(2) ** 60,
}


def parse_quantity(value: Any) -> Decimal:
    """
    Parses a Kubernetes resource quantity ("500m", "2Gi", "1e3", 4).

    Raises:
        ValueError: the value is not a quantity.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid quantity {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    text = str(value).strip()
    match = QUANTITY_PATTERN.match(text)
    if not match:
        raise ValueError(f"invalid quantity {value!r}")

    number, suffix = match.groups()
    try:
        amount = Decimal(number)
    except InvalidOperation:
        raise ValueError(f"invalid quantity {value!r}")

    if suffix[:1] in ("e", "E") and len(suffix) > 1:
        return amount * (Decimal(10) ** int(suffix[1:]))
    if suffix not in QUANTITY_SUFFIXES:
        raise ValueError(f"invalid quantity suffix in {value!r}")
    return amount * QUANTITY_SUFFIXES[suffix]


def validate_resources(resources: Optional[Resources], container: str) -> None:
    if resources is None or not resources.limits or not resources.requests:
        return

    for name, limit in resources.limits.items():
        if name not in resources.requests:
            continue
        try:
            limit_qty = parse_quantity(limit)
            request_qty = parse_quantity(resources.requests[name])
        except ValueError as e:
            raise StructuralError(f"{container} resources: {e}", field=f"{container}.resources.{name}")
        if limit_qty < request_qty:
            raise StructuralError(
                f"resource.Limits {name} ({limit}) cannot be less than resource.Requests "
                f"{name} ({resources.requests[name]}) for container {container}",
                field=f"{container}.resources.{name}",
            )


def _validate_containers(containers, reserved: List[str], kind: str) -> None:
    seen = set()
    for container in containers:
        if container.name in reserved:
            raise StructuralError(f"cannot use reserved {kind} container name: {container.name}",
                                  field=f"spec.podSpec.{kind}s")
        if container.name in seen:
            raise StructuralError(f"cannot have duplicate {kind} container name: {container.name}",
                                  field=f"spec.podSpec.{kind}s")
        seen.add(container.name)
        validate_resources(container.resources, container.name)


def validate_dns(pod_spec: PodPolicy) -> None:
    if pod_spec.dns_policy == "Default":
        raise StructuralError("dnsPolicy: Default is not supported", field="spec.podSpec.dnsPolicy")
    if pod_spec.dns_policy == "None" and not pod_spec.dns_config:
        raise StructuralError("dnsConfig is required field when dnsPolicy is set to None",
                              field="spec.podSpec.dnsConfig")


def validate_pod_spec(pod_spec: PodPolicy, racks_storage: List[StorageSpec]) -> None:
    """
    Args:
        pod_spec: Pod policy of the incoming descriptor.
        racks_storage: Effective storage of every rack, used for the init
            container resource requirement.
    """
    if pod_spec.host_network and pod_spec.multi_pod_per_host:
        raise StructuralError("host networking cannot be enabled with multi pod per host",
                              field="spec.podSpec.hostNetwork")

    validate_dns(pod_spec)

    _validate_containers(pod_spec.sidecars, [SERVER_CONTAINER_NAME, INIT_CONTAINER_NAME], "sidecar")
    _validate_containers(pod_spec.init_containers, [SERVER_CONTAINER_NAME, INIT_CONTAINER_NAME],
                         "initContainer")

    for label in RESERVED_LABELS:
        if label in pod_spec.labels:
            raise StructuralError(f"label: {label} is internally set by operator and shouldn't be specified",
                                  field="spec.podSpec.metadata.labels")

    validate_resources(pod_spec.aerospike_resources, SERVER_CONTAINER_NAME)
    validate_resources(pod_spec.init_container_resources, INIT_CONTAINER_NAME)

    threads = [s.cleanup_threads for s in racks_storage if s.cleanup_threads != 1]
    if threads:
        resources = pod_spec.init_container_resources
        if resources is None or not resources.limits:
            raise StructuralError(
                f"init container spec should have resources.Limits set if CleanupThreads is more than 1 "
                f"(found {max(threads)})",
                field="spec.podSpec.aerospikeInitContainer.resources",
            )
