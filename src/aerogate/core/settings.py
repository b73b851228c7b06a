#!/usr/bin/env python3
"""
AEROGATE SETTINGS
-----------------
Tunable constants for the admission engine. Defaults mirror what the
operator ships with; a YAML file can override any of them.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from ruamel.yaml import YAML, YAMLError

logger = logging.getLogger("aerogate.settings")


@dataclass(frozen=True)
class EngineSettings:
    base_version: str = "6.0.0.0"
    min_init_version_for_dynamic_config: str = "2.21.0"
    max_cluster_size: int = 256
    min_rack_id: int = 1
    max_rack_id: int = 1000000
    default_rack_id: int = 0
    default_replication_factor: int = 2
    default_work_directory: str = "/opt/aerospike"
    secret_store_prefixes: Tuple[str, ...] = ("secrets:", "vault:")
    network_annotation: str = "k8s.v1.cni.cncf.io/networks"


DEFAULT_SETTINGS = EngineSettings()


def load_settings(path: Union[str, Path]) -> EngineSettings:
    """
    Reads overrides from a YAML mapping and layers them over the defaults.

    Raises:
        ValueError: the file is not a mapping, or names an unknown setting.
        OSError: the file cannot be read.
    """
    config_path = Path(path)
    yaml = YAML(typ="safe")

    try:
        data = yaml.load(config_path.read_text(encoding="utf-8"))
    except YAMLError as e:
        raise ValueError(f"Settings file {config_path} is not valid YAML: {e}")

    if data is None:
        return DEFAULT_SETTINGS
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {config_path} must contain a mapping")

    known = {f.name for f in fields(EngineSettings)}
    overrides: Dict[str, Any] = {}
    for key, value in data.items():
        attr = str(key).replace("-", "_")
        if attr not in known:
            raise ValueError(f"Unknown setting '{key}' in {config_path}")
        if attr == "secret_store_prefixes":
            value = tuple(value)
        overrides[attr] = value

    logger.debug(f"Loaded {len(overrides)} setting override(s) from {config_path}")
    return replace(DEFAULT_SETTINGS, **overrides)
