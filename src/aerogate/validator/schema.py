#!/usr/bin/env python3
"""
AEROGATE SCHEMA CATALOG - The Judge
-----------------------------------
Default schema oracle. Validates a server configuration tree against a
distilled, per-version catalog of the configuration reference before
any cross-field rule looks at it.

Author: AeroGate Team
Date: 2026-10-18
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from aerogate.core.versions import compare_versions

logger = logging.getLogger("aerogate.validator")

DEFAULT_CATALOG = Path(__file__).resolve().parent.parent / "catalog" / "asconfig_catalog.json"

SCALAR_TYPES = {
    "string": (str,),
    "integer": (int,),
    "boolean": (bool,),
    "number": (int, float),
}


class CatalogSchemaValidator:
    """
    Enforces section shapes and field types for the closest catalog
    entry at or below the target server version.
    """

    def __init__(self, catalog: Optional[Dict[str, Any]] = None,
                 catalog_path: Union[str, Path, None] = None, strict: bool = False):
        """
        Args:
            catalog: Already-loaded catalog mapping; wins over catalog_path.
            catalog_path: JSON catalog file; defaults to the bundled one.
            strict: Reject fields the catalog does not know about.
        """
        if catalog is None:
            path = Path(catalog_path) if catalog_path else DEFAULT_CATALOG
            try:
                with open(path, "r", encoding="utf-8") as f:
                    catalog = json.load(f)
            except (FileNotFoundError, json.JSONDecodeError) as e:
                logger.error(f"Unable to load schema catalog from {path}")
                raise RuntimeError(f"Failed to load catalog: {str(e)}")
        self.catalog = catalog
        self.strict = strict

    def schema_for(self, version: str) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        """Picks the newest catalog version that is not newer than 'version'."""
        best = None
        for candidate in self.catalog.get("versions", {}):
            if compare_versions(candidate, version) <= 0:
                if best is None or compare_versions(candidate, best) > 0:
                    best = candidate
        if best is None:
            return None, None
        return best, self.catalog["versions"][best]

    def validate(self, config: Dict[str, Any], version: str) -> Tuple[bool, List[str]]:
        if not isinstance(config, dict):
            return False, ["configuration is not a mapping"]

        matched, schema = self.schema_for(version)
        if schema is None:
            return False, [f"no schema catalog entry for server version {version}"]

        logger.debug(f"Validating config against catalog version {matched} (target {version})")
        errors: List[str] = []
        self._deep_validate(config, schema, "", errors)
        return not errors, errors

    def _deep_validate(self, doc: Any, schema: Dict[str, Any], path: str, errors: List[str]) -> None:
        for req in schema.get("required", []):
            if req not in doc:
                errors.append(f"'{path + req}' is required but missing")

        for removed in schema.get("forbidden", []):
            if removed in doc:
                errors.append(f"'{path + removed}' is not supported in this server version")

        schema_fields = schema.get("fields", {})
        for key, value in doc.items():
            field_info = schema_fields.get(key)

            if not field_info:
                if self.strict:
                    errors.append(f"unknown field '{path + key}'")
                continue

            expected_type = field_info.get("type")

            if expected_type == "object":
                if not isinstance(value, dict):
                    errors.append(f"'{path + key}' must be a map")
                    continue
                self._deep_validate(value, field_info, f"{path}{key}.", errors)

            elif expected_type == "array":
                if not isinstance(value, list):
                    errors.append(f"'{path + key}' must be a list")
                    continue
                item_schema = field_info.get("items")
                if not item_schema:
                    continue
                for i, item in enumerate(value):
                    item_path = f"{path}{key}[{i}]"
                    if item_schema.get("type") == "object":
                        if not isinstance(item, dict):
                            errors.append(f"'{item_path}' must be a map")
                            continue
                        self._deep_validate(item, item_schema, f"{item_path}.", errors)
                    elif not self._scalar_ok(item, item_schema.get("type")):
                        errors.append(f"'{item_path}' must be of type {item_schema.get('type')}")

            elif not self._scalar_ok(value, expected_type):
                errors.append(f"'{path + key}' must be of type {expected_type}")

    def _scalar_ok(self, value: Any, expected_type: Optional[str]) -> bool:
        # 'any' and unknown type names accept everything
        if expected_type not in SCALAR_TYPES:
            return True
        if isinstance(value, bool) and expected_type != "boolean":
            return False
        return isinstance(value, SCALAR_TYPES[expected_type])
