#!/usr/bin/env python3
"""
AEROGATE ENGINE - The Admission Orchestrator
--------------------------------------------
Sequences the admission phases for one incoming change:

    1. structural    (the new descriptor alone)
    2. immutability  (new vs. previously accepted; updates only)
    3. safety        (new, old and last-observed status together)
    4. batch         (batch sizes and the disruption budget)

The first failing phase decides the outcome; accepted changes may carry
advisory warnings. The engine holds no state between calls and never
modifies its inputs.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from aerogate.core.errors import AdmissionError, ErrorKind, StructuralError
from aerogate.core.loader import descriptor_from_manifest, read_manifest, status_from_manifest
from aerogate.core.models import ClusterDescriptor, ClusterStatus
from aerogate.core.oracles import (
    CertificateReader, DottedVersionOracle, SchemaValidator, VersionOracle, X509CertificateReader,
)
from aerogate.core.settings import DEFAULT_SETTINGS, EngineSettings
from aerogate.rules.batch import BatchSafetyCalculator
from aerogate.rules.immutability import ImmutabilityChecker
from aerogate.rules.safety import DistributedSafetyChecker
from aerogate.validator.schema import CatalogSchemaValidator
from aerogate.validator.structural import StructuralValidator

logger = logging.getLogger("aerogate.engine")


@dataclass
class AdmissionResult:
    """Outcome of one admission call."""
    allowed: bool
    warnings: List[str] = field(default_factory=list)
    reason: Optional[ErrorKind] = None
    message: str = ""
    field_path: Optional[str] = None
    bound: Optional[int] = None

    @classmethod
    def rejected(cls, error: AdmissionError, warnings: List[str]) -> "AdmissionResult":
        return cls(allowed=False, warnings=list(warnings), reason=error.kind,
                   message=error.message, field_path=error.field, bound=error.bound)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "warnings": list(self.warnings),
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "field": self.field_path,
            "bound": self.bound,
        }


class AdmissionOrchestrator:
    """
    Principal entry point. Collaborators are injected; the defaults are
    the bundled schema catalog, dotted version ordering and a PEM reader.
    """

    def __init__(self, settings: EngineSettings = DEFAULT_SETTINGS,
                 schema_validator: Optional[SchemaValidator] = None,
                 version_oracle: Optional[VersionOracle] = None,
                 cert_reader: Optional[CertificateReader] = None):
        self.settings = settings
        self.structural = StructuralValidator(
            schema_validator or CatalogSchemaValidator(),
            cert_reader or X509CertificateReader(),
            settings,
        )
        self.immutability = ImmutabilityChecker(settings)
        self.safety = DistributedSafetyChecker(version_oracle or DottedVersionOracle(), settings)
        self.batch = BatchSafetyCalculator(settings)

    def admit(self, new: ClusterDescriptor, old: Optional[ClusterDescriptor] = None,
              status: Optional[ClusterStatus] = None) -> AdmissionResult:
        """
        Accepts or rejects 'new'. A missing 'old' means a creation request;
        a missing 'status' means nothing has been accepted before.
        """
        logger.info(f"Validate {'update' if old is not None else 'create'}: {new.namespaced_name}")
        warnings: List[str] = []

        try:
            racks = self.structural.validate(new, status)
            logger.debug(f"{new.namespaced_name}: structural checks passed ({len(racks)} rack(s))")

            if old is not None:
                self.immutability.check(new, old)
                logger.debug(f"{new.namespaced_name}: immutability checks passed")

            self.safety.check(new, racks, old, status)
            warnings.extend(self.batch.check(new, racks, status))
        except AdmissionError as e:
            logger.warning(f"Rejected {new.namespaced_name}: {e.kind.value}: {e.message}")
            return AdmissionResult.rejected(e, warnings)

        for warning in warnings:
            logger.info(f"{new.namespaced_name}: warning: {warning}")
        return AdmissionResult(allowed=True, warnings=warnings)

    def admit_files(self, new_path: Path, old_path: Optional[Path] = None,
                    status_path: Optional[Path] = None) -> AdmissionResult:
        """
        Loads manifests from disk and admits them. A status block inside
        the new manifest is used when no separate status file is given.

        A manifest whose fields have the wrong shape is rejected with a
        StructuralError result.

        Raises:
            ManifestError: a manifest cannot be read or parsed.
            OSError: a file cannot be opened.
        """
        new_doc = read_manifest(new_path)
        old_doc = read_manifest(old_path) if old_path is not None else None
        status_doc = read_manifest(status_path) if status_path is not None else new_doc

        try:
            new = descriptor_from_manifest(new_doc, name=Path(new_path).stem)
            old = None
            if old_doc is not None:
                old = descriptor_from_manifest(old_doc, name=new.name, namespace=new.namespace)
            status = status_from_manifest(status_doc)
        except StructuralError as e:
            logger.warning(f"Rejected {new_path}: {e.kind.value}: {e.message}")
            return AdmissionResult.rejected(e, [])

        return self.admit(new, old, status)

    def review_directory(self, root: Path, extension: str = ".yaml",
                         progress_callback: Optional[Callable[[int, int], None]] = None) -> List[Dict[str, Any]]:
        """Treats every manifest under 'root' as a creation request."""
        root = Path(root)
        files = sorted(
            f for f in root.rglob(f"*{extension}")
            if f.is_file() and not f.is_symlink()
        ) if root.is_dir() else [root]

        reports = []
        for processed, file_path in enumerate(files, start=1):
            rel_path = str(file_path.relative_to(root)) if root.is_dir() else file_path.name
            try:
                result = self.admit_files(file_path)
                report = {"file_path": rel_path, "status": "ADMITTED" if result.allowed else "REJECTED"}
                report.update(result.to_dict())
            except (ValueError, OSError) as e:
                logger.error(f"Error reading {rel_path}: {e}")
                report = {"file_path": rel_path, "status": "UNREADABLE", "allowed": False,
                          "reason": None, "message": str(e), "warnings": []}
            reports.append(report)

            if progress_callback:
                progress_callback(processed, len(files))

        return reports

    def generate_summary(self, reports: List[Dict[str, Any]]) -> Dict[str, Any]:
        total = len(reports)
        admitted = sum(1 for r in reports if r.get("allowed"))
        unreadable = sum(1 for r in reports if r.get("status") == "UNREADABLE")
        return {
            "total_files": total,
            "admitted": admitted,
            "rejected": total - admitted - unreadable,
            "unreadable": unreadable,
            "admission_rate": (admitted / total) if total > 0 else 0,
            "summary_timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
        }
