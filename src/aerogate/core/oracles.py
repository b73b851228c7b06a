#!/usr/bin/env python3
"""
AEROGATE COLLABORATORS
----------------------
The engine consults three outside services: a config schema validator,
a version-compatibility oracle and a local certificate reader. They are
injected into the AdmissionOrchestrator; the classes below are the
defaults used when the caller supplies nothing else.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from cryptography import x509
from cryptography.x509.oid import NameOID

from aerogate.core.versions import compare_versions

logger = logging.getLogger("aerogate.oracles")


class SchemaValidator(Protocol):
    def validate(self, config: Dict[str, Any], version: str) -> Tuple[bool, List[str]]:
        ...


class VersionOracle(Protocol):
    def compare(self, left: str, right: str) -> int:
        ...

    def is_valid_upgrade(self, old_version: str, new_version: str) -> Optional[str]:
        ...


class CertificateReader(Protocol):
    def read_names(self, path: str) -> Tuple[str, List[str]]:
        ...


class DottedVersionOracle:
    """Numeric dotted-version ordering; any parseable transition is allowed."""

    def compare(self, left: str, right: str) -> int:
        return compare_versions(left, right)

    def is_valid_upgrade(self, old_version: str, new_version: str) -> Optional[str]:
        try:
            self.compare(old_version, new_version)
        except ValueError as e:
            return str(e)
        return None


class X509CertificateReader:
    """Reads the subject CN and DNS SANs from a PEM certificate on disk."""

    def read_names(self, path: str) -> Tuple[str, List[str]]:
        pem = Path(path).read_bytes()
        cert = x509.load_pem_x509_certificate(pem)

        common_name = ""
        cn_attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if cn_attrs:
            common_name = str(cn_attrs[0].value)

        try:
            san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            dns_names = list(san.value.get_values_for_type(x509.DNSName))
        except x509.ExtensionNotFound:
            dns_names = []

        logger.debug(f"Certificate {path}: CN={common_name!r}, SAN={dns_names}")
        return common_name, dns_names
