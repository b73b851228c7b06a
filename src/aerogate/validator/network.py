#!/usr/bin/env python3
"""
AEROGATE NETWORK & TLS RULES
----------------------------
Cross-field network checks the generic schema cannot express: TLS list
shape, tls-name/tls-port pairing per connection, tls-authenticate-client
values, the operator client certificate spec and custom-interface
network policies.

Author: AeroGate Team
Date: 2026-10-18
"""

import ipaddress
import logging
import re
from typing import Any, Dict, List, Optional, Set

from aerogate.core.config_tree import NETWORK_CONNECTION_TYPES, ConfigTree
from aerogate.core.errors import ExternalValidationError, StructuralError
from aerogate.core.models import (
    CUSTOM_INTERFACE, NETWORK_DIRECTIONS, ClientCertSpec, ClusterDescriptor,
)
from aerogate.core.oracles import CertificateReader
from aerogate.core.settings import EngineSettings

logger = logging.getLogger("aerogate.validator")

DNS_NAME_PATTERN = re.compile(
    r"^([a-zA-Z0-9_][a-zA-Z0-9_-]{0,62})(\.[a-zA-Z0-9_][a-zA-Z0-9_-]{0,62})*[._]?$"
)


def is_dns_name(value: str) -> bool:
    if not value or len(value.replace(".", "")) > 255:
        return False
    try:
        ipaddress.ip_address(value)
        return False
    except ValueError:
        pass
    return bool(DNS_NAME_PATTERN.match(value))


def validate_tls_block(config: ConfigTree) -> Set[str]:
    """Checks network.tls entries and returns the declared TLS names."""
    tls = config.lookup("network", "tls")
    if tls.absent:
        return set()
    if not isinstance(tls.value, list) or not all(isinstance(t, dict) for t in tls.value):
        raise StructuralError(f"aerospikeConfig.network.tls not a list of maps {tls.value!r}", field="network.tls")

    names = set()
    for entry in config.tls_entries():
        if entry.name:
            names.add(entry.name)
        if entry.has("ca-path") and entry.has("ca-file"):
            raise StructuralError(
                f"both `ca-path` and `ca-file` cannot be set in `tls`. tlsConf {entry.raw}",
                field="network.tls",
            )
    return names


def validate_connections(config: ConfigTree, tls_names: Set[str]) -> None:
    for conn_type in NETWORK_CONNECTION_TYPES:
        conn = config.connection(conn_type)
        if not conn.exists:
            continue
        if conn.has("tls-name"):
            if not conn.has("tls-port"):
                raise StructuralError(
                    f"you can't specify tls-name for network.{conn_type} without specifying tls-port",
                    field=f"network.{conn_type}.tls-name",
                )
            if conn.tls_name not in tls_names:
                raise StructuralError(
                    f"tls-name '{conn.get('tls-name')}' is not configured",
                    field=f"network.{conn_type}.tls-name",
                )
        else:
            for param in conn.tls_params():
                raise StructuralError(
                    f"you can't specify {param} for network.{conn_type} without specifying tls-name",
                    field=f"network.{conn_type}.{param}",
                )


def validate_tls_authenticate_client(service_conf: Dict[str, Any]) -> List[str]:
    """
    Returns the DNS names listed in tls-authenticate-client; an empty list
    when the setting is absent, "any" or disabled.
    """
    if "tls-authenticate-client" not in service_conf:
        return []

    value = service_conf["tls-authenticate-client"]
    if isinstance(value, bool):
        if not value:
            return []
        raise StructuralError(f"tls-authenticate-client contains invalid value: {value}",
                              field="network.service.tls-authenticate-client")
    if isinstance(value, str):
        if value in ("any", "false"):
            return []
        raise StructuralError(f"tls-authenticate-client contains invalid value: {value}",
                              field="network.service.tls-authenticate-client")
    if isinstance(value, list):
        names = []
        for item in value:
            if not isinstance(item, str):
                raise StructuralError(f"tls-authenticate-client contains invalid type value: {value}",
                                      field="network.service.tls-authenticate-client")
            if not is_dns_name(item):
                raise StructuralError(f"tls-authenticate-client contains invalid dns-name: {item}",
                                      field="network.service.tls-authenticate-client")
            names.append(item)
        return names

    raise StructuralError(f"tls-authenticate-client contains invalid type value: {value!r}",
                          field="network.service.tls-authenticate-client")


def read_local_certificate_names(client_cert: Optional[ClientCertSpec],
                                 reader: CertificateReader) -> Set[str]:
    """
    Names from the operator's local client certificate. Secret-sourced
    certificates are not inspected here and yield an empty set.
    """
    if (client_cert is None or client_cert.cert_path_in_operator is None
            or not client_cert.cert_path_in_operator.client_cert_path):
        return set()

    path = client_cert.cert_path_in_operator.client_cert_path
    try:
        common_name, dns_names = reader.read_names(path)
    except (OSError, ValueError) as e:
        raise ExternalValidationError(f"failed to read operator client certificate {path}: {e}")

    names = set(dns_names)
    if common_name:
        names.add(common_name)
    return names


def validate_tls_client_names(config: ConfigTree, client_cert: Optional[ClientCertSpec],
                              reader: CertificateReader) -> None:
    service_conf = config.lookup("network", "service").get({}) or {}
    dns_names = validate_tls_authenticate_client(service_conf)
    if not dns_names:
        return

    local_names = read_local_certificate_names(client_cert, reader)
    if local_names and not local_names.intersection(dns_names):
        raise StructuralError(
            f"tls-authenticate-client ({dns_names}) doesn't contain name from Operator's certificate "
            f"({sorted(local_names)}), configure OperatorClientCertSpec.TLSClientName properly",
            field="network.service.tls-authenticate-client",
        )


def validate_client_cert_shape(spec: ClientCertSpec) -> None:
    if (spec.secret_cert_source is None) == (spec.cert_path_in_operator is None):
        raise StructuralError(
            "either `secretCertSource` or `certPathInOperator` must be set in `operatorClientCertSpec` but not both",
            field="spec.operatorClientCert",
        )

    secret = spec.secret_cert_source
    if secret is not None:
        if bool(secret.client_cert_filename) != bool(secret.client_key_filename):
            raise StructuralError(
                "both `clientCertFilename` and `clientKeyFilename` should be either set or not set in "
                "`secretCertSource`",
                field="spec.operatorClientCert.secretCertSource",
            )
        if secret.ca_certs_filename and secret.ca_certs_source is not None:
            raise StructuralError(
                "both `caCertsFilename` or `caCertsSource` cannot be set in `secretCertSource`",
                field="spec.operatorClientCert.secretCertSource",
            )

    local = spec.cert_path_in_operator
    if local is not None and bool(local.client_cert_path) != bool(local.client_key_path):
        raise StructuralError(
            "both `clientCertPath` and `clientKeyPath` should be either set or not set in `certPathInOperator`",
            field="spec.operatorClientCert.certPathInOperator",
        )

    if not spec.is_configured():
        raise StructuralError("operator client cert is not configured", field="spec.operatorClientCert")


def validate_client_cert_spec(client_cert: Optional[ClientCertSpec], config: ConfigTree) -> None:
    """The client cert spec only matters once the server authenticates clients."""
    service_conf = config.lookup("network", "service").get()
    if not isinstance(service_conf, dict) or "tls-authenticate-client" not in service_conf:
        return

    value = service_conf["tls-authenticate-client"]
    if value is False or value == "false":
        return

    if client_cert is None:
        raise StructuralError("operator client cert is not specified", field="spec.operatorClientCert")

    if value != "any" and not client_cert.tls_client_name:
        raise StructuralError("operator TLSClientName is not specified",
                              field="spec.operatorClientCert.tlsClientName")

    validate_client_cert_shape(client_cert)


def qualify_network_names(names, namespace: str) -> List[str]:
    """Attachment names without a namespace belong to the cluster's namespace."""
    qualified = []
    for name in names:
        name = name.strip()
        if name and "/" not in name:
            name = f"{namespace}/{name}"
        qualified.append(name)
    return qualified


def validate_network_policy(descriptor: ClusterDescriptor, settings: EngineSettings) -> None:
    policy = descriptor.network_policy
    annotation = descriptor.pod_spec.annotations.get(settings.network_annotation, "")
    available = set(qualify_network_names(annotation.split(","), descriptor.namespace))

    for direction, type_attr, names_attr, names_field in NETWORK_DIRECTIONS:
        if getattr(policy, type_attr) != CUSTOM_INTERFACE:
            continue

        names = getattr(policy, names_attr)
        if names is None:
            raise StructuralError(
                f"{names_field} is required with 'customInterface' {direction} type",
                field=f"spec.aerospikeNetworkPolicy.{names_field}",
            )
        if descriptor.pod_spec.host_network:
            raise StructuralError(
                "hostNetwork is not allowed with 'customInterface' network type",
                field="spec.podSpec.hostNetwork",
            )
        missing = [n for n in qualify_network_names(names, descriptor.namespace) if n not in available]
        if missing:
            raise StructuralError(
                f"required networks {list(names)} not present in pod metadata annotations key "
                f"`{settings.network_annotation}`",
                field=f"spec.aerospikeNetworkPolicy.{names_field}",
            )
