#!/usr/bin/env python3
"""
AEROGATE STORAGE RULES
----------------------
Shape checks for a StorageSpec, and the rules that tie file-backed
configuration paths (feature keys, TLS material, default password file,
work directory) to declared volumes.

Author: AeroGate Team
Date: 2026-10-18
"""

import logging
import posixpath
from typing import List

from aerogate.core.config_tree import ConfigTree
from aerogate.core.errors import StructuralError
from aerogate.core.models import SourceKind, StorageSpec, ValidationPolicy, VolumeMode
from aerogate.core.paths import PathResolver
from aerogate.core.settings import EngineSettings

logger = logging.getLogger("aerogate.validator")

INIT_METHODS = {
    VolumeMode.FILESYSTEM: {"none", "deleteFiles"},
    VolumeMode.BLOCK: {"none", "dd", "blkdiscard", "headerCleanup", "blkdiscardWithHeaderCleanup"},
}
WIPE_METHODS = {
    VolumeMode.FILESYSTEM: {"none", "deleteFiles"},
    VolumeMode.BLOCK: {"none", "dd", "blkdiscard", "headerCleanup", "blkdiscardWithHeaderCleanup"},
}


def validate_storage_spec(storage: StorageSpec, where: str = "spec.storage") -> None:
    names = set()
    paths = set()
    for volume in storage.volumes:
        if not volume.name:
            raise StructuralError(f"{where}: volume name cannot be empty", field=where)
        if volume.name in names:
            raise StructuralError(f"{where}: duplicate volume name '{volume.name}'", field=where)
        names.add(volume.name)

        kinds = volume.source.declared_kinds()
        if len(kinds) != 1:
            raise StructuralError(
                f"{where}: volume '{volume.name}' must have exactly one source, found {[k.value for k in kinds]}",
                field=f"{where}.volumes[{volume.name}].source",
            )

        if volume.attachment_path:
            if not posixpath.isabs(volume.attachment_path):
                raise StructuralError(
                    f"{where}: volume '{volume.name}' aerospike path {volume.attachment_path} must be absolute",
                    field=f"{where}.volumes[{volume.name}].aerospike.path",
                )
            normalized = posixpath.normpath(volume.attachment_path)
            if normalized in paths:
                raise StructuralError(
                    f"{where}: aerospike path {volume.attachment_path} is used by more than one volume",
                    field=f"{where}.volumes[{volume.name}].aerospike.path",
                )
            paths.add(normalized)

        if volume.source.kind != SourceKind.PERSISTENT_VOLUME:
            continue

        mode = volume.mode
        policy = storage.block_policy if mode == VolumeMode.BLOCK else storage.filesystem_policy
        init_method = volume.init_method or policy.init_method
        wipe_method = volume.wipe_method or policy.wipe_method
        if init_method and init_method not in INIT_METHODS[mode]:
            raise StructuralError(
                f"{where}: invalid initMethod {init_method} for {mode.value} volume '{volume.name}'",
                field=f"{where}.volumes[{volume.name}].initMethod",
            )
        if wipe_method and wipe_method not in WIPE_METHODS[mode]:
            raise StructuralError(
                f"{where}: invalid wipeMethod {wipe_method} for {mode.value} volume '{volume.name}'",
                field=f"{where}.volumes[{volume.name}].wipeMethod",
            )


def is_secret_store_path(path: str, settings: EngineSettings) -> bool:
    return any(path.startswith(prefix) for prefix in settings.secret_store_prefixes)


def validate_required_file_storage(config: ConfigTree, storage: StorageSpec,
                                   settings: EngineSettings) -> None:
    """
    Feature-key files, TLS files and the default password file must live
    inside a declared volume. Secret-store references are exempt, except
    for the default password file and CA material, which the server has
    to read from disk.
    """
    resolver = PathResolver(storage)
    non_ca_paths, ca_paths = config.tls_file_paths()
    password_file = config.default_password_file()

    required: List[str] = [
        p for p in config.feature_key_files() + non_ca_paths
        if not is_secret_store_path(p, settings)
    ]

    if password_file is not None:
        if is_secret_store_path(password_file, settings):
            raise StructuralError(
                f"default-password-file path doesn't support Secret Manager, path {password_file}",
                field="security.default-password-file",
            )
        required.append(password_file)

    required.extend(ca_paths)

    for path in required:
        volume = resolver.volume_for_path(posixpath.dirname(path))
        if volume is None:
            raise StructuralError(
                "feature-key-file paths or tls paths or default-password-file path are not mounted "
                f"- create an entry for '{path}' in 'storage.volumes'",
                field="spec.storage.volumes",
            )
        if path == password_file and volume.source.kind != SourceKind.SECRET:
            raise StructuralError(
                f"default-password-file path {path} volume source should be secret in storage config, "
                f"volume {volume.name}",
                field="security.default-password-file",
            )


def validate_work_directory(config: ConfigTree, storage: StorageSpec,
                            policy: ValidationPolicy, settings: EngineSettings) -> None:
    resolver = PathResolver(storage)

    if not policy.skip_work_dir_validate:
        _check_work_dir(config.work_directory(settings.default_work_directory), resolver, True)
        return

    configured = config.configured_work_directory()
    if configured:
        logger.debug("Work directory validation skipped by policy; checking explicit work-directory")
        _check_work_dir(configured, resolver, False)


def _check_work_dir(path: str, resolver: PathResolver, only_persistent: bool) -> None:
    if not posixpath.isabs(path):
        raise StructuralError(
            f"aerospike work directory path {path} must be absolute",
            field="service.work-directory",
        )
    if not resolver.is_directory_covered(path, only_persistent):
        raise StructuralError(
            f"aerospike work directory path {path} not found in storage volume's aerospike paths "
            f"{resolver.filesystem_mounts(only_persistent)}",
            field="service.work-directory",
        )
