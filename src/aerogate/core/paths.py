#!/usr/bin/env python3
"""
AEROGATE PATH RESOLVER
----------------------
Answers coverage questions against a StorageSpec: is a path inside a
declared volume, which volume serves a given attachment, and which
block devices / filesystem mounts are available to the server.

Author: AeroGate Team
Date: 2026-10-18
"""

import posixpath
from typing import List, Optional

from aerogate.core.models import StorageSpec, Volume, VolumeMode


def is_path_parent_or_same(parent: str, child: str) -> bool:
    """True when 'parent' is 'child' or one of its ancestor directories."""
    parent = posixpath.normpath(parent)
    child = posixpath.normpath(child)
    if parent.startswith("/") != child.startswith("/"):
        return False
    rel = posixpath.relpath(child, parent)
    return rel == "." or not (rel == ".." or rel.startswith("../"))


class PathResolver:
    """Read-only coverage queries over one storage specification."""

    def __init__(self, storage: StorageSpec):
        self.storage = storage

    def attached_volumes(self) -> List[Volume]:
        return [v for v in self.storage.volumes if v.attachment_path]

    def block_devices(self, only_persistent: bool = True) -> List[str]:
        return [
            v.attachment_path for v in self.attached_volumes()
            if v.mode == VolumeMode.BLOCK and (v.is_persistent or not only_persistent)
        ]

    def filesystem_mounts(self, only_persistent: bool = True) -> List[str]:
        return [
            v.attachment_path for v in self.attached_volumes()
            if v.mode == VolumeMode.FILESYSTEM and (v.is_persistent or not only_persistent)
        ]

    def is_block_device(self, path: str) -> bool:
        return path in self.block_devices()

    def is_directory_covered(self, directory: str, only_persistent: bool = True) -> bool:
        return any(
            is_path_parent_or_same(mount, directory)
            for mount in self.filesystem_mounts(only_persistent)
        )

    def is_file_covered(self, file_path: str, only_persistent: bool = True) -> bool:
        return self.is_directory_covered(posixpath.dirname(file_path), only_persistent)

    def volume_for_path(self, path: str) -> Optional[Volume]:
        """The volume whose attachment path contains 'path', if any."""
        for volume in self.attached_volumes():
            if is_path_parent_or_same(volume.attachment_path, path):
                return volume
        return None

    def volume_for_attachment(self, attachment: str) -> Optional[Volume]:
        for volume in self.attached_volumes():
            if posixpath.normpath(volume.attachment_path) == posixpath.normpath(attachment):
                return volume
        return None
