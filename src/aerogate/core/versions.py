#!/usr/bin/env python3
"""
AEROGATE VERSION HELPERS
------------------------
Extracts the server version from a container image reference and
compares dotted numeric versions.

Author: AeroGate Team
Date: 2026-10-18
"""

import re
from itertools import zip_longest
from typing import Tuple

from aerogate.core.errors import StructuralError

VERSION_PATTERN = re.compile(r"(\d+(\.\d+)+)")


def parse_image_reference(image: str) -> Tuple[str, str, str]:
    """
    Splits 'registry/repo:tag' into (registry, repository, tag). A colon
    that belongs to a registry port is not mistaken for a tag separator.
    """
    image = image.strip()
    digest_free = image.split("@", 1)[0]
    last_slash = digest_free.rfind("/")
    tag = ""
    name = digest_free
    colon = digest_free.rfind(":")
    if colon > last_slash:
        name, tag = digest_free[:colon], digest_free[colon + 1:]

    registry = ""
    parts = name.split("/", 1)
    if len(parts) == 2 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        registry, name = parts
    return registry, name, tag


def get_image_version(image: str, field: str = "spec.image") -> str:
    """
    Picks the longest dotted numeric run inside the image tag, so that
    prefixes and suffixes like 'ee-' or '-slim' are ignored.

    Raises:
        StructuralError: the tag is missing, 'latest', or has no version.
    """
    _, _, tag = parse_image_reference(image)
    if not tag or tag.lower() == "latest":
        raise StructuralError(f"image version is mandatory for image: {image}", field=field)

    matches = [m.group(1) for m in VERSION_PATTERN.finditer(tag)]
    if not matches:
        raise StructuralError(f"invalid image version format: {tag}", field=field)

    longest = matches[0]
    for candidate in matches[1:]:
        if len(candidate) >= len(longest):
            longest = candidate
    return longest


def version_tuple(version: str) -> Tuple[int, ...]:
    match = VERSION_PATTERN.search(version) or re.search(r"\d+", version)
    if not match:
        raise ValueError(f"not a version: {version!r}")
    return tuple(int(p) for p in match.group(0).split("."))


def compare_versions(left: str, right: str) -> int:
    """Returns -1, 0 or 1; missing trailing components count as zero."""
    for a, b in zip_longest(version_tuple(left), version_tuple(right), fillvalue=0):
        if a != b:
            return -1 if a < b else 1
    return 0


def is_enterprise_image(image: str) -> bool:
    return "enterprise" in image.lower()
