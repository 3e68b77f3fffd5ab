"""
Dotted version strings compared numerically per component.

"1.10.0" > "1.9.0", and missing trailing components count as zero, so
"1.2" == "1.2.0".
"""

from __future__ import annotations

import functools
import re
from typing import Iterable, Tuple

_VERSION_RE = re.compile(r"^\d+(\.\d+)*$")

ZERO_VERSION = "0.0.0"


def parse_version(version: str) -> Tuple[int, ...]:
    if not isinstance(version, str) or not _VERSION_RE.match(version.strip()):
        raise ValueError(f"Invalid version string: {version!r}")
    return tuple(int(part) for part in version.strip().split("."))


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1."""
    a, b = parse_version(left), parse_version(right)
    width = max(len(a), len(b))
    a += (0,) * (width - len(a))
    b += (0,) * (width - len(b))
    return (a > b) - (a < b)


version_key = functools.cmp_to_key(compare_versions)


def max_version(versions: Iterable[str], default: str = ZERO_VERSION) -> str:
    best = None
    for version in versions:
        if best is None or compare_versions(version, best) > 0:
            best = version
    return best if best is not None else default


__all__ = ["ZERO_VERSION", "compare_versions", "max_version", "parse_version", "version_key"]
