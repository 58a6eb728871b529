"""Version ordering for update steps.

Versions are dot-separated tokens such as ``1.2.3``, ``0.9`` or
``1.0.0-rc1``. Each segment splits into a leading number and a suffix:

* leading numbers compare numerically (``1.9`` < ``1.10``)
* a segment without a leading number sorts before one that has it
* for equal numbers, a suffixed segment is a pre-release and sorts before the
  bare number (``1.0.0-rc1`` < ``1.0.0``); suffixes compare lexically
* when one version runs out of segments it sorts lower (``1.2`` < ``1.2.1``)

Every version maps to a plain tuple key, so the order is total.
"""

from __future__ import annotations

import re

_SEGMENT_RE = re.compile(r"^(?P<number>\d*)(?P<suffix>.*)$", re.DOTALL)

SegmentKey = tuple[int, int, str]


def _segment_key(segment: str) -> SegmentKey:
    m = _SEGMENT_RE.match(segment)
    digits, suffix = (m.group("number"), m.group("suffix")) if m else ("", segment)
    number = int(digits) if digits else -1
    return (number, 0 if suffix else 1, suffix)


def version_key(version: str) -> tuple[SegmentKey, ...]:
    """Sort key for ``sorted()``; stable for versions that compare equal."""
    return tuple(_segment_key(segment) for segment in version.strip().split("."))


def compare_versions(a: str, b: str) -> int:
    """Compare two version identifiers.

    Returns -1 if *a* is older than *b*, 1 if newer and 0 if equal.
    """
    left = version_key(a)
    right = version_key(b)
    return (left > right) - (left < right)


def is_newer(candidate: str, current: str) -> bool:
    """Return True if *candidate* is strictly newer than *current*."""
    return compare_versions(current, candidate) < 0
