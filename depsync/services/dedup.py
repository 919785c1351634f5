"""Deduplication against the package registry snapshot."""

from typing import Optional

from ..domain import PublishedVersionSet


def should_skip(
    name: str,
    version: str,
    registry: Optional[PublishedVersionSet],
    ignore: bool = False
) -> bool:
    """
    Whether `version` of `name` is already published.

    Comparison is exact string equality: `1.0` and `1.0.0` are different
    versions. With `ignore` set, or without a snapshot, nothing is skipped.
    """
    if ignore or registry is None:
        return False
    return registry.contains(name, version)
