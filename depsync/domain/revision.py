"""
Revision and published-version domain objects for depsync.

A Revision is what resolution produces for one descriptor during one run.
A PublishedVersionSet is the registry snapshot taken once at startup.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple


@dataclass(frozen=True)
class Revision:
    """The current revision of a repository."""
    version: str
    tarball_url: str
    source_root: str = ""

    def archive_name(self, name: str) -> str:
        """File name of the dependency archive for package `name`."""
        return f"{name}-{self.version}-deps.tar.xz"

    def to_dict(self) -> Dict[str, str]:
        return {
            'version': self.version,
            'tarball_url': self.tarball_url,
            'source_root': self.source_root,
        }


class PublishedVersionSet:
    """
    Immutable snapshot of the versions already present in the registry.

    Example:
        published = PublishedVersionSet.from_pairs([("foo", "1.0.0")])
        published.contains("foo", "1.0.0")  # True
    """

    def __init__(self, versions: Mapping[str, Iterable[str]] = None):
        self._versions = MappingProxyType({
            name: frozenset(found) for name, found in (versions or {}).items()
        })

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> 'PublishedVersionSet':
        """Build from (name, version) pairs in any order."""
        grouped: Dict[str, set] = {}
        for name, version in pairs:
            grouped.setdefault(name, set()).add(version)
        return cls(grouped)

    def versions_for(self, name: str) -> FrozenSet[str]:
        return self._versions.get(name, frozenset())

    def contains(self, name: str, version: str) -> bool:
        return version in self.versions_for(name)

    def names(self) -> List[str]:
        return sorted(self._versions)

    def to_dict(self) -> Dict[str, List[str]]:
        return {name: sorted(found) for name, found in self._versions.items()}

    def __len__(self) -> int:
        return sum(len(found) for found in self._versions.values())

    def __repr__(self) -> str:
        return f"PublishedVersionSet({self.to_dict()!r})"
