"""
Repository descriptor domain object for depsync.

A RepositoryDescriptor is one row of the repository table: where an
upstream project lives, how to find its current revision, and how to
vendor its dependencies.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping

# Columns every repository table must provide, in canonical order
FIELDS = ('name', 'forge', 'host', 'owner', 'repo', 'path', 'lang', 'method', 'live')


def parse_bool(value: Any) -> bool:
    """Parse the table's `live` column; only `true` enables live mode."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == 'true'


@dataclass(frozen=True)
class RepositoryDescriptor:
    """A tracked upstream repository."""
    name: str
    forge: str
    host: str
    owner: str
    repo: str
    path: str = "."
    lang: str = "go"
    method: str = "vendor"
    live: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'RepositoryDescriptor':
        """Create from a header-keyed table row."""
        return cls(
            name=row['name'],
            forge=row['forge'],
            host=row['host'],
            owner=row['owner'],
            repo=row['repo'],
            path=row.get('path') or '.',
            lang=row['lang'],
            method=row['method'],
            live=parse_bool(row.get('live', False)),
        )

    @property
    def url(self) -> str:
        """Browser URL of the repository."""
        return f"https://{self.host}/{self.owner}/{self.repo}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
