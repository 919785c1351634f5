"""
Service layer for depsync.

Contains the logic that orchestrates domain objects and infrastructure:
- RevisionResolver: Tag-based and commit-based revision resolution
- should_skip: Deduplication against the registry snapshot
- Packager: Source download, vendoring and archiving
- RepositoryBatchDriver: Sequential per-record processing

Services are the primary API for commands to use.
"""

from .resolver import RevisionResolver, normalize_version, commit_date_component, live_version
from .dedup import should_skip
from .packager import Packager
from .batch import RepositoryBatchDriver, BatchResult

__all__ = [
    'RevisionResolver',
    'normalize_version',
    'commit_date_component',
    'live_version',
    'should_skip',
    'Packager',
    'RepositoryBatchDriver',
    'BatchResult',
]
