"""
Domain layer for depsync.

Contains pure domain objects with no I/O or side effects:
- RepositoryDescriptor: One tracked upstream repository
- Revision: The resolved current revision of a repository
- PublishedVersionSet: Versions already present in the package registry
"""

from .descriptor import RepositoryDescriptor, FIELDS
from .revision import Revision, PublishedVersionSet

__all__ = [
    'RepositoryDescriptor',
    'FIELDS',
    'Revision',
    'PublishedVersionSet',
]
