"""
depsync - Dependency bundles for Gentoo ebuilds.

depsync resolves the latest revision of tracked upstream repositories,
vendors their build-time dependencies and publishes the result as
reproducible archives, so ebuilds can build without network access.

Quick Start:
    from depsync import RevisionResolver, RepositoryBatchDriver
    from depsync.table import load_descriptors

    descriptors = load_descriptors("repos.csv")
    resolver = RevisionResolver.from_token(os.environ["GITHUB_TOKEN"])

    for descriptor in descriptors:
        print(descriptor.name, resolver.resolve(descriptor).version)

Domain Objects:
    RepositoryDescriptor - One row of the repository table
    Revision - Resolved version and source tarball of a repository
    PublishedVersionSet - Versions already in the package registry

Services:
    RevisionResolver - Tag-based and commit-based resolution
    Packager - Vendoring and archiving
    RepositoryBatchDriver - Sequential processing of the table
"""

__version__ = "0.1.0"

from .domain import RepositoryDescriptor, Revision, PublishedVersionSet
from .services import (
    RevisionResolver,
    Packager,
    RepositoryBatchDriver,
    BatchResult,
    should_skip,
    normalize_version,
)
from .config import load_config, save_config

__all__ = [
    "__version__",
    "RepositoryDescriptor",
    "Revision",
    "PublishedVersionSet",
    "RevisionResolver",
    "Packager",
    "RepositoryBatchDriver",
    "BatchResult",
    "should_skip",
    "normalize_version",
    "load_config",
    "save_config",
]
