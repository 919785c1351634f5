"""
Infrastructure layer for depsync.

Contains abstractions for external systems:
- ForgeClient: GitHub / Forgejo API access (tags, commits, archives)
- GitLabRegistryClient: Package registry listing and uploads
- Vendorer: Go / Rust dependency vendoring through their toolchains
- archive helpers: Source download and reproducible tarballs

These provide clean interfaces that can be mocked for testing.
"""

from .forge_client import (
    ForgeClient,
    ForgeCommit,
    ForgeTag,
    ForgejoClient,
    GitHubClient,
    FORGE_CLIENTS,
    create_forge_client,
)
from .gitlab_client import GitLabRegistryClient
from .toolchain import Vendorer, GoVendorer, RustVendorer, VENDORERS, create_vendorer, run_tool
from .archive import create_deterministic_archive, download_file, extract_tarball

__all__ = [
    'ForgeClient',
    'ForgeCommit',
    'ForgeTag',
    'ForgejoClient',
    'GitHubClient',
    'FORGE_CLIENTS',
    'create_forge_client',
    'GitLabRegistryClient',
    'Vendorer',
    'GoVendorer',
    'RustVendorer',
    'VENDORERS',
    'create_vendorer',
    'run_tool',
    'create_deterministic_archive',
    'download_file',
    'extract_tarball',
]
