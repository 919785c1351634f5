"""
Revision resolution for depsync.

Determines the current revision of a repository with one of two
strategies, chosen by the descriptor's `live` flag:

- Tag-based: the newest tag is the version, its tarball is the source.
- Commit-based ("live"): the newest commit on the default branch is the
  source; the version is synthesized as `<tag>_pre<YYYYMMDD>` from the
  newest tag and the commit's UTC date, or `0_pre<YYYYMMDD>` without tags.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ..domain import RepositoryDescriptor, Revision
from ..exit_codes import NoRevisionsAvailable, ResolutionFailed
from ..infra.forge_client import ForgeClient, create_forge_client

logger = logging.getLogger(__name__)

_VERSION_PREFIX = re.compile(r'^v(?=\d)')


def normalize_version(tag_name: str) -> str:
    """
    Turn a tag name into a registry version.

    Exactly one leading `v` is dropped when a digit follows it:
    `v1.2.3` -> `1.2.3`. Every other name is returned unchanged.
    """
    return _VERSION_PREFIX.sub('', tag_name, count=1)


def commit_date_component(date: datetime) -> str:
    """UTC calendar date of a commit as 8 digits (YYYYMMDD); naive dates count as UTC."""
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    date = date.astimezone(timezone.utc)
    return f"{date.year:04d}{date.month:02d}{date.day:02d}"


def live_version(tag_name: Optional[str], date_component: str) -> str:
    """Snapshot version following `tag_name` (or nothing) taken on `date_component`."""
    base = normalize_version(tag_name) if tag_name else '0'
    return f"{base}_pre{date_component}"


ClientFactory = Callable[[str], ForgeClient]


class RevisionResolver:
    """
    Resolve descriptors to revisions through forge clients.

    Example:
        resolver = RevisionResolver.from_token(github_token)
        revision = resolver.resolve(descriptor)
        print(revision.version)
    """

    def __init__(self, client_factory: Optional[ClientFactory] = None):
        """
        Initialize RevisionResolver.

        Args:
            client_factory: Builds the client for a forge name; raises
                UnsupportedForge for unknown forges
        """
        self.client_factory = client_factory or create_forge_client
        self._clients: Dict[str, ForgeClient] = {}

    @classmethod
    def from_token(cls, github_token: Optional[str], timeout: float = 60) -> 'RevisionResolver':
        return cls(lambda forge: create_forge_client(forge, token=github_token, timeout=timeout))

    def client_for(self, forge: str) -> ForgeClient:
        """Client for `forge`, created once per run."""
        if forge not in self._clients:
            self._clients[forge] = self.client_factory(forge)
        return self._clients[forge]

    def resolve(
        self,
        descriptor: RepositoryDescriptor,
        log: Optional[logging.LoggerAdapter] = None
    ) -> Revision:
        """
        Determine the current revision of `descriptor`.

        Raises:
            UnsupportedForge: No client for the descriptor's forge
            ResolutionFailed: Forge request or response parsing failed
            NoRevisionsAvailable: Tag-based resolution found no tags
        """
        log = log or logger
        client = self.client_for(descriptor.forge)

        if descriptor.live:
            return self._resolve_live(client, descriptor, log)
        return self._resolve_tag(client, descriptor, log)

    def _resolve_tag(self, client, descriptor, log) -> Revision:
        log.info("querying the latest tag...")
        tag = client.latest_tag(descriptor)
        if tag is None:
            raise NoRevisionsAvailable()
        if not tag.tarball_url:
            raise ResolutionFailed("failed to parse the tarball URL of the latest tag", output=repr(tag))

        version = normalize_version(tag.name)
        return Revision(
            version=version,
            tarball_url=tag.tarball_url,
            source_root=client.source_root(descriptor, version),
        )

    def _resolve_live(self, client, descriptor, log) -> Revision:
        log.info("querying the latest commit...")
        commit = client.latest_commit(descriptor)
        date_component = commit_date_component(commit.date)

        log.info("querying the latest tag...")
        tag = client.latest_tag(descriptor)

        version = live_version(tag.name if tag else None, date_component)
        return Revision(
            version=version,
            tarball_url=client.archive_url(descriptor, commit.sha),
            source_root=client.source_root(descriptor, version),
        )
