"""
Forge API client infrastructure for depsync.

One client class per forge dialect, all exposing the same operations:
- latest_tag: newest tag of the repository, or None
- latest_commit: newest commit on the default branch
- archive_url: source archive URL for a commit
- source_root: directory an unpacked archive lands in

Clients are selected through FORGE_CLIENTS by the descriptor's `forge`
field. Single attempt per request: failures raise ResolutionFailed with the
raw response attached and are never retried.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Type

import requests

from ..domain import RepositoryDescriptor
from ..exit_codes import ResolutionFailed, UnsupportedForge

logger = logging.getLogger(__name__)

USER_AGENT = 'depsync'


@dataclass(frozen=True)
class ForgeTag:
    """A tag as listed by a forge."""
    name: str
    tarball_url: Optional[str] = None


@dataclass(frozen=True)
class ForgeCommit:
    """A commit as listed by a forge."""
    sha: str
    date: datetime


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp as returned by forge APIs."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def _dig(data: Any, path: Tuple[str, ...]) -> Any:
    """Follow a key path through nested dicts; None when any step is missing."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class ForgeClient:
    """
    Base class for forge dialects.

    Subclasses set the API layout; the request handling and response
    parsing are shared.
    """

    # Query parameter limiting list endpoints to one entry
    page_size_param = 'per_page'
    # Key path to the commit timestamp in a commit listing entry
    commit_date_path: Tuple[str, ...] = ()
    # Whether requests must carry a bearer token
    requires_token = False

    def __init__(
        self,
        token: Optional[str] = None,
        timeout: float = 60,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            token: API token, sent only by forges that require one
            timeout: HTTP request timeout in seconds
            session: Session to use (a new one by default)
        """
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        })

    def api_base(self, descriptor: RepositoryDescriptor) -> str:
        raise NotImplementedError

    def repo_endpoint(self, descriptor: RepositoryDescriptor, resource: str) -> str:
        return (
            f"{self.api_base(descriptor)}/repos/"
            f"{descriptor.owner}/{descriptor.repo}/{resource}"
            f"?{self.page_size_param}=1"
        )

    def _headers(self) -> Dict[str, str]:
        return {}

    def _get_json(self, url: str, what: str) -> Any:
        """GET `url` and decode the JSON body."""
        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise ResolutionFailed(f"failed to get the {what}", output=str(e)) from e

        if not response.ok:
            raise ResolutionFailed(
                f"failed to get the {what} (HTTP {response.status_code})",
                output=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ResolutionFailed(f"failed to parse the {what}", output=response.text) from e

    def _first(self, url: str, what: str) -> Optional[Dict[str, Any]]:
        """First entry of a list endpoint, or None when the list is empty."""
        data = self._get_json(url, what)
        if not isinstance(data, list):
            raise ResolutionFailed(f"failed to parse the {what}", output=repr(data))
        if not data:
            return None
        if not isinstance(data[0], dict):
            raise ResolutionFailed(f"failed to parse the {what}", output=repr(data[0]))
        return data[0]

    def latest_tag(self, descriptor: RepositoryDescriptor) -> Optional[ForgeTag]:
        """
        Get the newest tag.

        The forge's own ordering is trusted: the first listed tag is the
        newest one.

        Returns:
            ForgeTag or None if the repository has no tags
        """
        entry = self._first(self.repo_endpoint(descriptor, 'tags'), 'tags')
        if entry is None:
            return None

        name = entry.get('name')
        if not name:
            raise ResolutionFailed("failed to parse the name of the latest tag", output=repr(entry))
        return ForgeTag(name=name, tarball_url=entry.get('tarball_url'))

    def latest_commit(self, descriptor: RepositoryDescriptor) -> ForgeCommit:
        """
        Get the newest commit on the default branch.

        Raises:
            ResolutionFailed: No commits, or the entry lacks SHA or date
        """
        entry = self._first(self.repo_endpoint(descriptor, 'commits'), 'commits')
        if entry is None:
            raise ResolutionFailed("there are no commits")

        sha = entry.get('sha')
        if not sha:
            raise ResolutionFailed("failed to parse the SHA of the latest commit", output=repr(entry))

        raw_date = _dig(entry, self.commit_date_path)
        if not isinstance(raw_date, str):
            raise ResolutionFailed("failed to parse the date of the latest commit", output=repr(entry))
        try:
            date = parse_timestamp(raw_date)
        except ValueError as e:
            raise ResolutionFailed("failed to parse the date of the latest commit", output=raw_date) from e

        return ForgeCommit(sha=sha, date=date)

    def archive_url(self, descriptor: RepositoryDescriptor, sha: str) -> str:
        """Source archive URL for commit `sha`."""
        return f"https://{descriptor.host}/{descriptor.owner}/{descriptor.repo}/archive/{sha}.tar.gz"

    def source_root(self, descriptor: RepositoryDescriptor, version: str) -> str:
        """Directory name of the unpacked source inside an ebuild's work dir."""
        return f"{descriptor.name}-{version}"


class GitHubClient(ForgeClient):
    """GitHub (and GitHub Enterprise) REST API; bearer-token authenticated."""

    page_size_param = 'per_page'
    commit_date_path = ('commit', 'committer', 'date')
    requires_token = True

    def api_base(self, descriptor: RepositoryDescriptor) -> str:
        return f"https://api.{descriptor.host}"

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise ResolutionFailed("`GITHUB_TOKEN` is unset")
        return {'Authorization': f'Bearer {self.token}'}


class ForgejoClient(ForgeClient):
    """Forgejo/Gitea API; public repositories, no authentication."""

    page_size_param = 'limit'
    commit_date_path = ('created',)

    def api_base(self, descriptor: RepositoryDescriptor) -> str:
        return f"https://{descriptor.host}/api/v1"

    def source_root(self, descriptor: RepositoryDescriptor, version: str) -> str:
        # Forgejo archives unpack to the bare repository name
        return descriptor.name


FORGE_CLIENTS: Dict[str, Type[ForgeClient]] = {
    'github': GitHubClient,
    'forgejo': ForgejoClient,
}


def create_forge_client(
    forge: str,
    token: Optional[str] = None,
    timeout: float = 60,
    session: Optional[requests.Session] = None
) -> ForgeClient:
    """
    Instantiate the client for `forge`.

    Raises:
        UnsupportedForge: No client is registered for the forge
    """
    client_class = FORGE_CLIENTS.get(forge)
    if client_class is None:
        raise UnsupportedForge(forge)
    return client_class(
        token=token if client_class.requires_token else None,
        timeout=timeout,
        session=session,
    )
