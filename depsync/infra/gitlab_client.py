"""
GitLab package registry client for depsync.

Reads the project's package listing (name/version pairs) and uploads
dependency archives as generic packages:

    GET {api}/projects/{id}/packages
    PUT {api}/projects/{id}/packages/generic/{name}/{version}/{file}
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import requests

from ..domain import PublishedVersionSet
from ..exit_codes import PublishFailed, RegistryUnavailable

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://gitlab.com/api/v4"

# GitLab caps per_page at 100
PAGE_SIZE = 100


class GitLabRegistryClient:
    """
    Client for a GitLab project's package registry.

    Example:
        client = GitLabRegistryClient("12345", {"PRIVATE-TOKEN": token})
        published = client.fetch_published_versions()
    """

    def __init__(
        self,
        project_id: str,
        auth_header: Dict[str, str],
        api_url: str = DEFAULT_API_URL,
        timeout: float = 60,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize GitLabRegistryClient.

        Args:
            project_id: Numeric or URL-encoded project id
            auth_header: PRIVATE-TOKEN or JOB-TOKEN header
            api_url: GitLab REST API base URL
            timeout: HTTP request timeout in seconds
            session: Session to use (a new one by default)
        """
        self.project_id = project_id
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(auth_header)

    @property
    def project_url(self) -> str:
        return f"{self.api_url}/projects/{self.project_id}"

    def package_url(self, name: str, version: str, filename: str) -> str:
        return f"{self.project_url}/packages/generic/{name}/{version}/{filename}"

    def _fetch_page(self, page: int) -> Tuple[list, Optional[str]]:
        """Fetch one listing page; returns the entries and the next page number."""
        url = f"{self.project_url}/packages"
        try:
            response = self.session.get(
                url,
                params={'per_page': PAGE_SIZE, 'page': page},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RegistryUnavailable("failed to fetch the packages metadata", output=str(e)) from e

        if not response.ok:
            raise RegistryUnavailable(
                f"failed to fetch the packages metadata (HTTP {response.status_code})",
                output=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryUnavailable(
                "failed to parse the packages metadata", output=response.text
            ) from e

        if not isinstance(data, list):
            raise RegistryUnavailable("failed to parse the packages metadata", output=response.text)

        return data, response.headers.get('X-Next-Page') or None

    def fetch_published_versions(self) -> PublishedVersionSet:
        """
        List every (name, version) pair in the registry.

        Follows GitLab's X-Next-Page pagination until exhausted.

        Returns:
            PublishedVersionSet, empty when the registry has no packages

        Raises:
            RegistryUnavailable: Request failed or the listing is malformed
        """
        pairs: List[Tuple[str, str]] = []
        page = 1

        logger.info("querying the package registry...")

        while True:
            entries, next_page = self._fetch_page(page)

            for entry in entries:
                if not isinstance(entry, dict) or 'name' not in entry or 'version' not in entry:
                    raise RegistryUnavailable(
                        "failed to parse the name-version pairs from the packages metadata",
                        output=repr(entry),
                    )
                pairs.append((str(entry['name']), str(entry['version'])))

            if not next_page:
                break
            try:
                page = int(next_page)
            except ValueError as e:
                raise RegistryUnavailable(
                    "failed to parse the packages pagination", output=next_page
                ) from e

        published = PublishedVersionSet.from_pairs(pairs)
        logger.debug(f"registry holds {len(published)} versions of {len(published.names())} packages")
        return published

    def publish(self, name: str, version: str, archive_path: Path) -> str:
        """
        Upload a dependency archive as a generic package.

        Args:
            name: Package name
            version: Package version
            archive_path: File to upload; its name becomes the package file name

        Returns:
            URL of the uploaded package file

        Raises:
            PublishFailed: Upload failed
        """
        archive_path = Path(archive_path)
        url = self.package_url(name, version, archive_path.name)

        try:
            with open(archive_path, 'rb') as f:
                response = self.session.put(url, data=f, timeout=self.timeout)
        except (OSError, requests.RequestException) as e:
            raise PublishFailed("failed to publish the package", output=str(e)) from e

        if not response.ok:
            raise PublishFailed(
                f"failed to publish the package (HTTP {response.status_code})",
                output=response.text,
            )

        return url
