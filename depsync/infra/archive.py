"""
Source download and reproducible archives for depsync.

create_deterministic_archive produces the same bytes for the same input
tree: entries are sorted by name, ownership is zeroed, timestamps are
pinned to the epoch and the PAX format is used throughout.
"""

import logging
import os
import tarfile
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

import requests

from ..exit_codes import PackagingFailed

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def download_file(
    url: str,
    dest: Path,
    timeout: float = 60,
    session: Optional[requests.Session] = None
) -> Path:
    """
    Stream `url` into `dest`, following redirects.

    Raises:
        PackagingFailed: Request failed or returned a non-2xx status
    """
    if session is None:
        with requests.Session() as own_session:
            return download_file(url, dest, timeout=timeout, session=own_session)

    try:
        with session.get(url, stream=True, timeout=timeout, allow_redirects=True) as response:
            if not response.ok:
                raise PackagingFailed(
                    f"failed to fetch the tarball (HTTP {response.status_code})",
                    output=response.text,
                )
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
    except requests.RequestException as e:
        raise PackagingFailed("failed to fetch the tarball", output=str(e)) from e

    return dest


def _strip_member(member: tarfile.TarInfo, components: int) -> Optional[tarfile.TarInfo]:
    """Drop the leading path components of a member; None for members left empty."""
    parts = PurePosixPath(member.name).parts[components:]
    if not parts:
        return None

    member.name = str(PurePosixPath(*parts))
    if member.islnk():
        link_parts = PurePosixPath(member.linkname).parts[components:]
        if not link_parts:
            return None
        member.linkname = str(PurePosixPath(*link_parts))
    return member


def extract_tarball(archive: Path, dest: Path, strip_components: int = 1) -> Path:
    """
    Unpack a source tarball like `tar -x --strip-components N`.

    Members that would land outside `dest` are rejected by tarfile's data
    filter.

    Raises:
        PackagingFailed: Unreadable archive or unsafe member
    """
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive, 'r:*') as tar:
            members = []
            for member in tar.getmembers():
                stripped = _strip_member(member, strip_components)
                if stripped is not None:
                    members.append(stripped)
            tar.extractall(dest, members=members, filter='data')
    except (tarfile.TarError, OSError) as e:
        raise PackagingFailed("failed to unpack the tarball", output=str(e)) from e

    return dest


def _walk_sorted(root: Path) -> Iterator[Path]:
    """Yield `root` and everything below it, directory entries sorted by name."""
    yield root
    if root.is_dir() and not root.is_symlink():
        for child in sorted(root.iterdir(), key=lambda p: p.name):
            yield from _walk_sorted(child)


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = 0
    info.gid = 0
    info.uname = ''
    info.gname = ''
    info.mtime = 0
    info.pax_headers = {}
    return info


def create_deterministic_archive(src_dir: Path, dest: Path, preset: int = 9) -> Path:
    """
    Pack the contents of `src_dir` into an xz-compressed tarball.

    Entries are named relative to `src_dir` with a `./` prefix, matching
    `tar -C src_dir .`.

    Args:
        src_dir: Directory whose contents are archived
        dest: Output `.tar.xz` path
        preset: xz compression preset

    Returns:
        The archive path

    Raises:
        PackagingFailed: Any I/O error while archiving
    """
    src_dir = Path(src_dir)

    try:
        with tarfile.open(dest, 'w:xz', preset=preset, format=tarfile.PAX_FORMAT) as tar:
            for path in _walk_sorted(src_dir):
                relative = path.relative_to(src_dir).as_posix()
                arcname = '.' if relative == '.' else f'./{relative}'
                info = _normalize(tar.gettarinfo(str(path), arcname=arcname))

                if info.isreg():
                    with open(path, 'rb') as f:
                        tar.addfile(info, f)
                else:
                    tar.addfile(info)
    except (tarfile.TarError, OSError) as e:
        raise PackagingFailed("failed to compress the dependencies", output=str(e)) from e

    logger.debug(f"wrote {dest} ({os.path.getsize(dest)} bytes)")
    return dest
