"""
Dependency packaging for depsync.

Produces `<name>-<version>-deps.tar.xz` for one resolved repository:

1. Download and unpack the source tarball into a temporary workspace
2. Run the repository's prepare hook, if any
3. Vendor the dependencies with the language toolchain
4. Pack the vendored tree into a reproducible archive in the output dir

The workspace is removed on every exit path. With keep_temp it is left in
place when packaging fails so the failure can be inspected.
"""

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

import requests

from ..domain import RepositoryDescriptor, Revision
from ..exit_codes import PackagingFailed
from ..infra.archive import create_deterministic_archive, download_file, extract_tarball
from ..infra.toolchain import Vendorer, create_vendorer, run_tool

logger = logging.getLogger(__name__)

DEPS_DIR_NAME = 'deps'
PREPARE_SCRIPT = 'prepare.bash'


class Packager:
    """
    Build dependency archives.

    Example:
        packager = Packager(output_dir=Path("."))
        archive = packager.package(descriptor, revision, log)
    """

    def __init__(
        self,
        output_dir: Path = Path('.'),
        prepare_dir: Optional[Path] = None,
        keep_temp: bool = False,
        xz_preset: int = 9,
        timeout: float = 60,
        vendorer_factory: Callable[[str], Vendorer] = create_vendorer,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize Packager.

        Args:
            output_dir: Directory receiving finished archives
            prepare_dir: Directory holding `<name>/prepare.bash` hooks
            keep_temp: Keep the workspace of failed attempts
            xz_preset: xz compression preset
            timeout: HTTP timeout for the source download
            vendorer_factory: Builds the vendorer for a language
            session: HTTP session for the source download
        """
        self.output_dir = Path(output_dir)
        self.prepare_dir = Path(prepare_dir) if prepare_dir else None
        self.keep_temp = keep_temp
        self.xz_preset = xz_preset
        self.timeout = timeout
        self.vendorer_factory = vendorer_factory
        self.session = session

    @contextmanager
    def workspace(self, log: logging.LoggerAdapter) -> Iterator[Path]:
        """Temporary working directory for one packaging attempt."""
        work_dir = Path(tempfile.mkdtemp(prefix='depsync-'))
        log.debug(f"temp_dir={work_dir}")
        try:
            yield work_dir
        except BaseException:
            if self.keep_temp:
                log.warning(f"keeping the temporary directory {work_dir}")
            else:
                shutil.rmtree(work_dir, ignore_errors=True)
            raise
        shutil.rmtree(work_dir, ignore_errors=True)

    def fetch_source(self, revision: Revision, work_dir: Path, log: logging.LoggerAdapter) -> Path:
        """Download and unpack the source tarball; returns the source root."""
        log.info("fetching the tarball...")
        tarball = download_file(
            revision.tarball_url,
            work_dir / 'source.tar.gz',
            timeout=self.timeout,
            session=self.session,
        )
        return extract_tarball(tarball, work_dir / 'source', strip_components=1)

    def prepare_script(self, descriptor: RepositoryDescriptor) -> Optional[Path]:
        """Executable prepare hook for the descriptor, if one exists."""
        if self.prepare_dir is None:
            return None
        script = self.prepare_dir / descriptor.name / PREPARE_SCRIPT
        if script.is_file() and os.access(script, os.X_OK):
            return script.resolve()
        return None

    def prepare(self, descriptor: RepositoryDescriptor, source_dir: Path, log: logging.LoggerAdapter) -> None:
        script = self.prepare_script(descriptor)
        if script is None:
            return
        log.info("preparing the source code...")
        run_tool(["bash", str(script)], cwd=source_dir)

    def package(
        self,
        descriptor: RepositoryDescriptor,
        revision: Revision,
        log: Optional[logging.LoggerAdapter] = None
    ) -> Path:
        """
        Build the dependency archive for `descriptor` at `revision`.

        Returns:
            Path of the archive in the output directory

        Raises:
            UnsupportedLanguage: No vendorer for the descriptor's language
            PackagingFailed: Any step failed
        """
        log = log or logger
        vendorer = self.vendorer_factory(descriptor.lang)

        with self.workspace(log) as work_dir:
            source_dir = self.fetch_source(revision, work_dir, log)
            self.prepare(descriptor, source_dir, log)

            deps_dir = work_dir / DEPS_DIR_NAME
            deps_dir.mkdir()

            log.info(f"downloading the dependencies (`{vendorer.describe(descriptor)}`)...")
            vendorer.vendor(descriptor, revision, source_dir, deps_dir)

            log.info("compressing the dependencies...")
            archive = create_deterministic_archive(
                deps_dir, work_dir / f"{DEPS_DIR_NAME}.tar.xz", preset=self.xz_preset
            )

            dest = self.output_dir / revision.archive_name(descriptor.name)
            try:
                self.output_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(archive, dest)
            except OSError as e:
                raise PackagingFailed(f"failed to write {dest}", output=str(e)) from e

        log.info(f"archive: {dest}")
        return dest
