"""
Dependency vendoring through language toolchains.

Each Vendorer wraps one language's package manager:
- GoVendorer: `go mod download` into a module cache, or `go mod vendor`
- RustVendorer: `cargo vendor`

All commands run with an explicit working directory; the process cwd is
never changed. Failures raise PackagingFailed with the tool output.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Type

from ..domain import RepositoryDescriptor, Revision
from ..exit_codes import PackagingFailed, UnsupportedLanguage

logger = logging.getLogger(__name__)


def run_tool(
    args: Sequence[str],
    cwd: Path,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None
) -> str:
    """
    Run an external tool and return its combined output.

    Args:
        args: Command and arguments
        cwd: Working directory
        env: Variables added to the inherited environment
        timeout: Optional timeout in seconds

    Raises:
        PackagingFailed: Tool missing, timed out or exited non-zero
    """
    command = ' '.join(str(a) for a in args)
    logger.debug(f"running `{command}` in {cwd}")

    full_env = dict(os.environ)
    if env:
        full_env.update(env)

    try:
        result = subprocess.run(
            [str(a) for a in args],
            cwd=str(cwd),
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except FileNotFoundError as e:
        raise PackagingFailed(f"`{args[0]}` is missing", output=str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise PackagingFailed(f"`{command}` timed out", output=str(e)) from e
    except OSError as e:
        raise PackagingFailed(f"`{command}` could not be started", output=str(e)) from e

    output = (result.stdout or '') + (result.stderr or '')
    if result.returncode != 0:
        raise PackagingFailed(f"`{command}` failed with exit code {result.returncode}", output=output)
    return output


Runner = Callable[..., str]


class Vendorer:
    """
    Base class for language vendorers.

    Subclasses name the manifest file that marks a module root and
    implement one method per supported vendoring strategy.
    """

    lang = ''
    manifest = ''
    methods: Sequence[str] = ()

    def __init__(self, runner: Optional[Runner] = None):
        self.run = runner or run_tool

    def module_dir(self, descriptor: RepositoryDescriptor, source_dir: Path) -> Path:
        """Locate the module root and check that it holds the manifest."""
        source_dir = Path(source_dir).resolve()
        module_dir = (source_dir / descriptor.path).resolve()
        if not module_dir.is_relative_to(source_dir):
            raise PackagingFailed(f"module path {descriptor.path} leaves the source tree")
        if not (module_dir / self.manifest).is_file():
            raise PackagingFailed(f"there is no `{self.manifest}` at the specified path")
        return module_dir

    def describe(self, descriptor: RepositoryDescriptor) -> str:
        """Human-readable command summary for log lines."""
        raise NotImplementedError

    def vendor(
        self,
        descriptor: RepositoryDescriptor,
        revision: Revision,
        source_dir: Path,
        deps_dir: Path
    ) -> None:
        """
        Materialize the dependencies of the module into `deps_dir`.

        Raises:
            PackagingFailed: Unknown method, missing manifest or tool failure
        """
        if descriptor.method not in self.methods:
            raise PackagingFailed(f"unknown method {descriptor.method}")

        module_dir = self.module_dir(descriptor, source_dir)
        handler = getattr(self, f"_vendor_{descriptor.method}")
        handler(descriptor, revision, module_dir, Path(deps_dir))


class GoVendorer(Vendorer):
    """Go modules: module cache download or vendor directory."""

    lang = 'go'
    manifest = 'go.mod'
    methods = ('download', 'vendor')

    def describe(self, descriptor: RepositoryDescriptor) -> str:
        return f"go mod {descriptor.method}"

    def nested_modules(self, module_dir: Path) -> List[Path]:
        """Directories below the module root that hold their own go.mod."""
        return sorted(
            p.parent for p in module_dir.rglob(self.manifest)
            if p.parent != module_dir
        )

    def _vendor_download(self, descriptor, revision, module_dir, deps_dir):
        cache_dir = deps_dir / 'go-mod'
        env = {
            'GOFLAGS': '-modcacherw',
            'GOMODCACHE': str(cache_dir),
        }

        self.run(['go', 'mod', 'download'], cwd=module_dir, env=env)
        for nested in self.nested_modules(module_dir):
            self.run(['go', 'mod', 'download'], cwd=nested, env=env)

        # Ebuilds only need the extracted modules, not the zipped copies
        download_cache = cache_dir / 'cache' / 'download'
        if download_cache.is_dir():
            for archive in download_cache.rglob('*.zip'):
                archive.unlink()

    def _vendor_vendor(self, descriptor, revision, module_dir, deps_dir):
        vendor_dir = deps_dir / revision.source_root / descriptor.path / 'vendor'
        self.run(['go', 'mod', 'vendor', '-o', str(vendor_dir)], cwd=module_dir)


class RustVendorer(Vendorer):
    """Cargo: `cargo vendor` into the layout cargo.eclass expects."""

    lang = 'rust'
    manifest = 'Cargo.toml'
    methods = ('vendor',)

    def describe(self, descriptor: RepositoryDescriptor) -> str:
        return "cargo vendor"

    def _vendor_vendor(self, descriptor, revision, module_dir, deps_dir):
        vendor_dir = deps_dir / 'cargo_home' / 'gentoo'
        self.run(['cargo', 'vendor', str(vendor_dir)], cwd=module_dir)


VENDORERS: Dict[str, Type[Vendorer]] = {
    'go': GoVendorer,
    'rust': RustVendorer,
}


def create_vendorer(lang: str, runner: Optional[Runner] = None) -> Vendorer:
    """
    Instantiate the vendorer for `lang`.

    Raises:
        UnsupportedLanguage: No vendorer is registered for the language
    """
    vendorer_class = VENDORERS.get(lang)
    if vendorer_class is None:
        raise UnsupportedLanguage(lang)
    return vendorer_class(runner=runner)
