"""
Sync command for depsync.

Resolves every tracked repository, skips versions already in the package
registry, builds dependency archives for the rest and optionally publishes
them.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from ..config import (
    check_settings,
    configure_logging,
    load_config,
    logger,
    resolve_credentials,
    run_checks,
)
from ..exit_codes import CommandError, NoReposFoundError, PartialSuccessError
from ..infra.gitlab_client import GitLabRegistryClient
from ..render import render_summary
from ..services.batch import BatchResult, RepositoryBatchDriver
from ..services.packager import Packager
from ..services.resolver import RevisionResolver
from ..table import load_descriptors, select_descriptors


def resolve_relative(path: Path, base: Path) -> Path:
    """Anchor a relative path at `base`."""
    path = Path(path).expanduser()
    return path if path.is_absolute() else base / path


def run_sync(
    config: Dict[str, Any],
    repos_file: Path,
    output_dir: Path,
    name_filter: Optional[str] = None,
    ignore: bool = False,
    publish: bool = False,
    dry_run: bool = False,
    keep_temp: bool = False,
    environ=None,
) -> BatchResult:
    """
    Run the whole sync pipeline.

    Startup checks run before any record is touched, and the registry
    snapshot is taken at most once (never with `ignore`).

    Raises:
        ConfigurationError: Unreadable table, missing tool or credential
        RegistryUnavailable: The registry listing failed
        NoReposFoundError: The name filter matched nothing
    """
    check_settings(config)
    descriptors = load_descriptors(repos_file)
    selected = select_descriptors(descriptors, name_filter)
    if name_filter and not selected:
        raise NoReposFoundError(f"no repository named {name_filter}")

    publish_enabled = publish and not dry_run
    needs_registry = not ignore or publish_enabled

    credentials = resolve_credentials(config, environ)
    run_checks(
        credentials,
        forges=[d.forge for d in selected],
        langs=[d.lang for d in selected],
        needs_registry=needs_registry,
        needs_tools=not dry_run,
    )

    timeout = config['http']['timeout_seconds']

    registry_client = None
    if needs_registry:
        registry_client = GitLabRegistryClient(
            project_id=credentials.gitlab_project_id,
            auth_header=credentials.gitlab_auth_header,
            api_url=config['gitlab']['api_url'],
            timeout=timeout,
        )

    published = None
    if not ignore:
        published = registry_client.fetch_published_versions()

    packager = Packager(
        output_dir=output_dir,
        prepare_dir=resolve_relative(Path(config['prepare_dir']), Path(repos_file).parent),
        keep_temp=keep_temp,
        xz_preset=config['archive']['xz_preset'],
        timeout=timeout,
    )

    driver = RepositoryBatchDriver(
        resolver=RevisionResolver.from_token(credentials.github_token, timeout=timeout),
        packager=packager,
        publisher=registry_client if publish_enabled else None,
        registry=published,
        ignore=ignore,
        publish=publish_enabled,
        dry_run=dry_run,
    )
    return driver.run(descriptors, name_filter=name_filter)


@click.command('sync')
@click.option('-d', '--debug', is_flag=True, help='Enable debug messages')
@click.option('-i', '--ignore', is_flag=True, help='Ignore existing packages')
@click.option('-n', '--name', 'name_filter', default=None, help='Build the package with this name')
@click.option('-p', '--publish', is_flag=True, help='Publish the packages')
@click.option('--repos-file', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Repository table (default: repos_file from config)')
@click.option('--output-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Where archives are written (default: output_dir from config)')
@click.option('--keep-temp', is_flag=True, help='Keep the temporary directory of failed records')
@click.option('--dry-run', is_flag=True, help='Resolve and check the registry only')
@click.option('--fail-on-error', is_flag=True, help='Exit non-zero when any record fails')
@click.option('--pretty', is_flag=True, help='Print a summary table')
def sync_handler(
    debug: bool,
    ignore: bool,
    name_filter: Optional[str],
    publish: bool,
    repos_file: Optional[Path],
    output_dir: Optional[Path],
    keep_temp: bool,
    dry_run: bool,
    fail_on_error: bool,
    pretty: bool,
):
    """
    Build dependency archives for tracked repositories.

    Each repository's latest release (or latest commit for live entries)
    is resolved and compared with the versions in the package registry.
    New versions get their dependencies vendored and packed into
    <name>-<version>-deps.tar.xz.

    \b
    Credentials (environment):
        GITHUB_TOKEN                    GitHub API token
        GITLAB_TOKEN or CI_JOB_TOKEN    Package registry token
        GITLAB_PROJECT_ID or CI_PROJECT_ID

    \b
    Examples:
        # Build everything not yet published
        depsync sync
        # Rebuild one package and publish it
        depsync sync --ignore --name foo --publish
        # See what would be built
        depsync sync --dry-run
    """
    try:
        config = load_config()
        configure_logging('DEBUG' if debug else config['logging']['level'],
                          config['logging']['format'])

        result = run_sync(
            config,
            repos_file=repos_file or Path(config['repos_file']),
            output_dir=output_dir or Path(config['output_dir']),
            name_filter=name_filter,
            ignore=ignore,
            publish=publish,
            dry_run=dry_run,
            keep_temp=keep_temp,
        )

        logger.info(
            f"done: {len(result.packaged)} packaged, {len(result.published)} published, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        if pretty:
            render_summary(result)

        if fail_on_error and result.has_failures:
            raise PartialSuccessError(
                f"{len(result.failed)} repositories failed: {', '.join(result.failed)}",
                succeeded=result.processed - len(result.failed),
                failed=len(result.failed),
            )
    except CommandError as e:
        if e.output:
            logger.error(e.output.strip())
        logger.error(e.message)
        sys.exit(e.exit_code)
