"""
List command for depsync.

Shows the repository table, optionally with the versions already
published to the package registry.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from ..config import check_settings, configure_logging, load_config, logger, resolve_credentials, run_checks
from ..exit_codes import CommandError
from ..infra.gitlab_client import GitLabRegistryClient
from ..render import render_descriptors
from ..table import load_descriptors, select_descriptors


@click.command('list')
@click.option('--repos-file', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Repository table (default: repos_file from config)')
@click.option('-n', '--name', 'name_filter', default=None, help='Only show the package with this name')
@click.option('--published', is_flag=True, help='Query the registry for published versions')
@click.option('--json', 'as_json', is_flag=True, help='Output JSONL instead of a table')
def list_handler(repos_file: Optional[Path], name_filter: Optional[str], published: bool, as_json: bool):
    """
    Show tracked repositories.

    \b
    Examples:
        depsync list
        depsync list --published
        depsync list --json | jq .name
    """
    try:
        config = load_config()
        check_settings(config)
        configure_logging(config['logging']['level'], config['logging']['format'])

        descriptors = select_descriptors(
            load_descriptors(repos_file or Path(config['repos_file'])), name_filter
        )

        snapshot = None
        if published:
            credentials = resolve_credentials(config)
            run_checks(credentials, forges=[], langs=[], needs_registry=True, needs_tools=False)
            client = GitLabRegistryClient(
                project_id=credentials.gitlab_project_id,
                auth_header=credentials.gitlab_auth_header,
                api_url=config['gitlab']['api_url'],
                timeout=config['http']['timeout_seconds'],
            )
            snapshot = client.fetch_published_versions()
    except CommandError as e:
        if e.output:
            logger.error(e.output.strip())
        logger.error(e.message)
        sys.exit(e.exit_code)

    if as_json:
        for d in descriptors:
            record = d.to_dict()
            if snapshot is not None:
                record['published'] = sorted(snapshot.versions_for(d.name))
            click.echo(json.dumps(record, ensure_ascii=False))
        return

    render_descriptors(descriptors, published=snapshot)
