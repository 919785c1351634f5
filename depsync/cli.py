#!/usr/bin/env python3

import click

from depsync.commands.sync import sync_handler
from depsync.commands.list import list_handler
from depsync.commands.config import config_cmd


@click.group()
@click.version_option(package_name="depsync")
def cli():
    """depsync - Dependency bundles for Gentoo ebuilds.

    Tracks upstream repositories on GitHub and Forgejo, vendors the
    dependencies of their latest releases and publishes the archives to a
    GitLab package registry.
    """
    pass


cli.add_command(sync_handler, name='sync')
cli.add_command(list_handler, name='list')
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
