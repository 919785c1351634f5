import json
import sys
from pathlib import Path

import click

from depsync.config import get_config_path, get_default_config, load_config, save_config
from depsync.exit_codes import CommandError


@click.group("config")
def config_cmd():
    """Configuration management commands."""
    pass


@config_cmd.command("show")
@click.option("--pretty", is_flag=True, help="Display as formatted JSON instead of single-line JSONL")
@click.option("--path", is_flag=True, help="Show the config file path being used")
def show_config(pretty, path):
    """Show the current configuration with all merges applied.

    By default, outputs single-line JSON (JSONL format).
    Use --pretty for human-readable formatted output.
    Use --path to see which config file is being used.
    """
    if path:
        click.echo(json.dumps({"config_path": str(get_config_path())}))
        return

    try:
        config = load_config()
    except CommandError as e:
        click.echo(e.message, err=True)
        sys.exit(e.exit_code)

    if pretty:
        click.echo(json.dumps(config, indent=2, ensure_ascii=False))
    else:
        click.echo(json.dumps(config, ensure_ascii=False))


@config_cmd.command("init")
@click.option("--format", "fmt", type=click.Choice(["yaml", "toml", "json"]), default="yaml",
              help="File format of the new config")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def init_config(fmt, force):
    """Write the default configuration to ~/.depsync/config.<format>."""
    config_path = Path.home() / ".depsync" / f"config.{fmt}"
    if config_path.exists() and not force:
        click.echo(f"Configuration already exists at {config_path} (use --force to overwrite)", err=True)
        sys.exit(1)

    save_config(get_default_config(), config_path)
    click.echo(f"Default configuration written to {config_path}")
