# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for riffbox.

Checks a config file and prints the limits the executor will run with.
"""

from pathlib import Path
from typing import Optional

import typer

from riffbox.config import get_config_paths, load_config
from riffbox.errors import ConfigError

app = typer.Typer(help="Manage and validate configuration")


def _source_of(config_path: Optional[str]) -> str:
    """Describe which file load_config reads, if any."""
    if config_path:
        return str(Path(config_path).expanduser())
    for path in get_config_paths():
        if path.exists():
            return str(path)
    return "(defaults, no config file found)"


@app.command()
def validate(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Validate configuration file.

    Checks that the file is a YAML mapping with known keys and that the
    timeouts and tempo are in range.
    """
    typer.echo(f"Checking {_source_of(config_path)}")

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ConfigError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Configuration structure is valid")
    typer.echo(f"Timeout: {config.default_timeout_ms}ms (max {config.max_timeout_ms}ms)")
    typer.echo(f"Default tempo: {config.default_tempo_bpm:g} bpm")
    typer.echo(f"Event log: {config.events_log_path or 'disabled'}")


@app.command()
def show(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Show the effective configuration and where it is searched for."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"# source: {_source_of(config_path)}")
    for key, value in config.to_dict().items():
        typer.echo(f"{key}: {value}")
    typer.echo()
    typer.echo("Search paths:")
    for path in get_config_paths():
        typer.echo(f"  - {path}")
