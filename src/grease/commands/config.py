# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for grease.

Provides basic configuration validation.
"""

import typer

from grease.config import ConfigError, default_config_path, load_config

app = typer.Typer(help="Manage and validate configuration")


@app.command()
def validate(
    ctx: typer.Context,
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Validate configuration file.

    Checks that the config file is valid YAML and shows the resolved values.
    """
    if config_path is None and ctx.obj:
        config_path = ctx.obj.get("config_path")

    typer.echo("Validating configuration...")
    typer.echo()

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ConfigError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Config file: {config_path or default_config_path()}")
    typer.echo(f"Root: {config['root']}")
    typer.echo(f"Scripts: {config['root'] / 'scripts'}")
    if config.get("bootstrap"):
        typer.echo(f"Bootstrap: {config['bootstrap']}")
    typer.echo()
    typer.echo("Configuration validation complete!")
