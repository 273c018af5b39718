# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for grease.

Thin shell over the script registry: resolves the settings root,
configures logging, and dispatches to the command sub-apps.
"""

import logging
from typing import Optional

import typer

from grease import __version__


app = typer.Typer(
    name="grease",
    help="Manage userscripts and plan their injection into pages",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    root: Optional[str] = typer.Option(
        None, "--root", "-r", help="Settings root (default: from config or ~/.grease)"
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """Manage userscripts and plan their injection into pages."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"root": root, "config_path": config_path}


@app.command()
def version():
    """Show version information."""
    typer.echo(f"grease version {__version__}")


# Static commands (config, script)
from grease.commands import config, script

app.add_typer(config.app, name="config")
app.add_typer(script.app, name="script")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
