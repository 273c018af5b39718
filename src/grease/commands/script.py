"""
Script command for grease.

Lists, toggles, installs and removes userscripts, and shows the
injection plan for a URL.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import json
from pathlib import Path
from typing import Tuple

import typer

from grease.config import ConfigError, load_config
from grease.event_client import EventClient
from grease.scripts import (
    InjectionPlanner,
    RunAt,
    ScriptDescriptor,
    ScriptRegistry,
    cache_require,
    install_script,
)

app = typer.Typer(help="Manage installed userscripts")


class EchoNotifier:
    """Reports install outcomes on the terminal."""

    def script_installed(self, name: str) -> None:
        typer.echo(f"'{name}' installed successfully")

    def install_failed(self) -> None:
        typer.echo("Cannot install script", err=True)


def _open_registry(ctx: typer.Context) -> Tuple[ScriptRegistry, dict]:
    """Build and load the registry for the configured settings root."""
    obj = ctx.obj or {}
    try:
        config = load_config(obj.get("config_path"))
    except (FileNotFoundError, ConfigError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    root = Path(obj["root"]).expanduser() if obj.get("root") else config["root"]
    registry = ScriptRegistry(root)
    if config.get("events"):
        registry.subscribe(EventClient(root / "events.jsonl").scripts_changed)

    try:
        registry.load()
    except OSError as e:
        typer.echo(f"Error: cannot load scripts from {registry.scripts_dir}: {e}", err=True)
        raise typer.Exit(1)
    return registry, config


def _require_script(registry: ScriptRegistry, name: str) -> ScriptDescriptor:
    script = registry.get_script(name)
    if script is None:
        typer.echo(f"Error: no script named '{name}'", err=True)
        raise typer.Exit(1)
    return script


def _run_at_label(script: ScriptDescriptor) -> str:
    return "start" if script.run_at == RunAt.DOCUMENT_START else "end"


@app.command("list")
def list_command(ctx: typer.Context):
    """List installed scripts.

    Examples:
        grease script list
    """
    registry, _ = _open_registry(ctx)
    scripts = registry.all_scripts()

    if not scripts:
        typer.echo(f"No scripts installed in {registry.scripts_dir}")
        return

    typer.echo("Installed scripts:\n")
    for script in scripts:
        badge = "" if script.enabled else " [DISABLED]"
        version = f" {script.version}" if script.version else ""
        typer.echo(f"  {script.full_name}{version}{badge}")
        if script.description:
            typer.echo(f"    {script.description}")
        typer.echo(f"    Runs at: document-{_run_at_label(script)}")
        typer.echo()


@app.command("info")
def info_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Script full name (namespace/name)"),
):
    """Show metadata for a script.

    Examples:
        grease script info "example.org/hello"
    """
    registry, _ = _open_registry(ctx)
    script = _require_script(registry, name)

    typer.echo(f"Script: {script.full_name}")
    typer.echo(f"  File: {script.file_name}")
    typer.echo(f"  Name: {script.name}")
    if script.namespace:
        typer.echo(f"  Namespace: {script.namespace}")
    if script.description:
        typer.echo(f"  Description: {script.description}")
    if script.version:
        typer.echo(f"  Version: {script.version}")
    typer.echo(f"  Enabled: {'yes' if script.enabled else 'no'}")
    typer.echo(f"  Runs at: document-{_run_at_label(script)}")
    typer.echo()
    typer.echo("Patterns:")
    for pattern in script.include_patterns:
        typer.echo(f"  include {pattern}")
    for pattern in script.exclude_patterns:
        typer.echo(f"  exclude {pattern}")
    if not script.include_patterns and not script.exclude_patterns:
        typer.echo("  (runs everywhere)")
    if script.require_urls:
        typer.echo()
        typer.echo("Requires:")
        for url in script.require_urls:
            cached = "cached" if registry.requires.lookup(url) else "not cached"
            typer.echo(f"  {url} ({cached})")


@app.command("enable")
def enable_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Script full name"),
):
    """Enable a script."""
    registry, _ = _open_registry(ctx)
    script = _require_script(registry, name)
    registry.enable_script(script)
    if not registry.save_state():
        typer.echo("Warning: could not save script state", err=True)
    typer.echo(f"Enabled {script.full_name}")


@app.command("disable")
def disable_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Script full name"),
):
    """Disable a script without removing it."""
    registry, _ = _open_registry(ctx)
    script = _require_script(registry, name)
    registry.disable_script(script)
    if not registry.save_state():
        typer.echo("Warning: could not save script state", err=True)
    typer.echo(f"Disabled {script.full_name}")


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Script full name"),
):
    """Remove a script and delete its file."""
    registry, _ = _open_registry(ctx)
    script = _require_script(registry, name)
    if not registry.remove_script(script):
        typer.echo(f"Error: could not remove '{name}'", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {name}")


@app.command("install")
def install_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Userscript file to install"),
):
    """Install a userscript from a local file.

    Examples:
        grease script install ~/Downloads/hello.user.js
    """
    registry, _ = _open_registry(ctx)
    try:
        contents = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"Error: cannot read {path}: {e}", err=True)
        raise typer.Exit(1)

    if not install_script(registry, contents, path.name, EchoNotifier()):
        raise typer.Exit(1)


@app.command("require")
def require_command(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Dependency URL as declared by @require"),
    path: Path = typer.Argument(..., help="Local copy of the dependency"),
):
    """Cache a downloaded @require dependency."""
    registry, _ = _open_registry(ctx)
    try:
        cached = cache_require(registry, url, path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Cached {url} as {cached.name}")


@app.command("plan")
def plan_command(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL being navigated to"),
    format: str = typer.Option("text", "--format", "-f", help="Output format: text, json"),
):
    """Show which scripts would be injected into a URL.

    Examples:
        grease script plan https://example.com/
        grease script plan https://example.com/ --format json
    """
    registry, config = _open_registry(ctx)

    bootstrap = None
    if config.get("bootstrap"):
        try:
            bootstrap = Path(config["bootstrap"]).read_text(encoding="utf-8")
        except OSError as e:
            typer.echo(f"Error: cannot read bootstrap {config['bootstrap']}: {e}", err=True)
            raise typer.Exit(1)

    planner = InjectionPlanner(registry, bootstrap=bootstrap)
    plan = planner.plan(url)

    if format == "json":
        typer.echo(json.dumps({"url": plan.url, "start": list(plan.start), "end": list(plan.end)}, indent=2))
        return

    names = planner.matching_names(url)
    typer.echo(f"Plan for {url}:")
    typer.echo(f"  document-start: {', '.join(names[0]) or '(none)'}")
    typer.echo(f"  document-end: {', '.join(names[1]) or '(none)'}")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    list_all: bool = typer.Option(
        False,
        "--list",
        "-l",
        help="List installed scripts",
    ),
):
    """Manage installed userscripts.

    Use subcommands:
        grease script list              List scripts
        grease script info <name>       Show script metadata
        grease script enable <name>     Enable a script
        grease script disable <name>    Disable a script
        grease script install <path>    Install a script file
        grease script remove <name>     Remove a script
        grease script plan <url>        Show the injection plan for a URL
    """
    if list_all:
        list_command(ctx)
        return

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)
