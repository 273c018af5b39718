"""Installing userscripts and caching their dependencies.

Fetching is left to the caller: these functions take the raw text that
was downloaded (or read from disk) and place it in the registry.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Optional, Protocol

from grease.scripts.metadata import ScriptError, parse_script
from grease.scripts.registry import ScriptRegistry

logger = logging.getLogger(__name__)

# Characters allowed in generated file names
UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class Notifier(Protocol):
    """Receives install outcomes, e.g. to show a desktop notification."""

    def script_installed(self, name: str) -> None: ...

    def install_failed(self) -> None: ...


class LogNotifier:
    """Notifier that only writes to the log."""

    def script_installed(self, name: str) -> None:
        logger.info(f"'{name}' installed successfully")

    def install_failed(self) -> None:
        logger.warning("Cannot install script")


def _unique_path(directory: Path, base: str, suffix: str) -> Path:
    """Return ``directory/base+suffix``, adding a counter if it exists."""
    base = UNSAFE_CHARS.sub("_", base).strip("._") or "script"
    candidate = directory / f"{base}{suffix}"
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = directory / f"{base}{counter}{suffix}"
    return candidate


def install_script(
    registry: ScriptRegistry,
    contents: str,
    source_name: str,
    notifier: Optional[Notifier] = None,
) -> bool:
    """Install a userscript from its text.

    Parses the script, refuses it if a script with the same full name is
    already installed, writes it into the scripts directory and adds it to
    the registry.

    Args:
        registry: Registry to install into (must be loaded).
        contents: Script text as downloaded.
        source_name: Original file name or URL, used for the fallback name.
        notifier: Receives the outcome, defaults to LogNotifier.

    Returns:
        True if the script was installed.
    """
    notifier = notifier or LogNotifier()
    source_base = source_name.rstrip("/").rsplit("/", 1)[-1] or "script.user.js"

    try:
        script = parse_script(contents, source_base)
    except ScriptError as e:
        logger.warning(f"Cannot install {source_name}: {e}")
        notifier.install_failed()
        return False

    if registry.contains_script(script.full_name):
        logger.warning(f"Cannot install {source_name}: '{script.full_name}' already installed")
        notifier.install_failed()
        return False

    registry.scripts_dir.mkdir(parents=True, exist_ok=True)
    path = _unique_path(registry.scripts_dir, script.name, ".user.js")
    try:
        path.write_text(contents, encoding="utf-8")
    except OSError as e:
        logger.error(f"Cannot write {path}: {e}")
        notifier.install_failed()
        return False

    # Name the script the way load() will when it reads this file back
    script = parse_script(contents, path.absolute())
    if not registry.add_script(script):
        # Same name as an installed script, or lost a race with another install
        path.unlink()
        notifier.install_failed()
        return False

    missing = [url for url in script.require_urls if registry.requires.lookup(url) is None]
    if missing:
        logger.info(f"'{script.full_name}' has {len(missing)} uncached requires: {missing}")

    notifier.script_installed(script.name)
    return True


def cache_require(registry: ScriptRegistry, url: str, contents: str) -> Path:
    """Store a downloaded ``@require`` dependency and index it.

    Args:
        registry: Registry whose requires directory receives the file.
        url: Dependency URL as declared by the script.
        contents: Downloaded text.

    Returns:
        Path of the cached file.

    Raises:
        OSError: If the file or index cannot be written.
    """
    registry.requires_dir.mkdir(parents=True, exist_ok=True)

    existing = registry.requires.lookup(url)
    if existing is not None and existing.parent == registry.requires_dir:
        path = existing
    else:
        digest = hashlib.sha256(url.encode()).hexdigest()[:12]
        base = url.rstrip("/").rsplit("/", 1)[-1]
        if base.endswith(".js"):
            base = base[:-3]
        path = _unique_path(registry.requires_dir, f"{base}-{digest}", ".js")

    with registry.lock.write():
        path.write_text(contents, encoding="utf-8")
        registry.requires.store(url, path.name)

    logger.info(f"Cached require {url} as {path.name}")
    return path
