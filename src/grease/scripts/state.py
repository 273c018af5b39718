"""Persistent userscript state.

Two small JSON documents live under the settings root:
- ``extensions.json``: the list of disabled script full names
- ``scripts/requires/requires.json``: dependency URL -> cached file path

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

STATE_FILENAME = "extensions.json"
REQUIRES_INDEX_FILENAME = "requires.json"
SECTION = "greasemonkey"


def _read_json(path: Path) -> Optional[Any]:
    """Read a JSON file, returning None if it is missing or corrupted."""
    if not path.exists():
        return None

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        # Corrupted file - treat as empty
        logger.warning(f"Ignoring corrupted state file {path}: {e}")
        return None


def _write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temp file and rename it over the target.

    A crash mid-write leaves the previous file intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class StateStore:
    """Reads and writes the disabled-script list for one settings root."""

    def __init__(self, root: Path):
        self.path = Path(root) / STATE_FILENAME

    def load_disabled(self) -> List[str]:
        """Load disabled script full names.

        Returns:
            List of names, or an empty list if nothing was saved yet.

        Raises:
            OSError: If the file exists but cannot be read.
        """
        data = _read_json(self.path)
        if not isinstance(data, dict):
            return []

        section = data.get(SECTION)
        if not isinstance(section, dict):
            return []

        names = section.get("disabled_scripts", [])
        if not isinstance(names, list):
            logger.warning(f"disabled_scripts in {self.path} is not a list, ignoring")
            return []

        return [str(name) for name in names]

    def save_disabled(self, names: List[str]) -> None:
        """Save disabled script full names, keeping any other sections.

        Raises:
            OSError: If the file cannot be written.
        """
        data = _read_json(self.path)
        if not isinstance(data, dict):
            data = {}

        section = data.get(SECTION)
        if not isinstance(section, dict):
            section = {}
        section["disabled_scripts"] = list(names)
        data[SECTION] = section

        _write_json_atomic(self.path, data)


class RequiresIndex:
    """Maps ``@require`` URLs to cached copies in the requires directory."""

    def __init__(self, requires_dir: Path):
        self.requires_dir = Path(requires_dir)
        self.path = self.requires_dir / REQUIRES_INDEX_FILENAME

    def load(self) -> Dict[str, str]:
        data = _read_json(self.path)
        if not isinstance(data, dict):
            return {}
        return {str(url): str(file_name) for url, file_name in data.items()}

    def lookup(self, url: str) -> Optional[Path]:
        """Return the cached file for a URL, or None if it was never cached."""
        file_name = self.load().get(url)
        if file_name is None:
            return None

        path = Path(file_name)
        if not path.is_absolute():
            path = self.requires_dir / path
        return path

    def store(self, url: str, file_name: str) -> None:
        """Record a cached file for a URL.

        Args:
            url: Dependency URL as declared in ``@require``.
            file_name: Cached file name, relative to the requires directory.
        """
        index = self.load()
        index[url] = file_name
        _write_json_atomic(self.path, index)
