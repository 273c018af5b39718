"""Userscript metadata parsing.

Turns the text of a userscript into a ScriptDescriptor by reading its
``// ==UserScript==`` block. The script body itself is kept verbatim.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union


class ScriptError(Exception):
    """Base class for userscript loading errors."""

    pass


class ScriptParseError(ScriptError):
    """Raised when a script's metadata block is malformed."""

    pass


class ScriptReadError(ScriptError):
    """Raised when a script file cannot be read."""

    pass


METADATA_START = "// ==UserScript=="
METADATA_END = "// ==/UserScript=="

# "// @key value" - value may be empty
METADATA_LINE = re.compile(r"^//\s*@([\w:-]+)(?:\s+(.*))?$")


class RunAt(Enum):
    """When a script runs relative to document construction."""

    DOCUMENT_START = "document-start"
    DOCUMENT_END = "document-end"


@dataclass
class ScriptDescriptor:
    """One parsed userscript.

    Identity is ``full_name``; ``file_name`` is the backing file owned by
    the registry (None until the script is installed).
    """

    name: str
    namespace: str = ""
    description: str = ""
    version: str = ""
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    require_urls: List[str] = field(default_factory=list)
    run_at: RunAt = RunAt.DOCUMENT_END
    body: str = ""
    file_name: Optional[str] = None
    enabled: bool = True

    @property
    def full_name(self) -> str:
        """Registry key: ``namespace/name``, or just ``name`` without a namespace."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


def script_base_name(file_name: Union[str, Path]) -> str:
    """Derive a script name from its file name.

    Example:
        >>> script_base_name("/tmp/hello.user.js")
        'hello'
    """
    base = Path(file_name).name
    for suffix in (".user.js", ".js"):
        if base.endswith(suffix) and len(base) > len(suffix):
            return base[: -len(suffix)]
    return base


def _parse_run_at(value: str) -> RunAt:
    if value.strip().lower() in ("start", "document-start"):
        return RunAt.DOCUMENT_START
    return RunAt.DOCUMENT_END


def parse_script(contents: str, file_name: Union[str, Path, None] = None) -> ScriptDescriptor:
    """Parse userscript text into a descriptor.

    A missing metadata block is not an error: the script gets default
    metadata and its name comes from ``file_name``. Unrecognized keys are
    ignored.

    Args:
        contents: Full script text.
        file_name: Source file name, used for the fallback name.

    Returns:
        ScriptDescriptor with ``body`` set to ``contents``.

    Raises:
        ScriptParseError: If the metadata block is opened but never closed.
    """
    fallback_name = script_base_name(file_name) if file_name else ""
    script = ScriptDescriptor(name=fallback_name, body=contents)
    if file_name:
        script.file_name = str(file_name)

    in_block = False
    closed = False
    for raw_line in contents.splitlines():
        line = raw_line.strip()
        if not in_block:
            if line.startswith(METADATA_START):
                in_block = True
            continue

        if line.startswith(METADATA_END):
            closed = True
            break

        match = METADATA_LINE.match(line)
        if not match:
            continue
        key = match.group(1).lower()
        value = (match.group(2) or "").strip()

        if key == "name":
            script.name = value or fallback_name
        elif key == "namespace":
            script.namespace = value
        elif key == "description":
            script.description = value
        elif key == "version":
            script.version = value
        elif key in ("match", "include"):
            if value:
                script.include_patterns.append(value)
        elif key == "exclude":
            if value:
                script.exclude_patterns.append(value)
        elif key == "require":
            if value:
                script.require_urls.append(value)
        elif key == "run-at":
            script.run_at = _parse_run_at(value)

    if in_block and not closed:
        raise ScriptParseError(
            f"metadata block in {file_name or '<text>'} is missing '{METADATA_END}'"
        )

    if not script.name:
        raise ScriptParseError("script has no @name and no file name to fall back on")

    return script


def read_script(path: Union[str, Path]) -> ScriptDescriptor:
    """Read and parse a userscript file.

    Args:
        path: Path to the ``.js`` file.

    Returns:
        ScriptDescriptor with ``file_name`` set to the absolute path.

    Raises:
        ScriptReadError: If the file cannot be read or decoded.
        ScriptParseError: If the metadata block is malformed.
    """
    path = Path(path).absolute()
    try:
        contents = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ScriptReadError(f"cannot read script {path}: {e}")

    return parse_script(contents, path)
