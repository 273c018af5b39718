"""URL matching for userscript include/exclude patterns.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import re
from functools import lru_cache
from typing import Sequence
from urllib.parse import urlsplit

from grease.scripts.metadata import ScriptDescriptor

# Schemes a userscript may ever run on
ALLOWED_SCHEMES = ("http", "https", "data", "ftp")

logger = logging.getLogger(__name__)


class UrlPattern:
    """A single @include/@exclude/@match pattern.

    Two forms are understood:
    - ``/regex/``: a regular expression searched against the URL
    - anything else: a glob where ``*`` matches any run of characters and
      every other character is literal; the whole URL must match
    """

    def __init__(self, pattern: str):
        self.pattern = pattern
        if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
            self.is_regex = True
            try:
                self._regex = re.compile(pattern[1:-1])
            except re.error as e:
                logger.warning(f"Invalid regex pattern {pattern}: {e}")
                self._regex = None
        else:
            self.is_regex = False
            glob = "".join(".*" if part == "*" else re.escape(part) for part in re.split(r"(\*)", pattern))
            self._regex = re.compile(glob, re.DOTALL)

    def matches(self, url: str) -> bool:
        if self._regex is None:
            return False
        if self.is_regex:
            return self._regex.search(url) is not None
        return self._regex.fullmatch(url) is not None

    def __repr__(self) -> str:
        return f"UrlPattern({self.pattern!r})"


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> UrlPattern:
    """Compile a pattern, caching the result."""
    return UrlPattern(pattern)


def can_run_on_scheme(url: str) -> bool:
    """Check whether a URL's scheme is one scripts may run on."""
    try:
        scheme = urlsplit(url).scheme
    except ValueError:
        return False
    return scheme.lower() in ALLOWED_SCHEMES


def matches_patterns(include: Sequence[str], exclude: Sequence[str], url: str) -> bool:
    """Evaluate include/exclude patterns against a URL.

    Excludes take precedence. An empty include list matches everything.
    The scheme is not checked here; see can_run_on_scheme.
    """
    for pattern in exclude:
        if compile_pattern(pattern).matches(url):
            return False

    if not include:
        return True

    return any(compile_pattern(pattern).matches(url) for pattern in include)


def matches(script: ScriptDescriptor, url: str) -> bool:
    """Decide whether a script applies to a URL.

    Args:
        script: Parsed userscript.
        url: Full encoded URL of the navigation.

    Returns:
        True if the scheme is allowed and the script's patterns accept the URL.
    """
    if not can_run_on_scheme(url):
        return False
    return matches_patterns(script.include_patterns, script.exclude_patterns, url)
