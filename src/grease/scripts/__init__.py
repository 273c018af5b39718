"""Userscript registry and injection planning.

Scripts are discovered on disk, parsed for their metadata block, and
matched against every navigation to decide what gets injected and when.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from grease.scripts.installer import (
    LogNotifier,
    Notifier,
    cache_require,
    install_script,
)
from grease.scripts.matcher import (
    ALLOWED_SCHEMES,
    UrlPattern,
    can_run_on_scheme,
    matches,
    matches_patterns,
)
from grease.scripts.metadata import (
    RunAt,
    ScriptDescriptor,
    ScriptError,
    ScriptParseError,
    ScriptReadError,
    parse_script,
    read_script,
)
from grease.scripts.planner import (
    InjectionPlan,
    InjectionPlanner,
    NavigationEvent,
)
from grease.scripts.registry import ScriptRegistry
from grease.scripts.state import RequiresIndex, StateStore

__all__ = [
    "RunAt",
    "ScriptDescriptor",
    "ScriptError",
    "ScriptParseError",
    "ScriptReadError",
    "parse_script",
    "read_script",
    "ALLOWED_SCHEMES",
    "UrlPattern",
    "can_run_on_scheme",
    "matches",
    "matches_patterns",
    "ScriptRegistry",
    "StateStore",
    "RequiresIndex",
    "InjectionPlan",
    "InjectionPlanner",
    "NavigationEvent",
    "install_script",
    "cache_require",
    "Notifier",
    "LogNotifier",
]
