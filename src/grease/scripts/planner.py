"""Injection planning for page navigations.

For each navigation, decides which enabled scripts match the URL and
produces the text to hand to the page's JavaScript environment, split
into what runs at document start and what waits for DOMContentLoaded.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import importlib.resources
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from grease.scripts.matcher import can_run_on_scheme, matches_patterns
from grease.scripts.metadata import RunAt, ScriptDescriptor
from grease.scripts.registry import ScriptRegistry

logger = logging.getLogger(__name__)

# Defers a script until the document's content has loaded
END_WRAPPER = 'window.addEventListener("DOMContentLoaded", function(e) {{ {script} }}, false);'


def load_bootstrap() -> str:
    """Read the packaged support code prepended to every script."""
    return (importlib.resources.files("grease") / "data" / "bootstrap.js").read_text(
        encoding="utf-8"
    )


@dataclass(frozen=True)
class NavigationEvent:
    """A navigation-start in one frame."""

    url: str
    frame_id: Optional[str] = None


@dataclass(frozen=True)
class InjectionPlan:
    """Scripts to inject for one URL, in execution order."""

    url: str
    start: Tuple[str, ...] = ()
    end: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.start and not self.end


class InjectionPlanner:
    """Builds injection plans from a registry's enabled scripts."""

    def __init__(self, registry: ScriptRegistry, bootstrap: Optional[str] = None):
        self.registry = registry
        self.bootstrap = load_bootstrap() if bootstrap is None else bootstrap

    def assemble(self, script: ScriptDescriptor) -> str:
        """Bootstrap, cached requires, then the script body."""
        requires = self.registry.resolve_requires(script.require_urls)
        return self.bootstrap + requires + script.body

    def wrap(self, script: ScriptDescriptor) -> str:
        text = self.assemble(script)
        if script.run_at == RunAt.DOCUMENT_END:
            return END_WRAPPER.format(script=text)
        return text

    def select(self, url: str) -> Tuple[List[ScriptDescriptor], List[ScriptDescriptor]]:
        """Enabled scripts matching ``url`` as (document-start, document-end).

        Both lists are empty when the URL's scheme is not allowed.
        """
        if not can_run_on_scheme(url):
            logger.debug(f"Not injecting into {url}: scheme not allowed")
            return [], []

        start_scripts, end_scripts = self.registry.enabled_scripts()
        return (
            [s for s in start_scripts if matches_patterns(s.include_patterns, s.exclude_patterns, url)],
            [s for s in end_scripts if matches_patterns(s.include_patterns, s.exclude_patterns, url)],
        )

    def matching_names(self, url: str) -> Tuple[List[str], List[str]]:
        start, end = self.select(url)
        return [s.full_name for s in start], [s.full_name for s in end]

    def plan(self, url: str) -> InjectionPlan:
        """Produce the injection plan for a navigation to ``url``.

        URLs whose scheme is not http, https, data or ftp get an empty plan.
        Producing a plan never modifies the registry; the whole plan is
        built under one read section, so no mutation lands halfway.
        """
        with self.registry.lock.read():
            start_scripts, end_scripts = self.select(url)
            plan = InjectionPlan(
                url=url,
                start=tuple(self.wrap(s) for s in start_scripts),
                end=tuple(self.wrap(s) for s in end_scripts),
            )
        logger.debug(f"Plan for {url}: {len(plan.start)} start, {len(plan.end)} end")
        return plan

    def plan_event(self, event: NavigationEvent) -> InjectionPlan:
        return self.plan(event.url)
