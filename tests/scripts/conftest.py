"""Shared fixtures for userscript tests."""

import pytest

from grease.scripts.registry import ScriptRegistry


def make_script(name, namespace="", run_at=None, includes=(), excludes=(), requires=(), body="void 0;"):
    """Build userscript text with a metadata block."""
    lines = ["// ==UserScript==", f"// @name {name}"]
    if namespace:
        lines.append(f"// @namespace {namespace}")
    if run_at:
        lines.append(f"// @run-at {run_at}")
    lines += [f"// @include {p}" for p in includes]
    lines += [f"// @exclude {p}" for p in excludes]
    lines += [f"// @require {u}" for u in requires]
    lines.append("// ==/UserScript==")
    lines.append(body)
    return "\n".join(lines) + "\n"


@pytest.fixture
def settings_root(tmp_path):
    """Settings root with an empty scripts directory."""
    (tmp_path / "scripts").mkdir()
    return tmp_path


@pytest.fixture
def write_script(settings_root):
    """Write a userscript file into the scripts directory."""

    def _write(file_name, *args, **kwargs):
        path = settings_root / "scripts" / file_name
        path.write_text(make_script(*args, **kwargs), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def load_registry(settings_root):
    """Create and load a registry for the settings root."""

    def _load():
        registry = ScriptRegistry(settings_root)
        registry.load()
        return registry

    return _load


@pytest.fixture
def script_text():
    """The make_script helper, for tests that need raw text."""
    return make_script
