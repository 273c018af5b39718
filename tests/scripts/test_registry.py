"""Tests for the userscript registry."""

import json
import threading

import pytest

from grease.scripts.metadata import RunAt, ScriptDescriptor, parse_script
from grease.scripts.planner import InjectionPlanner
from grease.scripts.registry import ScriptRegistry
from grease.scripts.state import StateStore


class TestLoad:
    """Tests for ScriptRegistry.load."""

    def test_creates_directories(self, tmp_path):
        """Loading an empty root creates scripts/ and scripts/requires/."""
        registry = ScriptRegistry(tmp_path / "root")
        registry.load()

        assert (tmp_path / "root" / "scripts").is_dir()
        assert (tmp_path / "root" / "scripts" / "requires").is_dir()
        assert registry.all_scripts() == []

    def test_load_twice_is_idempotent(self, settings_root, write_script):
        write_script("a.user.js", "A")
        registry = ScriptRegistry(settings_root)
        registry.load()
        registry.load()

        assert [s.full_name for s in registry.all_scripts()] == ["A"]

    def test_partitions_by_run_at(self, write_script, load_registry):
        """Start scripts come first in all_scripts."""
        write_script("a.user.js", "A")
        write_script("b.user.js", "B", run_at="document-start")
        write_script("c.user.js", "C")

        registry = load_registry()

        assert [s.full_name for s in registry.all_scripts()] == ["B", "A", "C"]
        start, end = registry.enabled_scripts()
        assert [s.full_name for s in start] == ["B"]
        assert [s.full_name for s in end] == ["A", "C"]

    def test_skips_malformed_files(self, settings_root, write_script, load_registry, caplog):
        """A broken file is skipped with a warning; the rest still loads."""
        write_script("good.user.js", "Good")
        (settings_root / "scripts" / "broken.user.js").write_text(
            "// ==UserScript==\n// @name Broken\nalert(1);\n"
        )
        (settings_root / "scripts" / "binary.js").write_bytes(b"\xff\xfe\x00")

        registry = load_registry()

        assert [s.full_name for s in registry.all_scripts()] == ["Good"]
        assert "broken.user.js" in caplog.text
        assert "binary.js" in caplog.text

    def test_ignores_other_extensions_and_subdirectories(self, settings_root, write_script, load_registry):
        write_script("a.user.js", "A")
        (settings_root / "scripts" / "notes.txt").write_text("not a script")
        (settings_root / "scripts" / "requires").mkdir()
        (settings_root / "scripts" / "requires" / "lib.js").write_text("var lib = 1;")

        registry = load_registry()

        assert [s.full_name for s in registry.all_scripts()] == ["A"]

    def test_duplicate_full_name_skipped(self, write_script, load_registry):
        """Only the first file claiming a full name is loaded."""
        write_script("a.user.js", "Same", namespace="ns")
        write_script("b.user.js", "Same", namespace="ns")

        registry = load_registry()

        scripts = registry.all_scripts()
        assert len(scripts) == 1
        assert scripts[0].file_name.endswith("a.user.js")

    def test_restores_disabled_state(self, settings_root, write_script, load_registry):
        write_script("a.user.js", "A")
        write_script("b.user.js", "B")
        StateStore(settings_root).save_disabled(["B"])

        registry = load_registry()

        assert registry.get_script("A").enabled is True
        assert registry.get_script("B").enabled is False

    def test_drops_stale_disabled_names(self, settings_root, write_script, load_registry):
        """Disabled names for scripts that no longer exist are forgotten."""
        write_script("a.user.js", "A")
        StateStore(settings_root).save_disabled(["A", "Gone"])

        registry = load_registry()

        assert registry.disabled_scripts() == ["A"]
        assert StateStore(settings_root).load_disabled() == ["A"]


class TestQueries:
    """Tests for contains_script and get_script."""

    def test_contains_script(self, write_script, load_registry):
        write_script("a.user.js", "A", namespace="ns")
        write_script("b.user.js", "B", run_at="start")
        registry = load_registry()

        assert registry.contains_script("ns/A")
        assert registry.contains_script("B")
        assert not registry.contains_script("A")
        assert not registry.contains_script("C")

    def test_all_scripts_returns_copy(self, write_script, load_registry):
        write_script("a.user.js", "A")
        registry = load_registry()

        registry.all_scripts().clear()

        assert len(registry.all_scripts()) == 1


class TestAddScript:
    """Tests for ScriptRegistry.add_script."""

    def test_add_none(self, load_registry):
        registry = load_registry()
        assert registry.add_script(None) is False

    def test_add_invalid_operand(self, load_registry):
        registry = load_registry()
        assert registry.add_script("not a script") is False
        assert registry.all_scripts() == []

    def test_add_to_group(self, load_registry):
        registry = load_registry()
        start = ScriptDescriptor(name="S", run_at=RunAt.DOCUMENT_START)
        end = ScriptDescriptor(name="E")

        assert registry.add_script(end) is True
        assert registry.add_script(start) is True

        assert registry.all_scripts() == [start, end]

    def test_add_duplicate_rejected(self, load_registry):
        registry = load_registry()
        assert registry.add_script(ScriptDescriptor(name="A", namespace="ns")) is True
        assert registry.add_script(ScriptDescriptor(name="A", namespace="ns", run_at=RunAt.DOCUMENT_START)) is False

        assert len(registry.all_scripts()) == 1

    def test_add_notifies_observers(self, load_registry):
        registry = load_registry()
        calls = []
        registry.subscribe(calls.append)

        registry.add_script(ScriptDescriptor(name="A"))
        registry.add_script(None)

        assert calls == [registry]

    def test_unsubscribe(self, load_registry):
        registry = load_registry()
        calls = []
        unsubscribe = registry.subscribe(calls.append)
        unsubscribe()

        registry.add_script(ScriptDescriptor(name="A"))

        assert calls == []

    def test_failing_observer_does_not_break_add(self, load_registry):
        registry = load_registry()

        def boom(_):
            raise RuntimeError("observer failure")

        registry.subscribe(boom)

        assert registry.add_script(ScriptDescriptor(name="A")) is True
        assert registry.contains_script("A")


class TestRemoveScript:
    """Tests for ScriptRegistry.remove_script."""

    def test_remove_none(self, load_registry):
        assert load_registry().remove_script(None) is False

    def test_remove_deletes_file(self, write_script, load_registry):
        path = write_script("a.user.js", "A")
        registry = load_registry()
        script = registry.get_script("A")

        assert registry.remove_script(script) is True

        assert not path.exists()
        assert not registry.contains_script("A")

    def test_remove_twice(self, write_script, load_registry, monkeypatch):
        """The second removal fails and the file is deleted exactly once."""
        write_script("a.user.js", "A")
        registry = load_registry()
        script = registry.get_script("A")

        deleted = []
        original_unlink = type(registry.scripts_dir).unlink

        def counting_unlink(self, *args, **kwargs):
            deleted.append(self)
            return original_unlink(self, *args, **kwargs)

        monkeypatch.setattr(type(registry.scripts_dir), "unlink", counting_unlink)

        assert registry.remove_script(script) is True
        assert registry.remove_script(script) is False
        assert len(deleted) == 1

    def test_remove_clears_disabled_state(self, settings_root, write_script, load_registry):
        write_script("a.user.js", "A")
        registry = load_registry()
        script = registry.get_script("A")
        registry.disable_script(script)

        registry.remove_script(script)

        assert registry.disabled_scripts() == []
        assert StateStore(settings_root).load_disabled() == []

    def test_remove_notifies_observers(self, write_script, load_registry):
        write_script("a.user.js", "A")
        registry = load_registry()
        calls = []
        registry.subscribe(calls.append)

        registry.remove_script(registry.get_script("A"))

        assert len(calls) == 1

    def test_remove_missing_backing_file(self, write_script, load_registry):
        """A backing file deleted behind our back does not fail removal."""
        path = write_script("a.user.js", "A")
        registry = load_registry()
        path.unlink()

        assert registry.remove_script(registry.get_script("A")) is True

    def test_remove_after_run_at_changed(self, write_script, load_registry):
        """Removal finds the script even if its run_at was reassigned."""
        path = write_script("a.user.js", "A")
        registry = load_registry()
        script = registry.get_script("A")
        script.run_at = RunAt.DOCUMENT_START

        assert registry.remove_script(script) is True

        assert not path.exists()
        assert registry.all_scripts() == []


class TestEnableDisable:
    """Tests for enable_script and disable_script."""

    def test_disable_persists(self, settings_root, write_script, load_registry):
        write_script("a.user.js", "A")
        registry = load_registry()
        script = registry.get_script("A")

        registry.disable_script(script)

        assert script.enabled is False
        assert registry.disabled_scripts() == ["A"]
        assert StateStore(settings_root).load_disabled() == ["A"]

    def test_disable_twice_single_entry(self, write_script, load_registry):
        write_script("a.user.js", "A")
        registry = load_registry()
        script = registry.get_script("A")

        registry.disable_script(script)
        registry.disable_script(script)

        assert registry.disabled_scripts() == ["A"]

    def test_round_trip_across_reload(self, write_script, load_registry):
        """Disabled state survives a reload; re-enabling does too."""
        write_script("a.user.js", "A", namespace="ns")
        registry = load_registry()
        registry.disable_script(registry.get_script("ns/A"))

        reloaded = load_registry()
        assert reloaded.get_script("ns/A").enabled is False

        reloaded.enable_script(reloaded.get_script("ns/A"))
        assert load_registry().get_script("ns/A").enabled is True

    def test_does_not_change_group_or_others(self, write_script, load_registry):
        write_script("a.user.js", "A", run_at="document-start")
        write_script("b.user.js", "B")
        registry = load_registry()
        before = registry.all_scripts()

        registry.disable_script(registry.get_script("A"))

        assert registry.all_scripts() == before
        assert registry.get_script("B").enabled is True
        start, end = registry.enabled_scripts()
        assert start == []
        assert [s.full_name for s in end] == ["B"]

    def test_disable_equal_copy(self, write_script, load_registry):
        """Disabling a copy disables the registered script too."""
        path = write_script("a.user.js", "A", includes=["https://example.com/*"])
        registry = load_registry()
        copy = parse_script(path.read_text(encoding="utf-8"), path)

        registry.disable_script(copy)

        assert registry.get_script("A").enabled is False
        assert registry.disabled_scripts() == ["A"]
        plan = InjectionPlanner(registry, bootstrap="").plan("https://example.com/")
        assert plan.end == ()

    def test_enable_equal_copy(self, write_script, load_registry):
        path = write_script("a.user.js", "A")
        registry = load_registry()
        registry.disable_script(registry.get_script("A"))

        registry.enable_script(parse_script(path.read_text(encoding="utf-8"), path))

        assert registry.get_script("A").enabled is True
        assert registry.disabled_scripts() == []

    def test_disable_unknown_script_ignored(self, settings_root, write_script, load_registry):
        write_script("a.user.js", "A")
        registry = load_registry()

        registry.disable_script(ScriptDescriptor(name="Other"))

        assert registry.disabled_scripts() == []
        assert StateStore(settings_root).load_disabled() == []
        assert not registry.contains_script("Other")


class TestSaveState:
    """Tests for save_state and persistence failures."""

    def test_save_state_returns_true(self, load_registry):
        assert load_registry().save_state() is True

    def test_save_failure_is_reported(self, write_script, load_registry, monkeypatch, caplog):
        """A failing save is logged and returns False without raising."""
        write_script("a.user.js", "A")
        registry = load_registry()

        def fail(names):
            raise OSError("disk full")

        monkeypatch.setattr(registry.store, "save_disabled", fail)

        registry.disable_script(registry.get_script("A"))

        assert registry.save_state() is False
        assert registry.get_script("A").enabled is False
        assert "disk full" in caplog.text

    def test_close_saves(self, settings_root, write_script, load_registry):
        """Leaving the context writes the disabled list again."""
        write_script("a.user.js", "A")
        with load_registry() as registry:
            registry.disable_script(registry.get_script("A"))
            (settings_root / "extensions.json").unlink()

        data = json.loads((settings_root / "extensions.json").read_text())
        assert data["greasemonkey"]["disabled_scripts"] == ["A"]


class TestResolveRequires:
    """Tests for resolve_requires."""

    def _cache(self, settings_root, mapping):
        requires_dir = settings_root / "scripts" / "requires"
        requires_dir.mkdir(parents=True, exist_ok=True)
        index = {}
        for url, (file_name, text) in mapping.items():
            (requires_dir / file_name).write_text(text)
            index[url] = file_name
        (requires_dir / "requires.json").write_text(json.dumps(index))

    def test_concatenates_in_declared_order(self, settings_root, load_registry):
        self._cache(settings_root, {
            "https://cdn/a.js": ("a.js", "  var a = 1;  \n\n"),
            "https://cdn/b.js": ("b.js", "var b = 2;"),
        })
        registry = load_registry()

        text = registry.resolve_requires(["https://cdn/b.js", "https://cdn/a.js"])

        assert text == "var b = 2;\nvar a = 1;\n"

    def test_skips_uncached(self, settings_root, load_registry):
        self._cache(settings_root, {"https://cdn/a.js": ("a.js", "var a = 1;")})
        registry = load_registry()

        assert registry.resolve_requires(["https://cdn/missing.js", "https://cdn/a.js"]) == "var a = 1;\n"

    def test_empty(self, load_registry):
        assert load_registry().resolve_requires([]) == ""

    def test_no_index(self, load_registry):
        assert load_registry().resolve_requires(["https://cdn/a.js"]) == ""


class TestConcurrency:
    """Registry operations from several threads stay consistent."""

    def test_parallel_add_and_read(self, load_registry):
        registry = load_registry()
        errors = []

        def add(i):
            try:
                registry.add_script(ScriptDescriptor(name=f"S{i}", run_at=RunAt.DOCUMENT_START if i % 2 else RunAt.DOCUMENT_END))
                registry.all_scripts()
                registry.enabled_scripts()
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=add, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(registry.all_scripts()) == 20
        start, end = registry.enabled_scripts()
        assert len(start) == 10
        assert len(end) == 10
