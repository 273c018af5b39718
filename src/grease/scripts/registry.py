"""Userscript registry.

Owns every known script, split into a document-start and a document-end
group, plus the list of disabled script names persisted across restarts.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from grease.scripts.locking import ReadWriteLock
from grease.scripts.metadata import RunAt, ScriptDescriptor, ScriptError, read_script
from grease.scripts.state import RequiresIndex, StateStore

SCRIPT_GLOB = "*.js"

Observer = Callable[["ScriptRegistry"], None]


class ScriptRegistry:
    """The set of installed userscripts and their enabled state.

    Construct one per settings root and pass it to whatever drives
    navigations (see InjectionPlanner) and to the CLI.
    """

    def __init__(self, root: Union[str, Path], store: Optional[StateStore] = None):
        """
        Initialize registry.

        Args:
            root: Settings root; scripts live in ``<root>/scripts``
            store: Disabled-state store, defaults to one under ``root``
        """
        self.root = Path(root).expanduser()
        self.scripts_dir = self.root / "scripts"
        self.requires_dir = self.scripts_dir / "requires"
        self.store = store or StateStore(self.root)
        self.requires = RequiresIndex(self.requires_dir)
        self.logger = logging.getLogger(__name__)
        self.lock = ReadWriteLock()

        self._start_scripts: List[ScriptDescriptor] = []
        self._end_scripts: List[ScriptDescriptor] = []
        self._disabled: List[str] = []
        self._observers: List[Observer] = []

    def __enter__(self) -> "ScriptRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- observers ---------------------------------------------------------

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register a callback for "scripts changed" events.

        Returns:
            A function that removes the callback again.
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _scripts_changed(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception:
                self.logger.exception("scripts-changed observer failed")

    # -- loading and persistence ------------------------------------------

    def load(self) -> None:
        """Scan the scripts directory and restore disabled state.

        Creates ``scripts/`` and ``scripts/requires/`` if needed. Files that
        cannot be read or parsed are skipped with a warning. Existing
        in-memory scripts are replaced.

        Raises:
            OSError: If the directories cannot be created.
        """
        with self.lock.write():
            self.requires_dir.mkdir(parents=True, exist_ok=True)

            try:
                disabled = self.store.load_disabled()
            except OSError as e:
                self.logger.error(f"Cannot read disabled scripts from {self.store.path}: {e}")
                disabled = []

            start: List[ScriptDescriptor] = []
            end: List[ScriptDescriptor] = []
            seen = set()

            for path in sorted(self.scripts_dir.glob(SCRIPT_GLOB)):
                if not path.is_file():
                    continue
                try:
                    script = read_script(path)
                except ScriptError as e:
                    self.logger.warning(f"Skipping script {path.name}: {e}")
                    continue

                if script.full_name in seen:
                    self.logger.warning(
                        f"Skipping script {path.name}: duplicate name '{script.full_name}'"
                    )
                    continue
                seen.add(script.full_name)

                script.enabled = script.full_name not in disabled
                self._group(script, start, end).append(script)
                self.logger.debug(f"Loaded script '{script.full_name}' from {path.name}")

            self._start_scripts = start
            self._end_scripts = end
            # Drop names of scripts that no longer exist
            self._disabled = [name for name in dict.fromkeys(disabled) if name in seen]
            if self._disabled != disabled:
                self.logger.debug(f"Pruning disabled list to {self._disabled}")
                self.save_state()

            self.logger.info(
                f"Loaded {len(start) + len(end)} scripts "
                f"({len(start)} document-start, {len(end)} document-end)"
            )

    def save_state(self) -> bool:
        """Persist the disabled-script list.

        Returns:
            True on success, False if the state file could not be written.
        """
        with self.lock.write():
            try:
                self.store.save_disabled(self._disabled)
            except OSError as e:
                self.logger.error(f"Cannot save disabled scripts to {self.store.path}: {e}")
                return False
            return True

    def close(self) -> None:
        """Final save at shutdown."""
        self.save_state()

    # -- queries -----------------------------------------------------------

    def all_scripts(self) -> List[ScriptDescriptor]:
        """All scripts, document-start group first."""
        with self.lock.read():
            return self._start_scripts + self._end_scripts

    def enabled_scripts(self) -> Tuple[List[ScriptDescriptor], List[ScriptDescriptor]]:
        """Snapshot of enabled scripts as (document-start, document-end)."""
        with self.lock.read():
            return (
                [s for s in self._start_scripts if s.enabled],
                [s for s in self._end_scripts if s.enabled],
            )

    def contains_script(self, full_name: str) -> bool:
        with self.lock.read():
            return self._find(full_name) is not None

    def get_script(self, full_name: str) -> Optional[ScriptDescriptor]:
        with self.lock.read():
            return self._find(full_name)

    def disabled_scripts(self) -> List[str]:
        with self.lock.read():
            return list(self._disabled)

    def resolve_requires(self, urls: List[str]) -> str:
        """Concatenate cached ``@require`` dependencies.

        Each cached file is stripped and followed by a newline, in the
        order the URLs are given. URLs that were never cached are skipped.
        """
        if not urls:
            return ""

        with self.lock.read():
            if not self.requires_dir.is_dir():
                return ""

            parts = []
            for url in urls:
                path = self.requires.lookup(url)
                if path is None:
                    continue
                try:
                    parts.append(path.read_text(encoding="utf-8").strip() + "\n")
                except (OSError, UnicodeDecodeError) as e:
                    self.logger.warning(f"Cannot read cached require {url} at {path}: {e}")
            return "".join(parts)

    # -- mutations ---------------------------------------------------------

    def add_script(self, script: Optional[ScriptDescriptor]) -> bool:
        """Add a parsed script to its timing group.

        Returns:
            False for an invalid operand or a duplicate full name.
        """
        if not isinstance(script, ScriptDescriptor):
            return False

        with self.lock.write():
            if self._find(script.full_name) is not None:
                self.logger.warning(f"Script '{script.full_name}' is already installed")
                return False
            self._group(script, self._start_scripts, self._end_scripts).append(script)
            disabled_changed = False
            if not script.enabled and script.full_name not in self._disabled:
                self._disabled.append(script.full_name)
                disabled_changed = True

        if disabled_changed:
            self.save_state()
        self._scripts_changed()
        return True

    def remove_script(self, script: Optional[ScriptDescriptor]) -> bool:
        """Remove a script and delete its backing file.

        Returns:
            False for an invalid operand or a script that is not registered,
            so removing the same script twice fails the second time.
        """
        if not isinstance(script, ScriptDescriptor):
            return False

        with self.lock.write():
            # run_at may have been reassigned since the script was added
            if not any(s is script for s in self._start_scripts + self._end_scripts):
                return False
            self._start_scripts = [s for s in self._start_scripts if s is not script]
            self._end_scripts = [s for s in self._end_scripts if s is not script]

            disabled_changed = script.full_name in self._disabled
            if disabled_changed:
                self._disabled = [n for n in self._disabled if n != script.full_name]

            if script.file_name:
                try:
                    Path(script.file_name).unlink()
                except FileNotFoundError:
                    self.logger.debug(f"Backing file {script.file_name} already gone")
                except OSError as e:
                    self.logger.warning(f"Cannot delete {script.file_name}: {e}")

        if disabled_changed:
            self.save_state()
        self.logger.info(f"Removed script '{script.full_name}'")
        self._scripts_changed()
        return True

    def enable_script(self, script: ScriptDescriptor) -> None:
        """Enable the registered script with this full name."""
        self._set_enabled(script, True)

    def disable_script(self, script: ScriptDescriptor) -> None:
        """Disable the registered script with this full name."""
        self._set_enabled(script, False)

    def _set_enabled(self, script: ScriptDescriptor, enabled: bool) -> None:
        with self.lock.write():
            registered = self._find(script.full_name)
            if registered is None:
                self.logger.warning(f"Cannot change unknown script '{script.full_name}'")
                return
            registered.enabled = enabled
            script.enabled = enabled

            was_disabled = script.full_name in self._disabled
            changed = was_disabled == enabled
            if changed and enabled:
                self._disabled = [n for n in self._disabled if n != script.full_name]
            elif changed:
                self._disabled.append(script.full_name)
        if changed:
            self.save_state()

    # -- helpers -----------------------------------------------------------

    def _find(self, full_name: str) -> Optional[ScriptDescriptor]:
        for script in self._start_scripts + self._end_scripts:
            if script.full_name == full_name:
                return script
        return None

    @staticmethod
    def _group(script, start, end):
        if script.run_at == RunAt.DOCUMENT_START:
            return start
        return end
