# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Minimal event client for recording registry changes."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from grease.scripts.registry import ScriptRegistry


class EventClient:
    """Simple JSONL event logger."""

    def __init__(self, log_path: Path):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_event(
        self,
        event_type: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Log an event to the JSONL file."""
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "status": status,
        }
        if payload:
            event["payload"] = payload
        if error_message:
            event["error_message"] = error_message

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event) + "\n")

    def scripts_changed(self, registry: "ScriptRegistry") -> None:
        """Registry observer: record the current script set.

        Usage:
            registry.subscribe(client.scripts_changed)
        """
        self.log_event(
            event_type="scripts.changed",
            status="ok",
            payload={"scripts": [s.full_name for s in registry.all_scripts()]},
        )
