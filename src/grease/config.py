# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Configuration loading for grease.

Config lives in a small YAML file:

    root: ~/.grease          # settings root (scripts/, extensions.json)
    bootstrap: null          # optional path to an alternate preamble
    events: true             # record registry changes in events.jsonl

Lookup order for the file: explicit path, $GREASE_CONFIG,
~/.grease/config.yaml. $GREASE_HOME overrides ``root``.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_ROOT = "~/.grease"
DEFAULTS: Dict[str, Any] = {
    "root": DEFAULT_ROOT,
    "bootstrap": None,
    "events": True,
}


class ConfigError(Exception):
    """Raised when the configuration file is invalid."""
    pass


def default_config_path() -> Path:
    env_path = os.environ.get("GREASE_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path(DEFAULT_ROOT).expanduser() / "config.yaml"


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration, filling in defaults.

    Args:
        config_path: Explicit config file; must exist if given

    Returns:
        Config dict with ``root`` as an expanded Path

    Raises:
        FileNotFoundError: If an explicit config_path does not exist
        ConfigError: If the file is not a YAML mapping
    """
    config = dict(DEFAULTS)

    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        path = default_config_path()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a YAML mapping")
        config.update(data)

    env_root = os.environ.get("GREASE_HOME")
    if env_root:
        config["root"] = env_root

    config["root"] = Path(str(config["root"])).expanduser()
    if config.get("bootstrap"):
        config["bootstrap"] = Path(str(config["bootstrap"])).expanduser()

    return config
