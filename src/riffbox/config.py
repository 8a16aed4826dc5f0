# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Configuration loading for riffbox.

Config is an optional YAML mapping. Search order:
1. $RIFFBOX_CONFIG (if set)
2. ~/.riffbox/config.yaml
Missing files fall back to defaults unless a path was given explicitly.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from riffbox.errors import ConfigError
from riffbox.registry import DEFAULT_TEMPO_BPM


DEFAULT_TIMEOUT_MS = 5000
MAX_TIMEOUT_MS = 30000
DEFAULT_EVENTS_LOG = "~/.riffbox/events.jsonl"


@dataclass(frozen=True)
class SandboxConfig:
    """Execution limits and defaults."""
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_timeout_ms: int = MAX_TIMEOUT_MS  # system-wide ceiling for any timeout
    default_tempo_bpm: float = DEFAULT_TEMPO_BPM
    events_log: Optional[str] = DEFAULT_EVENTS_LOG  # null disables event logging

    def validate(self) -> None:
        """Validate field values.

        Raises:
            ConfigError: If any value is out of range.
        """
        for name in ("default_timeout_ms", "max_timeout_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got: {value!r}")
        if self.default_timeout_ms > self.max_timeout_ms:
            raise ConfigError(
                f"default_timeout_ms ({self.default_timeout_ms}) exceeds "
                f"max_timeout_ms ({self.max_timeout_ms})"
            )
        tempo = self.default_tempo_bpm
        if isinstance(tempo, bool) or not isinstance(tempo, (int, float)) or tempo <= 0:
            raise ConfigError(f"default_tempo_bpm must be a positive number, got: {tempo!r}")
        if self.events_log is not None and not isinstance(self.events_log, str):
            raise ConfigError(f"events_log must be a path or null, got: {self.events_log!r}")

    @property
    def events_log_path(self) -> Optional[Path]:
        if not self.events_log:
            return None
        return Path(self.events_log).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def get_config_paths() -> List[Path]:
    """Get config file search paths in priority order."""
    paths = []

    env_path = os.environ.get("RIFFBOX_CONFIG")
    if env_path:
        paths.append(Path(env_path).expanduser())

    paths.append(Path("~/.riffbox/config.yaml").expanduser())
    return paths


def _parse(path: Path) -> SandboxConfig:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a YAML mapping")

    known = {f.name for f in fields(SandboxConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown config keys in {path}: {', '.join(map(str, unknown))}")

    config = SandboxConfig(**data)
    config.validate()
    return config


def load_config(config_path: Optional[str] = None) -> SandboxConfig:
    """Load configuration.

    Args:
        config_path: Explicit config file. When given it must exist.

    Returns:
        SandboxConfig, or defaults if no config file is found.

    Raises:
        FileNotFoundError: If config_path was given but does not exist.
        ConfigError: If the file is malformed.
    """
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return _parse(path)

    for path in get_config_paths():
        if path.exists():
            return _parse(path)

    return SandboxConfig()
