"""
Stagehand run configuration.

Settings come from three layers, later ones winning: the ``defaults:``
section of a YAML config file, ``STAGEHAND_*`` environment variables, and
command-line flags.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from stagehand.engine.errors import ParseError

DEFAULT_CONFIG = Path("stagehand.yml")

# Environment variable -> RunConfig field
ENV_OVERRIDES = {
    "STAGEHAND_FORKS": "forks",
    "STAGEHAND_TASK_TIMEOUT": "task_timeout",
    "STAGEHAND_CONNECT_TIMEOUT": "connect_timeout",
}


@dataclass
class RunConfig:
    forks: int = 5
    task_timeout: float = 300
    connect_timeout: float = 30
    check_mode: bool = False
    json_output: bool = False
    verbosity: int = 0
    limit: Optional[str] = None
    extra_vars: Dict[str, Any] = field(default_factory=dict)

    def apply_overrides(self, **overrides: Any) -> "RunConfig":
        """Set every override that is not None."""
        known = {f.name for f in fields(self)}
        for name, value in overrides.items():
            if name not in known:
                raise TypeError(f"unknown setting: {name}")
            if value is not None:
                setattr(self, name, value)
        self._check()
        return self

    def _check(self) -> None:
        if int(self.forks) < 1:
            raise ParseError(f"forks must be at least 1, got {self.forks}")
        if float(self.task_timeout) <= 0 or float(self.connect_timeout) <= 0:
            raise ParseError("timeouts must be positive")


def _coerce(name: str, value: Any, source: str) -> Any:
    try:
        if name == "forks":
            return int(value)
        if name in ("task_timeout", "connect_timeout"):
            return float(value)
    except (TypeError, ValueError):
        raise ParseError(f"invalid value for {name}: {value!r}", file_path=source)
    if name in ("check_mode", "json_output"):
        return str(value).lower() in ("1", "true", "yes", "on")
    return value


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunConfig:
    """
    Build a RunConfig from the config file and the environment.

    A missing file is not an error; an unreadable or malformed one is.
    """
    path = Path(path) if path is not None else DEFAULT_CONFIG
    environ = os.environ if environ is None else environ
    config = RunConfig()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ParseError(f"cannot read config: {e}", file_path=str(path))
        if not isinstance(data, dict):
            raise ParseError("config must be a mapping", file_path=str(path))

        defaults = data.get("defaults") or {}
        if not isinstance(defaults, dict):
            raise ParseError("'defaults' must be a mapping", file_path=str(path))

        known = {f.name for f in fields(config)}
        for name, value in defaults.items():
            if name not in known:
                raise ParseError(f"unknown setting in defaults: {name}", file_path=str(path))
            setattr(config, name, _coerce(name, value, str(path)))

    for var, name in ENV_OVERRIDES.items():
        if environ.get(var):
            setattr(config, name, _coerce(name, environ[var], var))

    config._check()
    return config
