from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)


def _truthy_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    val = str(raw).strip().lower()
    return val in {"1", "true", "yes", "y", "on"}


def _default_config_path() -> Path:
    return Path.home() / ".config" / "pane_shells" / "config.yaml"


def _default_base_dir() -> Path:
    return Path.home() / ".local" / "share" / "pane_shells"


@dataclass(frozen=True)
class PaneConfig:
    """Runtime settings for the pane supervisor and history pipeline."""

    shell: Optional[str] = None
    base_dir: Optional[str] = None
    max_panes: int = 4
    output_flush_interval: float = 5.0
    history_flush_interval: float = 30.0
    session_gap: float = 30 * 60.0
    probe_timeout: float = 1.0
    git_timeout: float = 1.0
    login_path_timeout: float = 5.0
    kill_grace: float = 2.0
    signal_winch_on_resize: bool = False
    term_program: str = "pane_shells"
    term_program_version: str = "0.1.0"

    def resolved_base_dir(self) -> Path:
        if self.base_dir:
            return Path(os.path.expanduser(self.base_dir)).resolve()
        return _default_base_dir()

    def resolved_shell(self) -> str:
        return self.shell or os.environ.get("SHELL") or "/bin/zsh"


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "y", "on"}
        return bool(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, int):
        return int(value)
    return None if value is None else str(value)


def config_from_mapping(data: Mapping[str, Any]) -> PaneConfig:
    """Build a config from a parsed mapping; unknown keys are ignored."""
    base = PaneConfig()
    known = {f.name: getattr(base, f.name) for f in fields(PaneConfig)}
    values: Dict[str, Any] = {}
    for key, raw in (data or {}).items():
        name = str(key).strip().replace("-", "_")
        if name not in known:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        try:
            values[name] = _coerce(raw, known[name])
        except (TypeError, ValueError):
            logger.warning("Invalid value for config key %r: %r", key, raw)
    cfg = replace(base, **values)
    if cfg.max_panes < 1:
        raise ValueError("max_panes must be >= 1")
    return cfg


def _apply_env(cfg: PaneConfig) -> PaneConfig:
    overrides: Dict[str, Any] = {}
    if os.environ.get("PANE_SHELLS_BASE_DIR"):
        overrides["base_dir"] = os.environ["PANE_SHELLS_BASE_DIR"]
    if os.environ.get("PANE_SHELLS_SHELL"):
        overrides["shell"] = os.environ["PANE_SHELLS_SHELL"]
    if os.environ.get("PANE_SHELLS_SIGWINCH_ON_RESIZE") is not None:
        overrides["signal_winch_on_resize"] = _truthy_env("PANE_SHELLS_SIGWINCH_ON_RESIZE")
    return replace(cfg, **overrides) if overrides else cfg


def load_config(path: Optional[Union[str, Path]] = None) -> PaneConfig:
    """Load config from YAML, then apply environment overrides.

    A missing file yields the defaults. A malformed file is logged and
    ignored so a broken config never prevents panes from starting.
    """
    if path is None:
        env_path = os.environ.get("PANE_SHELLS_CONFIG")
        path = Path(os.path.expanduser(env_path)) if env_path else _default_config_path()
    path = Path(path)

    data: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                loaded = yaml.safe_load(fh) or {}
            if not isinstance(loaded, dict):
                raise ValueError("config root must be a mapping")
            data = loaded
        except (OSError, yaml.YAMLError, ValueError) as exc:
            logger.warning("Failed to load config %s: %s", path, exc)
            data = {}

    return _apply_env(config_from_mapping(data))
