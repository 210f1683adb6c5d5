from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from utils.models import CollectorSettings


CONFIG_ENV_VAR = "JIRA_CLOUD_CONFIG"
DEFAULT_CONFIG_FILENAMES = (
    ".jiracloud.toml",
    ".jiracloud.yaml",
    ".jiracloud.yml",
)


def _load_toml(path: Path) -> Dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    return data or {}


_LOADERS: Dict[str, Callable[[Path], Dict[str, Any]]] = {
    ".toml": _load_toml,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}


def _candidates(config_path: Optional[str]) -> List[Path]:
    if config_path:
        return [Path(config_path).expanduser()]
    from_env = os.getenv(CONFIG_ENV_VAR)
    if from_env:
        return [Path(from_env).expanduser()]
    paths: List[Path] = []
    for folder in (Path(os.getcwd()), Path.home()):
        paths.extend(folder / name for name in DEFAULT_CONFIG_FILENAMES)
    return paths


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the [jira], [opsgenie], [collector], [http] and [logging] tables.

    The first file found wins:
    1. ``config_path`` (``--config``); it must exist
    2. the file named by $JIRA_CLOUD_CONFIG; it must exist
    3. .jiracloud.(toml|yaml|yml) in the working directory, then in $HOME

    No file at all means built-in defaults plus environment variables.
    """
    explicit = bool(config_path or os.getenv(CONFIG_ENV_VAR))
    for candidate in _candidates(config_path):
        if not candidate.exists():
            if explicit:
                raise FileNotFoundError(f"Configuration file not found: {candidate}")
            continue
        loader = _LOADERS.get(candidate.suffix.lower())
        if loader is None:
            raise RuntimeError(f"Unsupported configuration format: {candidate}")
        try:
            return loader(candidate)
        except Exception as exc:
            raise RuntimeError(f"Failed to parse configuration file {candidate}: {exc}") from exc

    return {}


def merge_settings(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay CLI flags on file settings table by table; neither input is modified."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_settings(current, value)
        else:
            merged[key] = value
    return merged


def collector_settings(settings: Dict[str, Any]) -> CollectorSettings:
    """Build CollectorSettings from the [collector] table, rejecting bad values."""
    try:
        return CollectorSettings.from_dict(settings.get("collector", {}) or {})
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid [collector] configuration: {exc}") from exc
