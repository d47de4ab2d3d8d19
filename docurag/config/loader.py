"""YAML configuration loader with environment variable overrides.

Configuration is resolved in layers, later layers winning:

    1. Field defaults on :class:`~docurag.config.settings.Settings`
    2. ``config/config.yaml``  -- static defaults checked into the repo
    3. ``.env`` file           -- local developer overrides
    4. Environment variables   -- deploy-time overrides

The YAML file may group keys under arbitrary section headings
(``ingestion:``, ``retrieval:``...); sections are flattened before the
keys are matched against ``Settings`` fields.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from docurag.config.settings import Settings

logger = structlog.get_logger(logger_name=__name__)


def load_yaml_config(path: str | Path = "config/config.yaml") -> dict[str, Any]:
    """Read the YAML file at *path* and return its flattened key/value pairs.

    A missing file yields an empty dict.
    """
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")
    return _flatten(raw)


def load_settings(path: str | Path = "config/config.yaml") -> Settings:
    """Build :class:`Settings` from YAML defaults plus environment overrides."""
    yaml_values = load_yaml_config(path)

    # Fields already supplied by the environment or .env are left alone so
    # the environment keeps priority over the YAML file.
    env_settings = Settings()
    known = set(Settings.model_fields)
    overrides: dict[str, Any] = {}
    for key, value in yaml_values.items():
        if key not in known:
            logger.warning("config_unknown_key", key=key, path=str(path))
            continue
        if key in env_settings.model_fields_set:
            continue
        overrides[key] = value

    if not overrides:
        return env_settings
    return Settings(**overrides)


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    """Collapse nested section mappings into a single-level dict."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat.update(_flatten(value))
        else:
            flat[key] = value
    return flat
