"""Configuration loading from JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import ConfigurationError, InputNotFoundError
from .models.config import EngineConfig

DEFAULT_CONFIG_PATH = Path(__file__).parent / "data" / "default_config.json"


def load_defaults() -> dict[str, Any]:
    """
    Load the bundled default settings.

    Returns:
        Dict of default values (no paths or date: those are run specific).
    """
    with open(DEFAULT_CONFIG_PATH, encoding="utf-8") as f:
        return json.load(f)


def load_config(config_path: str | Path | None = None, **overrides: Any) -> EngineConfig:
    """
    Build an EngineConfig from bundled defaults, a JSON file and overrides.

    Precedence: bundled ``default_config.json`` < ``config_path`` < ``overrides``.
    Overrides set to None are ignored so callers can pass optional CLI flags
    straight through.

    Args:
        config_path: Optional JSON file with any subset of EngineConfig fields.
        **overrides: Field values taking precedence over the file.

    Returns:
        Validated EngineConfig.

    Raises:
        InputNotFoundError: If ``config_path`` does not exist or is not valid JSON.
        ConfigurationError: On unknown keys, missing required values or invalid values.

    Examples:
        >>> config = load_config("paris.json", date="2025-06-21")
        >>> config = load_config(dsm_path="dsm.tif", terraces_path="t.geojson", date="2025-06-21")
    """
    values = load_defaults()

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise InputNotFoundError("config", path)
        try:
            with open(path, encoding="utf-8") as f:
                user_values = json.load(f)
        except json.JSONDecodeError as err:
            raise InputNotFoundError("config", path, f"invalid JSON: {err}") from err
        if not isinstance(user_values, dict):
            raise ConfigurationError("config", f"{path} must contain a JSON object")
        values.update(user_values)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return EngineConfig.from_dict(values)
