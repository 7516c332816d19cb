from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

"""Config loader and validator.

Provides `load_config` which accepts either a path to a YAML file,
a dictionary or None and returns a normalized configuration dict
using DEFAULTS for missing values.
"""


DEFAULTS: dict[str, Any] = {
    "addressing": "label",
    "comment_style": "inline",
    "clock_speed": 250,
    "tick_limit": 10000,
    "lenient_log": False,
}

ADDRESSING_MODES = ("label", "positional")
COMMENT_STYLES = ("inline", "whole_line")


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def _convert_types(cfg: dict[str, Any]) -> None:
    """Normalize types for configuration values in-place.

    Raises ConfigError on conversion failure.
    """
    try:
        cfg["addressing"] = str(cfg.get("addressing") or DEFAULTS["addressing"]).strip().lower()
        cfg["comment_style"] = str(cfg.get("comment_style") or DEFAULTS["comment_style"]).strip().lower()

        # clock_speed: null means "as fast as possible"
        v = cfg.get("clock_speed")
        cfg["clock_speed"] = 0 if v is None else int(v)

        tl = cfg.get("tick_limit", DEFAULTS["tick_limit"])
        cfg["tick_limit"] = int(DEFAULTS["tick_limit"] if tl is None else tl)
    except (TypeError, ValueError) as e:
        msg = f"Bad types in config: {e}"
        raise ConfigError(msg) from e


def _validate_cfg(cfg: dict[str, Any]) -> None:
    """Perform semantic validation on normalized config dict.

    Raises ConfigError on invalid values.
    """
    if cfg["addressing"] not in ADDRESSING_MODES:
        msg = f"addressing must be one of {', '.join(ADDRESSING_MODES)} (got {cfg['addressing']!r})"
        raise ConfigError(msg)

    if cfg["comment_style"] not in COMMENT_STYLES:
        msg = f"comment_style must be one of {', '.join(COMMENT_STYLES)} (got {cfg['comment_style']!r})"
        raise ConfigError(msg)

    if cfg["clock_speed"] < 0:
        msg = "clock_speed must be non-negative or null"
        raise ConfigError(msg)

    if cfg["tick_limit"] <= 0:
        msg = "tick_limit must be positive"
        raise ConfigError(msg)

    if not isinstance(cfg.get("lenient_log"), bool):
        msg = "lenient_log must be boolean"
        raise ConfigError(msg)


def load_config(path_or_dict: str | Path | dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and normalize configuration.

    Accepts:
      - None -> returns DEFAULTS copy
      - dict -> overlay DEFAULTS with provided dict
      - str/Path -> load YAML and overlay DEFAULTS

    Returns a normalized dict or raises ConfigError.
    """
    if path_or_dict is None:
        cfg: dict[str, Any] = dict(DEFAULTS)
    elif isinstance(path_or_dict, dict):
        cfg = dict(DEFAULTS)
        cfg.update(path_or_dict)
    elif isinstance(path_or_dict, (str, Path)):
        p = Path(path_or_dict)
        if not p.exists():
            msg = f"Config file not found: {path_or_dict}"
            raise ConfigError(msg)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            msg = f"Failed to load config file {path_or_dict}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {path_or_dict} does not contain a mapping"
            raise ConfigError(msg)
        cfg = dict(DEFAULTS)
        cfg.update(data)
    else:
        msg = "Unsupported config input"
        raise ConfigError(msg)

    # convert types and validate semantics
    _convert_types(cfg)
    _validate_cfg(cfg)

    return cfg
