"""Helpers for loading scan settings from TOML/JSON sources.

This module provides a single entry point `load_scan_settings`
that accepts various configuration sources:

* None -> default ScanSettings
* dict -> ScanSettings validated from the mapping
* Path / path-like string -> load .toml/.json from filesystem
* Inline JSON/TOML strings
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from policyscan.config.schema import ScanSettings
from policyscan.runtime.errors import ConfigError

logger = logging.getLogger("policyscan.runtime.config_loader")

ConfigSource = Union[str, Path, Dict[str, Any], None]


def _read_source(source: Union[str, Path]) -> Dict[str, Any]:
    path = Path(source)
    if path.exists():
        text = path.read_text(encoding="utf-8")
        suffix = path.suffix.lower()
        if suffix in {".toml", ".tml"}:
            fmt = "toml"
        elif suffix == ".json":
            fmt = "json"
        else:
            # Fallback: guess from content
            fmt = "json" if text.lstrip().startswith(("{", "[")) else "toml"
        logger.info("Loading configuration from file: %s (fmt=%s)", path, fmt)
    else:
        text = str(source)
        fmt = "json" if text.lstrip().startswith(("{", "[")) else "toml"
        logger.info("Loading configuration from inline %s string", fmt)

    try:
        data = json.loads(text) if fmt == "json" else tomllib.loads(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Could not parse {fmt} configuration: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Top-level configuration must be a mapping/dict")

    # Allow settings nested under a [policyscan] table
    nested = data.get("policyscan")
    if isinstance(nested, dict):
        return nested
    return data


def load_scan_settings(
    source: ConfigSource,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ScanSettings:
    """Load ScanSettings from various configuration sources.

    Args:
        source: One of:
            * None: built-in defaults
            * dict: treated as already-parsed configuration mapping
            * str/Path: either a filesystem path to a .toml/.json file,
              or an inline TOML/JSON string (auto-detected)
        overrides: Values that take precedence over the source, typically
            from command-line flags. None values are ignored.

    Returns:
        ScanSettings instance.

    Raises:
        ConfigError: If the source cannot be parsed or fails validation.
    """
    if source is None:
        logger.debug("No config source provided; using default ScanSettings")
        data: Dict[str, Any] = {}
    elif isinstance(source, dict):
        logger.debug("Loading ScanSettings from provided dict")
        data = dict(source)
    elif isinstance(source, (str, Path)):
        data = _read_source(source)
    else:
        raise ConfigError(f"Unsupported config source type: {type(source)!r}")

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return ScanSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


__all__ = ["load_scan_settings"]
