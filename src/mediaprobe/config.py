"""Configuration management for mediaprobe.

Supports loading configuration from:
1. Environment variables (MEDIAPROBE_*)
2. Config file (~/.mediaprobe/config.yaml)
3. Default values

Example config file (~/.mediaprobe/config.yaml):
    analysis:
      parse_speed: 0.5
      test_continuous_file_names: true
      max_workers: 8
    output:
      format: json
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Config file search locations (in priority order)
CONFIG_LOCATIONS = [
    Path.home() / ".mediaprobe" / "config.yaml",
    Path.home() / ".config" / "mediaprobe" / "config.yaml",
    Path(".mediaprobe.yaml"),
]

OUTPUT_FORMATS = ("text", "json", "quiet")


@dataclass
class AnalysisConfig:
    """Analysis configuration."""

    parse_speed: float = 0.5
    test_continuous_file_names: bool = False
    max_workers: int = 4
    file_limit: int | None = None


@dataclass
class OutputConfig:
    """Output configuration."""

    format: str = "text"


@dataclass
class MediaprobeConfig:
    """Main configuration for mediaprobe."""

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def _load_yaml_config(locations: list[Path] | None = None) -> dict[str, Any]:
    """Load configuration from the first readable YAML file."""
    for config_path in locations or CONFIG_LOCATIONS:
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("ignoring config file %s: %s", config_path, e)
            continue
        if data and not isinstance(data, dict):
            logger.warning("ignoring config file %s: top level is not a mapping", config_path)
            continue
        logger.debug("loaded config from %s", config_path)
        return data or {}
    return {}


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with MEDIAPROBE_ prefix."""
    return os.environ.get(f"MEDIAPROBE_{key}", default)


def _parse_bool(value: str | None) -> bool | None:
    """Parse boolean from string."""
    if value is None:
        return None
    return value.lower() in ("true", "1", "yes", "on")


def _parse_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def load_config(locations: list[Path] | None = None) -> MediaprobeConfig:
    """Load configuration from file and environment variables.

    Priority (highest first):
    1. Environment variables (MEDIAPROBE_*)
    2. Config file (~/.mediaprobe/config.yaml)
    3. Default values

    Raises:
        ValueError: If a numeric setting cannot be parsed
    """
    file_config = _load_yaml_config(locations)

    analysis_config = file_config.get("analysis") or {}
    env_continuous = _parse_bool(_get_env("TEST_CONTINUOUS_FILE_NAMES"))
    analysis = AnalysisConfig(
        parse_speed=float(_get_env("PARSE_SPEED") or analysis_config.get("parse_speed", 0.5)),
        test_continuous_file_names=(
            env_continuous
            if env_continuous is not None
            else bool(analysis_config.get("test_continuous_file_names", False))
        ),
        max_workers=int(_get_env("MAX_WORKERS") or analysis_config.get("max_workers", 4)),
        file_limit=_parse_optional_int(_get_env("FILE_LIMIT") or analysis_config.get("file_limit")),
    )

    output_config = file_config.get("output") or {}
    output_format = (_get_env("OUTPUT_FORMAT") or output_config.get("format", "text")).lower()
    if output_format not in OUTPUT_FORMATS:
        logger.warning("unknown output format %r, using text", output_format)
        output_format = "text"

    return MediaprobeConfig(
        analysis=analysis,
        output=OutputConfig(format=output_format),
    )


# Global config instance (lazy loaded)
_config: MediaprobeConfig | None = None


def get_config() -> MediaprobeConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
