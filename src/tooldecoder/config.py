"""Configuration system for tooldecoder.

Manages converter defaults and output settings via tooldecoder.toml with
typed dataclasses and sensible defaults for all values.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from tooldecoder.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

_T = TypeVar("_T")

__all__ = [
    "CONFIG_FILE",
    "ConverterDefaults",
    "LimitsConfig",
    "OutputConfig",
    "ToolDecoderConfig",
    "default_config",
    "load_config",
    "save_config",
]

logger = logging.getLogger(__name__)

CONFIG_FILE = "tooldecoder.toml"


@dataclass
class ConverterDefaults:
    """[defaults] section — values the source formats never supply."""

    ramp_angle: float = 22.5
    ramp_rate: float | None = None  # None → 0.8 × feed rate per tool
    vendor: str = ""
    tool_spec_url: str = ""
    tip_length: float = 0.0


@dataclass
class OutputConfig:
    """[output] section."""

    indent: int = 4
    extension: str = ".tools"


@dataclass
class LimitsConfig:
    """[limits] section."""

    max_file_size: int = 50 * 1024 * 1024  # 50 MB


@dataclass
class ToolDecoderConfig:
    """Root configuration combining all sections."""

    defaults: ConverterDefaults = field(default_factory=ConverterDefaults)
    output: OutputConfig = field(default_factory=OutputConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)


_SECTIONS: dict[str, type] = {
    "defaults": ConverterDefaults,
    "output": OutputConfig,
    "limits": LimitsConfig,
}


def default_config() -> ToolDecoderConfig:
    """Return a config with all default values."""
    return ToolDecoderConfig()


def _section_to_dict(obj: object) -> dict[str, object]:
    """Convert a dataclass instance to a dict for TOML serialization.

    TOML has no null, so unset optional values are left out.
    """
    return {k: v for k, v in vars(obj).items() if v is not None}


def _config_to_dict(config: ToolDecoderConfig) -> dict[str, object]:
    """Convert ToolDecoderConfig to a nested dict suitable for TOML serialization."""
    return {name: _section_to_dict(getattr(config, name)) for name in _SECTIONS}


def save_config(config: ToolDecoderConfig, path: Path) -> None:
    """Save configuration to a TOML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _config_to_dict(config)
    try:
        with path.open("wb") as f:
            tomli_w.dump(data, f)
        logger.info("Saved config to %s", path)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise ConfigError(f"Failed to save config to {path}: {e}") from e


def _load_section(cls: type[_T], data: dict[str, object]) -> _T:
    """Load a dataclass section from a dict, ignoring unknown keys."""
    known_fields = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered = {k: v for k, v in data.items() if k in known_fields}
    return cls(**filtered)


def load_config(path: Path) -> ToolDecoderConfig:
    """Load configuration from a TOML file.

    Missing sections or keys get default values.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_bytes()
        data = tomllib.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    config = ToolDecoderConfig()
    for name, cls in _SECTIONS.items():
        section = data.get(name)
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ConfigError(f"Config section [{name}] must be a table in {path}")
        setattr(config, name, _load_section(cls, section))

    logger.info("Loaded config from %s", path)
    return config
