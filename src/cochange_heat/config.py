"""Configuration loading and management for cochange-heat.

Configuration sources are merged in priority order:
    1. Defaults (defined in EngineConfig)
    2. Global config (~/.cochange-heat.toml)
    3. Project config (./cochange-heat.toml)
    4. Explicit config file
    5. Environment variables (COCHANGE_HEAT_* prefix)
    6. Overrides (passed as kwargs, typically from CLI flags)

Example:
    >>> config = load_config(window_days=14)
    >>> config.window_days
    14
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError

Verbosity = Literal["quiet", "normal", "verbose"]

ENV_PREFIX = "COCHANGE_HEAT_"


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for a compute run.

    Attributes:
        Window:
            window_days: Width of the rolling window in days

        Storage:
            db_path: SQLite file holding watermarks and datasets
            provenance_batch_size: Rows per bulk insert of provenance rows

        Git integration:
            git_branch: Branch to read (None = auto-detect)
            git_timeout_seconds: Timeout for each git subprocess
            filter_ignored: Drop paths matched by the ignore file
            ignore_file_name: Ignore file looked up at the repository root

        Output control:
            verbosity: Logging verbosity level
            log_file: Also write log records to this file (None = stderr only)
    """

    window_days: int = 30

    db_path: str = ".cochange/analytics.db"
    provenance_batch_size: int = 200

    git_branch: Optional[str] = None
    git_timeout_seconds: int = 30
    filter_ignored: bool = False
    ignore_file_name: str = ".cochangeignore"

    verbosity: Verbosity = "normal"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.window_days < 1:
            raise ValueError("window_days must be at least 1")
        if self.provenance_batch_size < 1:
            raise ValueError("provenance_batch_size must be at least 1")
        if self.git_timeout_seconds < 1:
            raise ValueError("git_timeout_seconds must be at least 1")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise ValueError(f"verbosity must be quiet/normal/verbose, got '{self.verbosity}'")
        if not self.ignore_file_name:
            raise ValueError("ignore_file_name must not be empty")


DEFAULT_CONFIG = EngineConfig()


def load_config(config_file: Optional[Path] = None, **overrides) -> EngineConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored so unset CLI options keep lower layers.

    Returns:
        Validated EngineConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing, or a value fails validation
    """
    merged: dict = {}

    global_config = Path.home() / ".cochange-heat.toml"
    if global_config.exists():
        try:
            merged.update(_load_toml_file(global_config))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid global config '{global_config}': {e}")

    project_config = Path.cwd() / "cochange-heat.toml"
    if project_config.exists():
        try:
            merged.update(_load_toml_file(project_config))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid project config '{project_config}': {e}")

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            merged.update(_load_toml_file(config_file))
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid config file '{config_file}': {e}")

    merged.update(_load_env_vars())

    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return EngineConfig(**merged)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from COCHANGE_HEAT_* environment variables.

    Returns:
        Dict of field_name -> parsed_value for any variables found.
    """
    type_hints = get_type_hints(EngineConfig)
    result: dict[str, Any] = {}

    for field_name in EngineConfig.__dataclass_fields__:
        env_key = f"{ENV_PREFIX}{field_name.upper()}"
        env_value = os.environ.get(env_key)
        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise InvalidConfigError(field_name, env_value, str(e))

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type."""
    origin = getattr(type_hint, "__origin__", None)

    # Optional[X] is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict.

    A ``[cochange_heat]`` table is used when present, otherwise the top level.
    """
    try:
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        data = tomllib.load(f)
    section = data.get("cochange_heat")
    return section if isinstance(section, dict) else data
