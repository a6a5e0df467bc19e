"""
Configuration Management - YAML-based configuration with environment overrides
=============================================================================

This module handles all configuration aspects including:
- Loading from YAML files
- Environment variable overrides
- Default values
- Configuration validation
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field, asdict

from .exceptions import ConfigError


@dataclass
class EngineConfig:
    """
    Response engine configuration.

    Controls reply cosmetics, the size of the deferred-reply memory and
    the guard against runaway ``goto`` redirection.
    """
    capitalize_first_letter: bool = True
    mem_size: int = 20
    max_goto_depth: int = 16

    # Log every rule match at DEBUG level
    debug: bool = False

    def validate(self) -> None:
        """Validate engine configuration parameters."""
        if isinstance(self.mem_size, bool) or not isinstance(self.mem_size, int) or self.mem_size < 0:
            raise ConfigError(f"mem_size must be a non-negative integer, got {self.mem_size!r}")

        if (
            isinstance(self.max_goto_depth, bool)
            or not isinstance(self.max_goto_depth, int)
            or self.max_goto_depth < 1
        ):
            raise ConfigError(
                f"max_goto_depth must be a positive integer, got {self.max_goto_depth!r}"
            )


@dataclass
class ScriptConfig:
    """
    Rule script configuration.

    An empty path selects the bundled doctor script. A seed selects the
    reproducible generator; without one the CLI draws from ``random``.
    """
    path: str = ""
    seed: Optional[int] = None

    def validate(self) -> None:
        """Validate script configuration."""
        if self.path and not Path(self.path).expanduser().is_file():
            raise ConfigError(f"Script file not found: {self.path}", {"path": self.path})

        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigError(f"seed must be an integer, got {self.seed!r}")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "WARNING"
    json_format: bool = False
    log_dir: str = ""

    def validate(self) -> None:
        """Validate logging configuration."""
        if self.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Invalid log level: {self.level}")


@dataclass
class Config:
    """
    Main configuration container.

    Aggregates all configuration sections into a single object
    and provides methods for loading, saving, and validating.
    """
    app_name: str = "ElizaBot"
    version: str = "1.1.0"

    engine: EngineConfig = field(default_factory=EngineConfig)
    script: ScriptConfig = field(default_factory=ScriptConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Set at runtime
    config_dir: str = ""

    def validate(self) -> None:
        """
        Validate all configuration sections.

        Raises:
            ConfigError: If any configuration section is invalid
        """
        self.engine.validate()
        self.script.validate()
        self.logging.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "app_name": self.app_name,
            "version": self.version,
            "engine": asdict(self.engine),
            "script": asdict(self.script),
            "logging": asdict(self.logging),
        }


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory path.

    Returns:
        Path to the configuration directory
    """
    if "ELIZA_CONFIG_DIR" in os.environ:
        return Path(os.environ["ELIZA_CONFIG_DIR"])

    if "XDG_CONFIG_HOME" in os.environ:
        return Path(os.environ["XDG_CONFIG_HOME"]) / "elizabot"

    return Path.home() / ".elizabot"


def load_config(config_path: Optional[str] = None, load_env: bool = True) -> Config:
    """
    Load configuration from YAML file with environment variable overrides.

    This function loads configuration in the following order:
    1. Default values from dataclass
    2. Values from YAML file
    3. Environment variable overrides

    Args:
        config_path: Path to configuration file (optional)
        load_env: Whether to load environment variable overrides

    Returns:
        Config object with loaded values

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    config = Config()
    config.config_dir = str(get_default_config_dir())

    if config_path:
        yaml_path = Path(config_path)
        if not yaml_path.exists():
            raise ConfigError(f"Config file not found: {config_path}", {"path": config_path})
    else:
        yaml_path = Path(config.config_dir) / "config.yaml"

    if yaml_path.exists():
        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}", {"path": str(yaml_path)})
        except IOError as e:
            raise ConfigError(f"Failed to read config file: {e}", {"path": str(yaml_path)})

        if not isinstance(yaml_config, dict):
            raise ConfigError("Config file must contain a mapping", {"path": str(yaml_path)})

        _apply_yaml_config(config, yaml_config)

    if load_env:
        _apply_env_overrides(config)

    config.validate()

    return config


def _apply_yaml_config(config: Config, yaml_config: Dict[str, Any]) -> None:
    """
    Apply YAML configuration values to Config object.

    Unknown keys are ignored.
    """
    if "app_name" in yaml_config:
        config.app_name = yaml_config["app_name"]
    if "version" in yaml_config:
        config.version = str(yaml_config["version"])

    for section in ("engine", "script", "logging"):
        values = yaml_config.get(section)
        if not values:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")

        section_obj = getattr(config, section)
        for key, value in values.items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)


def _apply_env_overrides(config: Config) -> None:
    """
    Apply environment variable overrides to Config object.

    Environment variables follow the pattern: ELIZA_SECTION_KEY
    For example: ELIZA_ENGINE_MEM_SIZE, ELIZA_SCRIPT_SEED
    """
    env_mappings = {
        "ELIZA_ENGINE_CAPITALIZE_FIRST_LETTER": ("engine", "capitalize_first_letter", bool),
        "ELIZA_ENGINE_MEM_SIZE": ("engine", "mem_size", int),
        "ELIZA_ENGINE_MAX_GOTO_DEPTH": ("engine", "max_goto_depth", int),
        "ELIZA_ENGINE_DEBUG": ("engine", "debug", bool),

        "ELIZA_SCRIPT_PATH": ("script", "path"),
        "ELIZA_SCRIPT_SEED": ("script", "seed", int),

        "ELIZA_LOG_LEVEL": ("logging", "level"),
        "ELIZA_LOG_DIR": ("logging", "log_dir"),
    }

    for env_var, mapping in env_mappings.items():
        value = os.environ.get(env_var)
        if value is None:
            continue

        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str

        if converter is bool:
            converted = value.lower() in ("true", "1", "yes", "on")
        else:
            try:
                converted = converter(value)
            except ValueError:
                raise ConfigError(f"Invalid value for {env_var}: {value!r}")

        setattr(getattr(config, section), key, converted)


def save_config(config: Config, config_path: Optional[str] = None) -> Path:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save
        config_path: Path to save configuration (optional)

    Returns:
        Path the configuration was written to

    Raises:
        ConfigError: If configuration cannot be saved
    """
    if config_path:
        yaml_path = Path(config_path)
    else:
        yaml_path = Path(config.config_dir or get_default_config_dir()) / "config.yaml"

    try:
        yaml_path.parent.mkdir(parents=True, exist_ok=True)
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except IOError as e:
        raise ConfigError(f"Failed to save config file: {e}", {"path": str(yaml_path)})

    return yaml_path
