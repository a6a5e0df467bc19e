"""
Core Module - Foundation components for ElizaBot
================================================

This module provides the foundational components including:
- Configuration management
- Logging setup
- Exception handling
"""

from .config import Config, EngineConfig, ScriptConfig, LoggingConfig, load_config, save_config
from .exceptions import (
    ElizaError,
    ConfigError,
    ScriptError,
    RuleCompileError,
)
from .logging import setup_logging, get_logger, set_session

__all__ = [
    "Config",
    "EngineConfig",
    "ScriptConfig",
    "LoggingConfig",
    "load_config",
    "save_config",
    "ElizaError",
    "ConfigError",
    "ScriptError",
    "RuleCompileError",
    "setup_logging",
    "get_logger",
    "set_session",
]
