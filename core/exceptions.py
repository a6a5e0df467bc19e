"""
Exception Definitions - Custom exceptions for ElizaBot
======================================================

This module defines all custom exceptions used throughout the application.
Configuration problems (bad settings, unreadable scripts, rules that do not
compile) are fatal and surface before any conversation starts; the
conversation path itself never raises for user input.
"""


class ElizaError(Exception):
    """
    Base exception for all ElizaBot errors.

    All custom exceptions in this application inherit from this base class,
    allowing for easy catching of all application-specific errors.

    Attributes:
        message (str): Human-readable error description
        details (dict): Additional error details for debugging
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with details if present."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(ElizaError):
    """
    Configuration-related errors.

    Raised when there are issues with:
    - Invalid configuration values
    - Configuration parsing errors
    - Missing or invalid random source
    """
    pass


class ScriptError(ConfigError):
    """
    Rule script errors.

    Raised when a rule script cannot be read or has the wrong shape:
    - Missing script file
    - YAML parsing errors
    - Sections of the wrong type
    """
    pass


class RuleCompileError(ScriptError):
    """
    Rule compilation errors.

    Raised by the rule compiler when the rule data is unusable:
    - Pattern that does not translate into a valid regular expression
    - Missing mandatory ``xnone`` rule
    - Decomposition without reassemblies
    - ``goto`` redirections that form a cycle
    """
    pass
