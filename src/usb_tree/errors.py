"""
Exceptions raised by USB Tree.

Only NoDevicesDetected, EnumerationToolUnavailable and ConfigError ever reach
the user; ParseFailed is absorbed by the parser's fallback.
"""

from __future__ import annotations
from typing import Optional


class UsbTreeError(Exception):
    """Base exception class for all USB Tree errors."""
    pass


class NoDevicesDetected(UsbTreeError):
    """Raised when the enumeration text is empty or whitespace only."""

    def __init__(self, message: str = "No USB devices detected."):
        super().__init__(message)


class ParseFailed(UsbTreeError):
    """Raised when no line of the enumeration text produced a node."""

    def __init__(self, raw_text: str, source_format: Optional[str] = None):
        self.raw_text = raw_text
        self.source_format = source_format

        message = "No devices could be parsed from the enumeration output"
        if source_format:
            message += f" ({source_format})"

        super().__init__(message)


class EnumerationToolUnavailable(UsbTreeError):
    """Raised when the platform USB listing utility cannot be run."""

    def __init__(self, tool: str, hint: Optional[str] = None):
        self.tool = tool
        self.hint = hint

        message = f"{tool} not found"
        if hint:
            message += f". {hint}"

        super().__init__(message)


class ConfigError(UsbTreeError):
    """Raised when the configuration, typically the threshold table, is invalid."""

    def __init__(self, message: str, config_path: Optional[str] = None):
        self.config_path = config_path

        if config_path:
            message = f"Configuration error in '{config_path}': {message}"

        super().__init__(message)
