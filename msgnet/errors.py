"""Exceptions raised by the msgnet pipeline.

InputError, ConfigError and GraphError are fatal to the running command.
LlmError is recoverable: the extractor absorbs it per call and records an
ExtractionWarning instead.
"""

from typing import Any, Dict, Optional


class MsgNetError(Exception):
    """Base exception for all msgnet errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InputError(MsgNetError):
    """Missing or unreadable input/stopwords file, or invalid text encoding."""


class ConfigError(MsgNetError):
    """Malformed or out-of-range configuration value."""


class LlmError(MsgNetError):
    """LLM endpoint unreachable, timed out, or returned an error status."""


class GraphError(MsgNetError):
    """Internal contract violation detected while building the graph."""
