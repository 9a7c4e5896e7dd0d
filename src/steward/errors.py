"""Exception hierarchy shared across the steward runtime."""

from __future__ import annotations

__all__ = [
    "ConfigError",
    "ModelClientError",
    "ModelResponseFormatError",
    "ModelTransportError",
    "OperationError",
    "StewardError",
]


class StewardError(RuntimeError):
    """Base error raised by steward components."""


class ConfigError(StewardError):
    """Raised when configuration cannot be loaded or validated."""


class OperationError(StewardError):
    """Raised when an operation is unknown or its arguments do not validate."""


class ModelClientError(StewardError):
    """Base error raised for model client failures."""


class ModelTransportError(ModelClientError):
    """Raised when the underlying transport fails to return a response."""


class ModelResponseFormatError(ModelClientError):
    """Raised when the model returns a payload that cannot be interpreted."""
