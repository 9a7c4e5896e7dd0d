"""Task planning and governed execution for a local coding assistant."""

__version__ = "0.1.0"

__all__ = ["__version__"]
