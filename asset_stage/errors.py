"""Error types shared across the asset staging package."""

from __future__ import annotations


class StageError(RuntimeError):
    """Raised when the staging pipeline cannot continue."""


class ConfigurationError(StageError):
    """Raised when mapping options are invalid, before any filesystem work."""


class HashError(StageError):
    """Raised when a staged file cannot be read while computing its digest."""
