"""Build-time asset staging.

This package copies globbed files into target directories once per build
cycle, optionally renames each target to a content hash, and exposes the hash
and the staged file list as compile-time identifiers.
"""

from __future__ import annotations

from .config import MappingConfig, StagingSettings, load_config, validate_mappings
from .errors import ConfigurationError, HashError, StageError
from .hashing import compute_hash, encode_token
from .host import BuildCycle, BuildHost, EvaluatedExpression, LocalBuildHost
from .pipeline import RunStatus, StagingPipeline
from .plugin import CopyFilesPlugin

__all__ = [
    "BuildCycle",
    "BuildHost",
    "ConfigurationError",
    "CopyFilesPlugin",
    "EvaluatedExpression",
    "HashError",
    "LocalBuildHost",
    "MappingConfig",
    "RunStatus",
    "StageError",
    "StagingPipeline",
    "StagingSettings",
    "compute_hash",
    "encode_token",
    "load_config",
    "validate_mappings",
]
