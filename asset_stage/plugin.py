"""Entry point that wires the staging pipeline onto a build host."""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

from .config import DEFAULT_MAX_CONCURRENT_COPIES, MappingConfig, mappings_from_options
from .pipeline import StagingPipeline
from .substitution import register_substitutions

if typ.TYPE_CHECKING:
    from .host import BuildHost

__all__ = ["CopyFilesPlugin"]


class CopyFilesPlugin:
    """Stage assets when a build starts and expose the results to sources.

    Options are normalised and validated on construction, so configuration
    errors surface before any file is touched.

    Examples
    --------
    ::

        plugin = CopyFilesPlugin(
            {
                "source_root": "web",
                "files": ["index.html", "img/"],
                "target_root": "dist/static",
                "rename_target_dir": True,
                "dir_hash_var_name": "STATIC_HASH",
            }
        )
        plugin.apply(host)
    """

    def __init__(
        self,
        options: MappingConfig
        | cabc.Mapping[str, typ.Any]
        | cabc.Sequence[MappingConfig | cabc.Mapping[str, typ.Any]],
        *,
        max_concurrent_copies: int = DEFAULT_MAX_CONCURRENT_COPIES,
    ) -> None:
        self.mappings = mappings_from_options(options)
        self.pipeline = StagingPipeline(
            self.mappings, max_concurrent_copies=max_concurrent_copies
        )

    def apply(self, host: BuildHost) -> None:
        """Register the run handler and identifier resolvers with ``host``."""
        host.on_run(self.pipeline.trigger)
        register_substitutions(host, self.mappings)
