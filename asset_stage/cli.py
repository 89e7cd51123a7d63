"""Command-line entry point for the asset staging pipeline.

Examples
--------
Stage the assets described by ``assets.toml`` and rewrite a source file that
refers to the configured identifiers::

    asset-stage assets.toml --source src/config.js --out-dir build/

Every parameter can also be supplied through ``ASSET_STAGE_*`` environment
variables, e.g. ``ASSET_STAGE_GITHUB_OUTPUT="$GITHUB_OUTPUT"``.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import cyclopts
from cyclopts import App

from .config import load_config
from .errors import StageError
from .host import LocalBuildHost
from .output import prepare_output_data, write_github_output
from .plugin import CopyFilesPlugin

__all__ = ["app", "main"]

app: App = App(
    name="asset-stage",
    help="Stage build assets using a TOML configuration file.",
    config=cyclopts.config.Env("ASSET_STAGE_", command=False),
)


def _write_sources(
    host: LocalBuildHost, sources: list[Path], out_dir: Path | None
) -> None:
    """Write each source with registered identifiers substituted."""
    for source in sources:
        rewritten = host.substitute(source.read_text(encoding="utf-8"))
        if out_dir is None:
            sys.stdout.write(rewritten)
            continue
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / source.name).write_text(rewritten, encoding="utf-8")


@app.default
def main(
    config_file: Path,
    *,
    source: list[Path] | None = None,
    out_dir: Path | None = None,
    github_output: Path | None = None,
    watch: bool = False,
    verbose: bool = False,
) -> None:
    """Run one build cycle for the mappings in ``config_file``.

    Parameters
    ----------
    config_file
        Path to the TOML file holding the ``[[mappings]]`` tables.
    source
        Source files whose identifiers are substituted after staging.
    out_dir
        Directory receiving substituted sources; stdout when omitted.
    github_output
        ``GITHUB_OUTPUT`` file receiving the published identifier values.
    watch
        Mark the cycle as a watch-mode iteration.
    verbose
        Enable debug logging.

    Raises
    ------
    SystemExit
        Raised with exit code ``1`` when the configuration is invalid or the
        staging pipeline reports an error.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        settings = load_config(config_file)
        host = LocalBuildHost()
        plugin = CopyFilesPlugin(
            settings.mappings,
            max_concurrent_copies=settings.max_concurrent_copies,
        )
        plugin.apply(host)
        asyncio.run(host.run(watch=watch))
        _write_sources(host, source or [], out_dir)
        if github_output is not None:
            write_github_output(github_output, prepare_output_data(plugin.mappings))
    except (StageError, OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    print(
        f"Staged {len(plugin.mappings)} mapping(s) from '{config_file}'.",
        file=sys.stderr,
    )


if __name__ == "__main__":
    app()
