"""Rename-on-hash finalizer.

After the copy stage, the finalizer lists what actually sits below the target
root, records the relative file list, computes the content token and moves
the target directory to a sibling named after that token.
"""

from __future__ import annotations

import asyncio
import logging
import typing as typ

from .hashing import compute_hash
from .resolution import relative_posix
from .stager import remove_path

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .config import MappingConfig

__all__ = ["finalize", "list_files"]

logger = logging.getLogger(__name__)


def list_files(root: Path) -> list[Path]:
    """Return every regular file below ``root`` in sorted order."""
    return sorted(path for path in root.rglob("*") if path.is_file())


async def _rename(source: Path, destination: Path) -> None:
    try:
        await asyncio.to_thread(remove_path, destination)
        await asyncio.to_thread(source.rename, destination)
    except OSError as exc:
        logger.error("Unable to rename %s to %s: %s", source, destination, exc)
        raise
    logger.info("Renamed %s to %s", source.as_posix(), destination.as_posix())


async def finalize(mapping: MappingConfig) -> None:
    """Publish the staged file list and content token for ``mapping``.

    Parameters
    ----------
    mapping
        Mapping whose target root was populated by the copy stage.

    Raises
    ------
    HashError
        Raised when a staged file cannot be read.
    OSError
        Raised when listing, removing or renaming fails.
    """
    target_root = mapping.target_root.resolve()
    if not mapping.needs_finalize:
        mapping.publish(final_dir=target_root)
        return

    try:
        files = await asyncio.to_thread(list_files, target_root)
    except OSError as exc:
        logger.error("Unable to list %s: %s", target_root, exc)
        raise
    logger.info("Copied %d files to %s", len(files), mapping.target_root.as_posix())

    staged_files = None
    if mapping.files_var_name is not None:
        staged_files = [relative_posix(path, target_root) for path in files]

    if not mapping.rename_target_dir:
        mapping.publish(final_dir=target_root, staged_files=staged_files)
        return

    token = await compute_hash(files)
    logger.info("Hash for %d copied files = %s", len(files), token)
    final_dir = target_root.parent / token
    if final_dir != target_root:
        await _rename(target_root, final_dir)
    mapping.publish(final_dir=final_dir, files_hash=token, staged_files=staged_files)
