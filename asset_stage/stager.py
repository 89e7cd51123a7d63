"""Clean and copy stages of the asset staging pipeline."""

from __future__ import annotations

import asyncio
import logging
import shutil
import typing as typ

from .errors import StageError
from .resolution import expand_patterns

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .config import MappingConfig

__all__ = ["clean", "plan_copies", "remove_path", "stage"]

logger = logging.getLogger(__name__)


def remove_path(path: Path) -> None:
    """Remove ``path`` recursively, ignoring paths that do not exist."""
    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
    elif path.is_dir():
        shutil.rmtree(path)


async def _remove_logged(path: Path) -> None:
    try:
        await asyncio.to_thread(remove_path, path)
    except OSError as exc:
        logger.error("Unable to remove %s: %s", path, exc)
        raise


async def clean(mapping: MappingConfig) -> None:
    """Remove the mapping's ``clean_dirs`` and its ``target_root``.

    Parameters
    ----------
    mapping
        Mapping whose directories are removed.

    Raises
    ------
    OSError
        Raised when an existing path cannot be removed. The failure is logged
        before it propagates.
    """
    targets = [*mapping.clean_dirs, mapping.target_root]
    await asyncio.gather(*(_remove_logged(path) for path in targets))


def plan_copies(mapping: MappingConfig) -> dict[Path, Path]:
    """Return the ``{target: source}`` copies required by ``mapping``.

    Raises
    ------
    ConfigurationError
        Raised when source roots and pattern lists are misaligned or a pattern
        is absolute.
    StageError
        Raised when two different source files map to the same target path.
    """
    pairs = mapping.source_pairs()
    target_root = mapping.target_root.resolve()
    plan: dict[Path, Path] = {}
    for root, patterns in pairs:
        logger.info(
            "Copying files from %s to %s",
            root.as_posix(),
            mapping.target_root.as_posix(),
        )
        resolved_root = root.resolve()
        matches = expand_patterns(root, patterns)
        if not matches:
            logger.warning("No files in %s match %s", root.as_posix(), patterns)
        for source in matches:
            target = target_root / source.relative_to(resolved_root)
            existing = plan.setdefault(target, source)
            if existing != source:
                msg = (
                    f"Both {existing} and {source} would be staged to {target}; "
                    "source roots of one mapping must not overlap"
                )
                raise StageError(msg)
    return plan


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)


async def _copy_limited(
    source: Path, target: Path, limiter: asyncio.Semaphore
) -> Path:
    async with limiter:
        try:
            await asyncio.to_thread(_copy_file, source, target)
        except OSError as exc:
            logger.error("Unable to copy %s to %s: %s", source, target, exc)
            raise
    return target


async def stage(
    mapping: MappingConfig, *, limiter: asyncio.Semaphore | None = None
) -> list[Path]:
    """Copy every file matched by ``mapping`` into its target root.

    Each match keeps its path relative to the source root it was found in.
    Copies run concurrently, bounded by ``limiter``; the first failure is
    raised while copies already in flight run to completion.

    Parameters
    ----------
    mapping
        Mapping describing source roots, patterns and the target root.
    limiter
        Semaphore bounding concurrent copies. A private one allowing a
        single copy at a time is used when omitted.

    Returns
    -------
    list[Path]
        The copied target paths in sorted order.

    Raises
    ------
    ConfigurationError
        Raised before any I/O when the mapping is misconfigured.
    StageError
        Raised when two sources collide on one target path.
    OSError
        Raised when globbing or copying fails.
    """
    # Misaligned options fail here, synchronously, before any I/O.
    mapping.source_pairs()
    plan = await asyncio.to_thread(plan_copies, mapping)
    await asyncio.to_thread(mapping.target_root.mkdir, parents=True, exist_ok=True)
    limiter = limiter or asyncio.Semaphore(1)
    copied = await asyncio.gather(
        *(
            _copy_limited(source, target, limiter)
            for target, source in sorted(plan.items())
        )
    )
    return sorted(copied)
