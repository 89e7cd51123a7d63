"""Glob expansion helpers for asset staging.

Patterns are always anchored at a source root and only ever match regular
files. Two conveniences are layered over :meth:`pathlib.Path.glob`:

- a pattern ending in ``/`` means everything below that directory, so
  ``assets/`` behaves exactly like ``assets/**/*``;
- a pattern starting with ``!`` removes its matches from the result.

Example usage::

    from pathlib import Path
    from asset_stage.resolution import expand_patterns

    matches = expand_patterns(Path("web"), ["index.html", "img/", "!img/*.psd"])
"""

from __future__ import annotations

import typing as typ
from pathlib import Path, PurePosixPath, PureWindowsPath

from .errors import ConfigurationError

__all__ = [
    "check_relative_pattern",
    "expand_patterns",
    "normalise_pattern",
    "relative_posix",
]


def normalise_pattern(pattern: str) -> str:
    """Rewrite a trailing-separator pattern to match recursively."""
    if pattern.endswith(("/", "\\")):
        return f"{pattern}**/*"
    return pattern


def _split_negation(patterns: typ.Iterable[str]) -> tuple[list[str], list[str]]:
    include: list[str] = []
    exclude: list[str] = []
    for pattern in patterns:
        if pattern.startswith("!"):
            exclude.append(normalise_pattern(pattern[1:]))
        else:
            include.append(normalise_pattern(pattern))
    return include, exclude


def check_relative_pattern(pattern: str) -> None:
    """Reject ``pattern`` (or its negated form) when it is absolute.

    Raises
    ------
    ConfigurationError
        Raised when the pattern names an absolute path.
    """
    bare = pattern.removeprefix("!")
    if PurePosixPath(bare).is_absolute() or PureWindowsPath(bare).is_absolute():
        msg = f"Patterns must be relative to the source root: {pattern!r}"
        raise ConfigurationError(msg)


def _matching_files(root: Path, pattern: str) -> set[Path]:
    check_relative_pattern(pattern)
    if not pattern:
        return set()
    return {path.resolve() for path in root.glob(pattern) if path.is_file()}


def expand_patterns(root: Path, patterns: typ.Iterable[str]) -> list[Path]:
    """Return the files below ``root`` matching ``patterns``.

    Parameters
    ----------
    root
        Directory the patterns are anchored at.
    patterns
        Glob patterns. A leading ``!`` excludes matches; a trailing ``/``
        matches everything below a directory.

    Returns
    -------
    list[Path]
        Absolute, resolved, de-duplicated file paths in sorted order.

    Raises
    ------
    ConfigurationError
        Raised when a pattern is absolute.
    """
    root = root.resolve()
    include, exclude = _split_negation(patterns)
    matched: set[Path] = set()
    for pattern in include:
        matched |= _matching_files(root, pattern)
    for pattern in exclude:
        matched -= _matching_files(root, pattern)
    return sorted(matched)


def relative_posix(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` using forward slashes."""
    return PurePosixPath(*path.relative_to(root).parts).as_posix()
