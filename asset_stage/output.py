"""Export staging results to a CI output file."""

from __future__ import annotations

import collections.abc as cabc
import json
import typing as typ

from .errors import StageError

if typ.TYPE_CHECKING:
    from pathlib import Path

    from .config import MappingConfig

__all__ = [
    "RESERVED_OUTPUT_KEYS",
    "prepare_output_data",
    "validate_no_reserved_key_collisions",
    "write_github_output",
]

RESERVED_OUTPUT_KEYS: frozenset[str] = frozenset({"staged_dirs"})


def prepare_output_data(
    mappings: cabc.Iterable[MappingConfig],
) -> dict[str, str | list[str]]:
    """Collect the published identifier values of ``mappings``.

    Parameters
    ----------
    mappings
        Mappings whose build cycle has completed.

    Returns
    -------
    dict[str, str | list[str]]
        One entry per configured identifier, plus ``staged_dirs`` holding a
        JSON object mapping each target root to its final directory.
    """
    values: dict[str, str | list[str]] = {}
    staged_dirs: dict[str, str] = {}
    for mapping in mappings:
        if mapping.final_dir is not None:
            staged_dirs[mapping.target_root.as_posix()] = mapping.final_dir.as_posix()
        if mapping.dir_hash_var_name and mapping.rename_target_dir:
            values[mapping.dir_hash_var_name] = mapping.dir_hash
        if mapping.files_var_name:
            values[mapping.files_var_name] = mapping.files_list
    validate_no_reserved_key_collisions(values)
    return values | {"staged_dirs": json.dumps(dict(sorted(staged_dirs.items())))}


def validate_no_reserved_key_collisions(names: cabc.Iterable[str]) -> None:
    """Ensure identifier names avoid the reserved output keys.

    Raises
    ------
    StageError
        Raised when an identifier overlaps with a reserved key.
    """
    if collisions := sorted(set(names) & RESERVED_OUTPUT_KEYS):
        msg = f"Identifiers collide with reserved output keys: {collisions}"
        raise StageError(msg)


def _format_list_output(key: str, values: list[str]) -> str:
    """Format a list value for GitHub Actions output using heredoc syntax."""
    delimiter = f"gh_{key.upper()}"
    content = "\n".join(values)
    return f"{key}<<{delimiter}\n{content}\n{delimiter}\n"


def _format_scalar_output(key: str, value: str) -> str:
    """Format a scalar value for GitHub Actions output with escaping."""
    escaped = value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
    return f"{key}={escaped}\n"


def write_github_output(file: Path, values: dict[str, str | list[str]]) -> None:
    """Append ``values`` to the GitHub Actions output ``file``.

    Parameters
    ----------
    file
        Target ``GITHUB_OUTPUT`` file that receives the exported values.
    values
        Mapping of output names to scalar or list values.
    """
    file.parent.mkdir(parents=True, exist_ok=True)
    with file.open("a", encoding="utf-8") as handle:
        for key, value in sorted(values.items()):
            if isinstance(value, list):
                handle.write(_format_list_output(key, value))
            else:
                handle.write(_format_scalar_output(key, value))
