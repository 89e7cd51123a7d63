"""Mapping configuration models, loader and validation.

A *mapping* names one or more source roots, the glob patterns to stage from
each of them, and the target root that receives the copies. Mappings also
carry the runtime results of a build cycle (content token and staged file
list) so identifier resolvers can read them after the pipeline finished.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import re
import tomllib
import typing as typ
from pathlib import Path

from .errors import ConfigurationError, StageError
from .resolution import check_relative_pattern

__all__ = [
    "DEFAULT_MAX_CONCURRENT_COPIES",
    "MappingConfig",
    "StagingSettings",
    "load_config",
    "mappings_from_options",
    "validate_mappings",
]

DEFAULT_MAX_CONCURRENT_COPIES = 16

_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")

# Option spellings accepted from plain dictionaries.
_ALIASES = {
    "sourceRoot": "source_root",
    "targetRoot": "target_root",
    "cleanDirs": "clean_dirs",
    "renameTargetDir": "rename_target_dir",
    "dirHashVarName": "dir_hash_var_name",
    "filesVarName": "files_var_name",
}
_REQUIRED_KEYS = frozenset({"source_root", "files", "target_root"})
_KNOWN_KEYS = _REQUIRED_KEYS | {
    "clean_dirs",
    "rename_target_dir",
    "dir_hash_var_name",
    "files_var_name",
}

SourceRoot: typ.TypeAlias = str | Path | list[str | Path]
Patterns: typ.TypeAlias = str | list[str] | list[str | list[str]]


@dataclasses.dataclass(slots=True)
class MappingConfig:
    """Describe one staging mapping and hold its per-cycle results."""

    source_root: SourceRoot
    files: Patterns
    target_root: Path
    clean_dirs: list[Path] = dataclasses.field(default_factory=list)
    rename_target_dir: bool = False
    dir_hash_var_name: str | None = None
    files_var_name: str | None = None
    files_hash: str | None = dataclasses.field(default=None, init=False)
    staged_files: list[str] | None = dataclasses.field(default=None, init=False)
    final_dir: Path | None = dataclasses.field(default=None, init=False)
    ready: bool = dataclasses.field(default=False, init=False)

    def __post_init__(self) -> None:
        self.target_root = Path(self.target_root)
        self.clean_dirs = [Path(entry) for entry in self.clean_dirs]

    @property
    def needs_finalize(self) -> bool:
        """Whether the finalizer has any work to do for this mapping."""
        return self.rename_target_dir or self.files_var_name is not None

    def source_pairs(self) -> list[tuple[Path, list[str]]]:
        """Return ``(root, patterns)`` pairs with scalars wrapped into lists.

        Raises
        ------
        ConfigurationError
            Raised when ``source_root`` is a list and ``files`` is not a list
            of pattern lists of the same length, or when a pattern is not a
            relative glob.
        """
        roots = self.source_root
        if not isinstance(roots, (list, tuple)):
            return [(Path(roots), _pattern_list(self.files, "files"))]

        patterns = self.files
        if not isinstance(patterns, (list, tuple)) or len(patterns) != len(roots):
            count = len(patterns) if isinstance(patterns, (list, tuple)) else 1
            msg = (
                "Invalid number of array elements: "
                f"{len(roots)} source roots but {count} pattern lists "
                f"for target {self.target_root.as_posix()}"
            )
            raise ConfigurationError(msg)
        return [
            (Path(root), _pattern_group(entry, index))
            for index, (root, entry) in enumerate(zip(roots, patterns, strict=True))
        ]

    def reset(self) -> None:
        """Forget the results published by a previous cycle."""
        self.files_hash = None
        self.staged_files = None
        self.final_dir = None
        self.ready = False

    def publish(
        self,
        *,
        final_dir: Path,
        files_hash: str | None = None,
        staged_files: list[str] | None = None,
    ) -> None:
        """Record the finalizer's results and mark the mapping ready."""
        if self.ready:
            msg = f"Results for {self.target_root.as_posix()} already published"
            raise StageError(msg)
        self.final_dir = final_dir
        self.files_hash = files_hash
        self.staged_files = None if staged_files is None else list(staged_files)
        self.ready = True

    @property
    def dir_hash(self) -> str:
        """Content token computed for the staged tree."""
        self._require_ready(self.dir_hash_var_name)
        if self.files_hash is None:
            msg = f"No content hash was computed for {self.target_root.as_posix()}"
            raise StageError(msg)
        return self.files_hash

    @property
    def files_list(self) -> list[str]:
        """Relative paths staged under the target root."""
        self._require_ready(self.files_var_name)
        if self.staged_files is None:
            msg = f"No file list was recorded for {self.target_root.as_posix()}"
            raise StageError(msg)
        return list(self.staged_files)

    def _require_ready(self, name: str | None) -> None:
        if not self.ready:
            msg = (
                f"'{name}' was read before staging into "
                f"{self.target_root.as_posix()} finished"
            )
            raise StageError(msg)


@dataclasses.dataclass(slots=True)
class StagingSettings:
    """Concrete configuration produced by :func:`load_config`."""

    mappings: list[MappingConfig]
    max_concurrent_copies: int = DEFAULT_MAX_CONCURRENT_COPIES
    config_file: Path | None = None


def _pattern_list(value: object, label: str) -> list[str]:
    """Wrap a single pattern and check every entry is a relative string."""
    if isinstance(value, str):
        check_relative_pattern(value)
        return [value]
    if not isinstance(value, (list, tuple)):
        msg = f"'{label}' must be a pattern or a list of patterns"
        raise ConfigurationError(msg)
    for index, pattern in enumerate(value):
        if not isinstance(pattern, str):
            msg = (
                f"'{label}[{index}]' must be a string pattern, "
                f"got {type(pattern).__name__}"
            )
            raise ConfigurationError(msg)
        check_relative_pattern(pattern)
    return list(value)


def _pattern_group(value: object, index: int) -> list[str]:
    """Check the pattern list paired with the source root at ``index``."""
    if not isinstance(value, (list, tuple)):
        msg = (
            f"'files[{index}]' must be a list of patterns when source_root "
            f"is a list, got {type(value).__name__}"
        )
        raise ConfigurationError(msg)
    return _pattern_list(value, f"files[{index}]")


def mappings_from_options(
    options: MappingConfig
    | cabc.Mapping[str, typ.Any]
    | cabc.Sequence[MappingConfig | cabc.Mapping[str, typ.Any]],
    *,
    base_dir: Path | None = None,
) -> list[MappingConfig]:
    """Normalise one mapping or a sequence of mappings to ``MappingConfig``.

    Parameters
    ----------
    options
        A :class:`MappingConfig`, a plain mapping of options, or a sequence of
        either. Plain mappings accept snake_case keys and the camelCase
        spellings (``sourceRoot``, ``targetRoot`` ...).
    base_dir
        Directory used to resolve relative paths found in plain mappings.

    Returns
    -------
    list[MappingConfig]
        The mappings in their configured order.

    Raises
    ------
    ConfigurationError
        Raised when an entry is missing keys or carries invalid values.
    """
    if isinstance(options, (MappingConfig, cabc.Mapping)):
        entries: list[typ.Any] = [options]
    else:
        entries = list(options)
    if not entries:
        msg = "No mappings configured to stage."
        raise ConfigurationError(msg)
    return [
        entry
        if isinstance(entry, MappingConfig)
        else _parse_mapping_entry(entry, index, base_dir)
        for index, entry in enumerate(entries, start=1)
    ]


def _parse_mapping_entry(
    entry: object, index: int, base_dir: Path | None
) -> MappingConfig:
    """Parse and validate a single mapping entry."""
    if not isinstance(entry, cabc.Mapping):
        msg = f"Mapping entry #{index} must be a table, got {type(entry).__name__}"
        raise ConfigurationError(msg)
    data = {_ALIASES.get(key, key): value for key, value in entry.items()}

    if unknown := sorted(data.keys() - _KNOWN_KEYS):
        msg = f"Unknown key(s) {', '.join(unknown)} in mapping entry #{index}"
        raise ConfigurationError(msg)
    if missing := sorted(_REQUIRED_KEYS - data.keys()):
        msg = f"Missing required key(s) {', '.join(missing)} in mapping entry #{index}"
        raise ConfigurationError(msg)

    rename = data.get("rename_target_dir", False)
    if not isinstance(rename, bool):
        msg = (
            f"'rename_target_dir' must be true or false, got {rename!r} "
            f"in mapping entry #{index}"
        )
        raise ConfigurationError(msg)

    source_root = data["source_root"]
    if isinstance(source_root, (list, tuple)):
        source_root = [
            _resolve(root, base_dir, "source_root", index) for root in source_root
        ]
    else:
        source_root = _resolve(source_root, base_dir, "source_root", index)

    clean_dirs = data.get("clean_dirs") or []
    if not isinstance(clean_dirs, (list, tuple)):
        msg = f"'clean_dirs' must be a list in mapping entry #{index}"
        raise ConfigurationError(msg)

    return MappingConfig(
        source_root=source_root,
        files=data["files"],
        target_root=_resolve(data["target_root"], base_dir, "target_root", index),
        clean_dirs=[
            _resolve(item, base_dir, "clean_dirs", index) for item in clean_dirs
        ],
        rename_target_dir=rename,
        dir_hash_var_name=_optional_name(data, "dir_hash_var_name", index),
        files_var_name=_optional_name(data, "files_var_name", index),
    )


def _resolve(value: object, base_dir: Path | None, field: str, index: int) -> Path:
    if not isinstance(value, (str, Path)) or not str(value):
        msg = f"'{field}' entries must be non-empty paths in mapping entry #{index}"
        raise ConfigurationError(msg)
    path = Path(value)
    if base_dir is not None and not path.is_absolute():
        return base_dir / path
    return path


def _optional_name(data: dict[str, typ.Any], field: str, index: int) -> str | None:
    value = data.get(field)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        msg = (
            f"'{field}' must be a string, got {type(value).__name__} "
            f"in mapping entry #{index}"
        )
        raise ConfigurationError(msg)
    return value


def validate_mappings(mappings: cabc.Sequence[MappingConfig]) -> None:
    """Check mappings for errors that must surface before any I/O.

    Parameters
    ----------
    mappings
        The configured mappings.

    Raises
    ------
    ConfigurationError
        Raised when source roots and pattern lists are misaligned, when a hash
        identifier is requested without ``rename_target_dir``, or when an
        identifier name is invalid or used more than once.
    """
    seen: dict[str, str] = {}
    for index, mapping in enumerate(mappings):
        mapping.source_pairs()
        if mapping.dir_hash_var_name and not mapping.rename_target_dir:
            msg = (
                f"mappings[{index}].dir_hash_var_name requires rename_target_dir "
                "because the hash is only computed for renamed targets"
            )
            raise ConfigurationError(msg)
        for field in ("dir_hash_var_name", "files_var_name"):
            name = getattr(mapping, field)
            if name is None:
                continue
            label = f"mappings[{index}].{field}"
            if not _IDENTIFIER.match(name):
                msg = f"{label} is not a valid identifier: {name!r}"
                raise ConfigurationError(msg)
            if (previous := seen.get(name)) is not None:
                msg = f"Identifier '{name}' is used by both {previous} and {label}"
                raise ConfigurationError(msg)
            seen[name] = label


def load_config(config_file: Path) -> StagingSettings:
    """Load staging mappings from the TOML file ``config_file``.

    The file holds a ``[[mappings]]`` array of tables and an optional
    ``[settings]`` table. Relative paths resolve against the directory that
    contains ``config_file``.

    Parameters
    ----------
    config_file
        Path to the TOML configuration file.

    Returns
    -------
    StagingSettings
        Validated mappings and pipeline settings.

    Raises
    ------
    FileNotFoundError
        Raised when the configuration file is absent.
    ConfigurationError
        Raised when the file cannot be parsed or holds invalid entries.
    """
    config_file = Path(config_file)
    if not config_file.is_file():
        msg = f"Configuration file not found at {config_file}"
        raise FileNotFoundError(msg)

    data = _load_toml(config_file)
    entries = data.get("mappings")
    if not isinstance(entries, list):
        msg = f"Missing [[mappings]] array in {config_file}"
        raise ConfigurationError(msg)

    base_dir = config_file.resolve().parent
    mappings = mappings_from_options(entries, base_dir=base_dir)
    validate_mappings(mappings)
    return StagingSettings(
        mappings=mappings,
        max_concurrent_copies=_max_concurrent_copies(
            data.get("settings", {}), config_file
        ),
        config_file=config_file,
    )


def _load_toml(path: Path) -> dict[str, typ.Any]:
    """Load and parse a TOML file."""
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigurationError(msg) from exc


def _max_concurrent_copies(settings: object, config_path: Path) -> int:
    if not isinstance(settings, dict):
        msg = f"[settings] must be a table in {config_path}"
        raise ConfigurationError(msg)
    value = settings.get("max_concurrent_copies", DEFAULT_MAX_CONCURRENT_COPIES)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        msg = (
            "settings.max_concurrent_copies must be a positive integer "
            f"in {config_path}"
        )
        raise ConfigurationError(msg)
    return value
