"""Expose staging results as compile-time identifiers.

Each mapping may name an identifier for its content token
(``dir_hash_var_name``) and one for its staged file list
(``files_var_name``). The resolvers registered here read those values lazily,
when the host meets the identifier while analysing a source module.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import json
import typing as typ

from .host import EvaluatedExpression

if typ.TYPE_CHECKING:
    from .config import MappingConfig
    from .host import BuildHost

__all__ = ["FilesResolver", "HashResolver", "register_substitutions", "resolvers_for"]


@dataclasses.dataclass(slots=True, frozen=True)
class HashResolver:
    """Resolve ``dir_hash_var_name`` to the mapping's content token."""

    name: str
    mapping: MappingConfig
    type_tag: typ.Literal["string"] = "string"

    def evaluate(
        self,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        return EvaluatedExpression("string", self.mapping.dir_hash, range)

    def evaluate_typeof(
        self,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        return EvaluatedExpression("string", self.type_tag, range)

    def render_literal(self) -> str:
        return json.dumps(self.mapping.dir_hash)


@dataclasses.dataclass(slots=True, frozen=True)
class FilesResolver:
    """Resolve ``files_var_name`` to the mapping's staged relative paths."""

    name: str
    mapping: MappingConfig
    type_tag: typ.Literal["array"] = "array"

    def evaluate(
        self,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        return EvaluatedExpression("array", self.mapping.files_list, range)

    def evaluate_typeof(
        self,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        return EvaluatedExpression("string", self.type_tag, range)

    def render_literal(self) -> str:
        return json.dumps(self.mapping.files_list)


def resolvers_for(
    mappings: cabc.Iterable[MappingConfig],
) -> list[HashResolver | FilesResolver]:
    """Build the resolvers requested by ``mappings``."""
    resolvers: list[HashResolver | FilesResolver] = []
    for mapping in mappings:
        if mapping.rename_target_dir and mapping.dir_hash_var_name:
            resolvers.append(HashResolver(mapping.dir_hash_var_name, mapping))
        if mapping.files_var_name:
            resolvers.append(FilesResolver(mapping.files_var_name, mapping))
    return resolvers


def register_substitutions(
    host: BuildHost, mappings: cabc.Iterable[MappingConfig]
) -> list[HashResolver | FilesResolver]:
    """Register identifier resolvers for ``mappings`` with ``host``.

    Returns
    -------
    list[HashResolver | FilesResolver]
        The resolvers that were registered.
    """
    resolvers = resolvers_for(mappings)
    for resolver in resolvers:
        host.on_identifier(resolver)
    return resolvers
