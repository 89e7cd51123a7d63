"""Build host capability interface and an in-process implementation.

A build host owns the build lifecycle. The staging plugin only needs two
capabilities from it: registering a handler that runs when a build cycle
starts, and registering resolvers that supply compile-time values for named
identifiers while sources are analysed. :class:`LocalBuildHost` implements
both for command-line use and tests, with a small textual substitution pass
standing in for a bundler's parser.
"""

from __future__ import annotations

import asyncio
import collections.abc as cabc
import dataclasses
import itertools
import json
import logging
import re
import typing as typ

from .errors import ConfigurationError

__all__ = [
    "BuildCycle",
    "BuildHost",
    "EvaluatedExpression",
    "IdentifierResolver",
    "LocalBuildHost",
    "RunHandler",
]

logger = logging.getLogger(__name__)

RunHandler: typ.TypeAlias = "cabc.Callable[[BuildCycle], cabc.Awaitable[None]]"

# Comments and string, character or template literals.
_SKIPPED_SPANS = (
    r"//[^\n]*"
    r"|/\*[\s\S]*?\*/"
    r'|"(?:\\.|[^"\\\n])*"'
    r"|'(?:\\.|[^'\\\n])*'"
    r"|`(?:\\[\s\S]|[^`\\])*`"
)
_KEY_SUFFIX = re.compile(r"\s*:(?!:)")


def _is_property_key(source: str, start: int, end: int) -> bool:
    """Whether ``source[start:end]`` is a key in an object literal."""
    return (
        _KEY_SUFFIX.match(source, end) is not None
        and source[:start].rstrip().endswith(("{", ","))
    )


@dataclasses.dataclass(slots=True, frozen=True)
class BuildCycle:
    """One end-to-end build, or one iteration of a watch loop."""

    number: int
    watch: bool = False


@dataclasses.dataclass(slots=True, frozen=True)
class EvaluatedExpression:
    """Static value reported for an identifier occurrence."""

    kind: typ.Literal["string", "array"]
    value: str | list[str]
    range: tuple[int, int] | None = None


class IdentifierResolver(typ.Protocol):
    """Supply the compile-time value of one identifier."""

    name: str
    type_tag: typ.Literal["string", "array"]

    def evaluate(
        self,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        """Return the identifier's current value."""
        ...

    def evaluate_typeof(
        self,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        """Return the ``typeof`` result without reading the value."""
        ...

    def render_literal(self) -> str:
        """Return the source literal replacing an identifier occurrence."""
        ...


class BuildHost(typ.Protocol):
    """Lifecycle hooks the staging plugin registers against."""

    def on_run(self, handler: RunHandler) -> None:
        """Register ``handler`` for every build cycle start."""
        ...

    def on_identifier(self, resolver: IdentifierResolver) -> None:
        """Register ``resolver`` for identifier evaluation during parsing."""
        ...


class LocalBuildHost:
    """In-process :class:`BuildHost` that runs cycles and rewrites sources."""

    def __init__(self) -> None:
        self._run_handlers: list[RunHandler] = []
        self._resolvers: dict[str, IdentifierResolver] = {}
        self._cycles = itertools.count(1)
        self.current_cycle: BuildCycle | None = None

    def on_run(self, handler: RunHandler) -> None:
        self._run_handlers.append(handler)

    def on_identifier(self, resolver: IdentifierResolver) -> None:
        if resolver.name in self._resolvers:
            msg = f"Identifier '{resolver.name}' is already registered"
            raise ConfigurationError(msg)
        self._resolvers[resolver.name] = resolver

    @property
    def identifiers(self) -> list[str]:
        """Names with a registered resolver."""
        return sorted(self._resolvers)

    async def run(self, *, watch: bool = False, triggers: int = 1) -> BuildCycle:
        """Start a new build cycle and wait for every run handler.

        Parameters
        ----------
        watch
            Mark the cycle as a watch-mode iteration.
        triggers
            How many times each handler is invoked concurrently, mimicking
            hosts that fire several start hooks per cycle.

        Returns
        -------
        BuildCycle
            The cycle that completed.

        Raises
        ------
        Exception
            The first error reported by a run handler.
        """
        cycle = BuildCycle(next(self._cycles), watch=watch)
        self.current_cycle = cycle
        logger.debug("Starting build cycle %d (watch=%s)", cycle.number, watch)
        await asyncio.gather(
            *(
                handler(cycle)
                for handler in self._run_handlers
                for _ in range(triggers)
            )
        )
        return cycle

    def _resolver(self, name: str) -> IdentifierResolver:
        try:
            return self._resolvers[name]
        except KeyError as exc:
            msg = f"No resolver registered for identifier '{name}'"
            raise KeyError(msg) from exc

    def evaluate_identifier(
        self,
        name: str,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        """Evaluate identifier ``name`` through its resolver."""
        return self._resolver(name).evaluate(range)

    def evaluate_typeof(
        self,
        name: str,
        range: tuple[int, int] | None = None,  # noqa: A002
    ) -> EvaluatedExpression:
        """Evaluate ``typeof name`` through its resolver."""
        return self._resolver(name).evaluate_typeof(range)

    def substitute(self, source: str) -> str:
        """Replace registered identifiers in ``source`` with literals.

        ``typeof NAME`` and ``typeof(NAME)`` become the quoted type tag and
        each standalone ``NAME`` becomes the resolver's literal. Property
        accesses such as ``obj.NAME``, object keys such as ``{NAME: 1}``,
        longer identifiers, comments and string or template literals are left
        alone.
        """
        if not self._resolvers:
            return source
        names = "|".join(
            re.escape(name) for name in sorted(self._resolvers, key=len, reverse=True)
        )
        pattern = re.compile(
            rf"(?P<skip>{_SKIPPED_SPANS})"
            rf"|(?<![\w$.])typeof(?:\s*\(\s*(?P<wrapped>{names})\s*\)"
            rf"|\s+(?P<operand>{names})(?![\w$]))"
            rf"|(?<![\w$.])(?P<name>{names})(?![\w$])"
        )

        def _replace(match: re.Match[str]) -> str:
            if match.group("skip") is not None:
                return match.group(0)
            if (name := match.group("wrapped") or match.group("operand")) is not None:
                tag = self.evaluate_typeof(name, match.span()).value
                return json.dumps(tag)
            if _is_property_key(source, match.start(), match.end()):
                return match.group(0)
            return self._resolvers[match.group("name")].render_literal()

        return pattern.sub(_replace, source)
