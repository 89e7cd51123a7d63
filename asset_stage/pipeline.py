"""Build-cycle orchestration for the asset staging pipeline.

Every mapping goes through three stages: clean, stage (copy) and finalize.
Each stage runs for all mappings concurrently and finishes for all of them
before the next stage starts. The whole run is memoised per build cycle:
the first trigger of a cycle starts it and every other trigger of that cycle
awaits the same outcome.
"""

from __future__ import annotations

import asyncio
import collections.abc as cabc
import enum
import logging
import typing as typ

from .config import DEFAULT_MAX_CONCURRENT_COPIES, validate_mappings
from .finalize import finalize
from .stager import clean, stage

if typ.TYPE_CHECKING:
    from .config import MappingConfig
    from .host import BuildCycle

__all__ = ["RunState", "RunStatus", "StagingPipeline"]

logger = logging.getLogger(__name__)


class RunStatus(enum.Enum):
    """Progress of the run belonging to one build cycle."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class RunState:
    """Single-assignment holder of one cycle's pipeline run.

    ``previous`` is the state of the cycle before, whose run has to settle
    before this one may touch the same directories.
    """

    def __init__(self, cycle: BuildCycle, previous: RunState | None = None) -> None:
        self.cycle = cycle
        self.previous = previous
        self._task: asyncio.Task[None] | None = None

    @property
    def status(self) -> RunStatus:
        if self._task is None:
            return RunStatus.NOT_STARTED
        if self._task.done():
            return RunStatus.DONE
        return RunStatus.IN_PROGRESS

    def ensure_started(
        self, factory: cabc.Callable[[], cabc.Coroutine[typ.Any, typ.Any, None]]
    ) -> asyncio.Task[None]:
        """Start the run on first use and return the shared task.

        The check and the assignment contain no suspension point, so two
        triggers can never both observe ``NOT_STARTED``.
        """
        if self._task is None:
            self._task = asyncio.ensure_future(self._after_previous(factory))
        return self._task

    async def settled(self) -> None:
        """Wait until this run finished, whatever its outcome."""
        if self._task is not None:
            await asyncio.wait([self._task])

    async def _after_previous(
        self, factory: cabc.Callable[[], cabc.Coroutine[typ.Any, typ.Any, None]]
    ) -> None:
        if (previous := self.previous) is not None:
            self.previous = None
            if previous.status is RunStatus.IN_PROGRESS:
                logger.debug(
                    "Cycle %d waits for cycle %d to finish",
                    self.cycle.number,
                    previous.cycle.number,
                )
            await previous.settled()
        await factory()

    async def wait(
        self, factory: cabc.Callable[[], cabc.Coroutine[typ.Any, typ.Any, None]]
    ) -> None:
        """Await the shared run, starting it if nobody has yet."""
        task = self.ensure_started(factory)
        # Shielded so a cancelled waiter leaves the run to the others.
        await asyncio.shield(task)


class StagingPipeline:
    """Clean, copy and finalize a set of mappings once per build cycle."""

    def __init__(
        self,
        mappings: cabc.Sequence[MappingConfig],
        *,
        max_concurrent_copies: int = DEFAULT_MAX_CONCURRENT_COPIES,
    ) -> None:
        if max_concurrent_copies < 1:
            msg = "max_concurrent_copies must be at least 1"
            raise ValueError(msg)
        validate_mappings(mappings)
        self.mappings = list(mappings)
        self.max_concurrent_copies = max_concurrent_copies
        self.run_count = 0
        self._state: RunState | None = None

    @property
    def status(self) -> RunStatus:
        """Status of the most recent cycle's run."""
        if self._state is None:
            return RunStatus.NOT_STARTED
        return self._state.status

    async def trigger(self, cycle: BuildCycle) -> None:
        """Run handler: make sure the pipeline ran for ``cycle``.

        A cycle that arrives while the previous one is still running starts
        only after that run settled, so two cycles never overlap.

        Parameters
        ----------
        cycle
            The build cycle the host is starting.

        Raises
        ------
        Exception
            The error that aborted this cycle's run, delivered to every
            trigger of the cycle.
        """
        state = self._state
        if state is None or state.cycle != cycle:
            state = self._state = RunState(cycle, previous=state)
        await state.wait(self._run)

    async def _run(self) -> None:
        self.run_count += 1
        for mapping in self.mappings:
            mapping.reset()
        limiter = asyncio.Semaphore(self.max_concurrent_copies)
        try:
            await self._each("clean", clean)
            await self._each("stage", lambda mapping: stage(mapping, limiter=limiter))
            await self._each("finalize", finalize)
        except Exception as exc:
            logger.error("Asset staging failed: %s", exc)
            raise

    async def _each(
        self,
        label: str,
        step: cabc.Callable[[MappingConfig], cabc.Awaitable[object]],
    ) -> None:
        logger.debug("Running %s for %d mapping(s)", label, len(self.mappings))
        await asyncio.gather(*(step(mapping) for mapping in self.mappings))
