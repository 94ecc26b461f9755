# ABOUTME: Bounded-concurrency runner for independent async tasks.
# ABOUTME: Caps in-flight tasks, captures per-task failures, keeps input order.

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from feed_pulse.errors import ConfigurationError

log = structlog.get_logger()

T = TypeVar("T")
InputT = TypeVar("InputT")
KeyT = TypeVar("KeyT", bound=Hashable)


@dataclass(frozen=True)
class TaskOutcome(Generic[T]):
    """Result of one limited task: either a value or the exception it raised."""

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyLimiter:
    """Runs async tasks with at most `limit` of them in flight.

    Every call to `run` gets its own semaphore, so limiters used for different
    phases of a run never share state.
    """

    def __init__(self, limit: int, timeout: float | None = None) -> None:
        if limit <= 0:
            raise ConfigurationError(f"concurrency limit must be positive, got {limit}")
        self.limit = limit
        self.timeout = timeout

    async def run(self, factories: Iterable[Callable[[], Awaitable[T]]]) -> list[TaskOutcome[T]]:
        """Execute all task factories and return outcomes in input order.

        Args:
            factories: Zero-argument callables each returning an awaitable.
                A factory is only called once a slot is free.

        Returns:
            One TaskOutcome per factory, indexed like the input.
        """
        semaphore = asyncio.Semaphore(self.limit)

        async def _guarded(factory: Callable[[], Awaitable[T]]) -> TaskOutcome[T]:
            async with semaphore:
                try:
                    if self.timeout is None:
                        value = await factory()
                    else:
                        value = await asyncio.wait_for(factory(), timeout=self.timeout)
                except Exception as e:
                    return TaskOutcome(error=e)
                return TaskOutcome(value=value)

        return list(await asyncio.gather(*(_guarded(factory) for factory in factories)))

    async def map(
        self,
        func: Callable[[InputT], Awaitable[T]],
        inputs: Sequence[InputT],
    ) -> list[TaskOutcome[T]]:
        """Apply an async function to every input under the limit."""
        return await self.run([lambda value=value: func(value) for value in inputs])


def collect_results(
    keys: Sequence[KeyT],
    outcomes: Sequence[TaskOutcome[T]],
    phase: str,
) -> dict[KeyT, T]:
    """Merge per-task outcomes into one mapping once every task has joined.

    Each task owns exactly one key, so the merge never overwrites. Failed
    tasks are logged and left out of the mapping.
    """
    if len(keys) != len(outcomes):
        raise ValueError(f"{phase}: {len(keys)} keys for {len(outcomes)} outcomes")

    results: dict[KeyT, T] = {}
    for key, outcome in zip(keys, outcomes, strict=True):
        if not outcome.ok:
            log.warning(f"{phase}_failed", key=str(key), error=str(outcome.error))
            continue
        results[key] = outcome.value  # type: ignore[assignment]
    return results
