"""Bounded-concurrency dispatch of many independent units.

Items are split into contiguous chunks and processed by a fixed pool of
workers that claim chunk indices from a shared counter. Output order always
matches input order regardless of which worker finishes first.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import dataclasses
import itertools
import logging
import math
import random
from typing import TYPE_CHECKING, Any

from resilient_gen.config.types import FrozenConfig
from resilient_gen.core.exceptions import BatchDispatchError
from resilient_gen.core.types import GenerationRequest, GenerationResult
from resilient_gen.telemetry import TelemetryContext, TelemetryContextProtocol

if TYPE_CHECKING:
    from resilient_gen.registry import FallbackOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100
DEFAULT_CONCURRENCY = 6
DEFAULT_MAX_JITTER = 0.1

type ChunkHandler[T, R] = Callable[[Sequence[T]], Awaitable[Sequence[R]]]


@dataclasses.dataclass(frozen=True, slots=True)
class BatchJob[T]:
    """Items plus the partitioning used to process them."""

    items: tuple[T, ...]
    chunk_size: int = DEFAULT_CHUNK_SIZE
    concurrency: int = DEFAULT_CONCURRENCY

    def __post_init__(self) -> None:
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))
        if self.chunk_size < 1:
            raise ValueError("chunk_size: must be >= 1")
        if self.concurrency < 1:
            raise ValueError("concurrency: must be >= 1")

    @property
    def chunk_count(self) -> int:
        return math.ceil(len(self.items) / self.chunk_size)

    @property
    def worker_count(self) -> int:
        return min(self.concurrency, self.chunk_count)

    def chunk(self, index: int) -> tuple[T, ...]:
        start = index * self.chunk_size
        return self.items[start : start + self.chunk_size]


class BatchDispatcher:
    """Run a chunk handler over items with at most ``concurrency`` in flight.

    Each worker sleeps a random jitter in ``[0, max_jitter)`` seconds before
    its first claim so workers do not hit a backend at the same instant.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_jitter: float = DEFAULT_MAX_JITTER,
        *,
        telemetry: TelemetryContextProtocol | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size: must be >= 1")
        if concurrency < 1:
            raise ValueError("concurrency: must be >= 1")
        if max_jitter < 0:
            raise ValueError("max_jitter: must be >= 0")
        self.chunk_size = chunk_size
        self.concurrency = concurrency
        self.max_jitter = max_jitter
        self._telemetry = telemetry or TelemetryContext()
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: FrozenConfig, **kwargs: Any) -> BatchDispatcher:
        return cls(config.batch_chunk_size, config.batch_concurrency, **kwargs)

    async def run[T, R](
        self, items: Sequence[T], process_chunk: ChunkHandler[T, R]
    ) -> list[R]:
        """Process ``items`` and return one output per input, in input order.

        The first handler failure propagates and partial results are
        discarded; workers already running are not cancelled.

        Raises:
            BatchDispatchError: If a handler returns a different number of
                outputs than the chunk it was given.
        """
        job = BatchJob(tuple(items), self.chunk_size, self.concurrency)
        return await self.run_job(job, process_chunk)

    async def run_job[T, R](
        self, job: BatchJob[T], process_chunk: ChunkHandler[T, R]
    ) -> list[R]:
        """Process a prepared job; see ``run``."""
        if not job.items:
            return []
        output: list[Any] = [None] * len(job.items)
        claims = itertools.count()
        logger.debug(
            "Dispatching %d item(s) in %d chunk(s) across %d worker(s)",
            len(job.items),
            job.chunk_count,
            job.worker_count,
        )

        async def worker(worker_id: int) -> None:
            if self.max_jitter:
                await asyncio.sleep(self._rng.random() * self.max_jitter)
            while True:
                # Claiming happens without an await in between, so no two
                # workers ever take the same index.
                index = next(claims)
                if index >= job.chunk_count:
                    return
                chunk = job.chunk(index)
                with self._telemetry("batch.chunk", index=index, worker=worker_id):
                    results = await process_chunk(chunk)
                if len(results) != len(chunk):
                    raise BatchDispatchError(
                        f"Chunk {index} handler returned {len(results)} result(s) "
                        f"for {len(chunk)} item(s)"
                    )
                start = index * job.chunk_size
                output[start : start + len(chunk)] = results

        await asyncio.gather(*(worker(i) for i in range(job.worker_count)))
        return output


async def dispatch[T, R](
    job: BatchJob[T],
    process_chunk: ChunkHandler[T, R],
    *,
    max_jitter: float = DEFAULT_MAX_JITTER,
    telemetry: TelemetryContextProtocol | None = None,
) -> list[R]:
    """Run a prepared ``BatchJob``."""
    dispatcher = BatchDispatcher(
        job.chunk_size, job.concurrency, max_jitter, telemetry=telemetry
    )
    return await dispatcher.run_job(job, process_chunk)


async def generate_many(
    orchestrator: FallbackOrchestrator,
    requests: Sequence[GenerationRequest],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    provider: str | None = None,
    max_jitter: float = DEFAULT_MAX_JITTER,
    **kwargs: Any,
) -> list[GenerationResult]:
    """Generate many independent requests through a ``FallbackOrchestrator``.

    Each request is its own chunk, so at most ``concurrency`` generations are
    in flight. Extra keyword arguments (such as ``default=``) are passed to
    ``generate_structured_content``.
    """

    async def one(chunk: Sequence[GenerationRequest]) -> list[GenerationResult]:
        return [
            await orchestrator.generate_structured_content(
                chunk[0], provider, **kwargs
            )
        ]

    dispatcher = BatchDispatcher(1, concurrency, max_jitter)
    return await dispatcher.run(requests, one)
