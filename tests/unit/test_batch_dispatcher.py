import asyncio
from collections.abc import Sequence

import pytest

from resilient_gen.batch import BatchDispatcher, BatchJob, dispatch, generate_many
from resilient_gen.core.exceptions import BatchDispatchError
from resilient_gen.core.types import GenerationRequest, ProviderName
from resilient_gen.registry import FallbackOrchestrator, ProviderRegistry
from tests.helpers import ScriptedAdapter, factories_for, make_config

pytestmark = pytest.mark.unit


def test_batch_job_partitions_into_contiguous_chunks():
    job = BatchJob(range(257), chunk_size=100, concurrency=6)

    assert job.chunk_count == 3
    assert job.worker_count == 3
    assert job.chunk(0) == tuple(range(100))
    assert job.chunk(2) == tuple(range(200, 257))


@pytest.mark.parametrize(("chunk_size", "concurrency"), [(0, 1), (1, 0)])
def test_batch_job_rejects_non_positive_sizes(chunk_size, concurrency):
    with pytest.raises(ValueError):
        BatchJob((1, 2), chunk_size=chunk_size, concurrency=concurrency)


@pytest.mark.asyncio
async def test_output_order_matches_input_with_a_slow_worker():
    items = list(range(257))
    calls: list[tuple[int, int]] = []

    async def process(chunk: Sequence[int]) -> list[str]:
        calls.append((chunk[0], len(chunk)))
        # The first chunk finishes last.
        await asyncio.sleep(0.05 if chunk[0] == 0 else 0)
        return [f"t{i}" for i in chunk]

    dispatcher = BatchDispatcher(chunk_size=100, concurrency=6, max_jitter=0)
    result = await dispatcher.run(items, process)

    assert result == [f"t{i}" for i in items]
    assert sorted(calls) == [(0, 100), (100, 100), (200, 57)]


@pytest.mark.asyncio
async def test_concurrency_is_bounded_and_each_chunk_runs_once():
    in_flight = 0
    peak = 0
    seen: list[int] = []

    async def process(chunk: Sequence[int]) -> list[int]:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        seen.append(chunk[0])
        await asyncio.sleep(0.01)
        in_flight -= 1
        return [i * 2 for i in chunk]

    dispatcher = BatchDispatcher(chunk_size=5, concurrency=3, max_jitter=0.005)
    result = await dispatcher.run(range(52), process)

    assert result == [i * 2 for i in range(52)]
    assert peak <= 3
    assert sorted(seen) == list(range(0, 52, 5))


@pytest.mark.asyncio
async def test_empty_input_starts_no_workers():
    async def process(chunk):  # pragma: no cover - must not run
        raise AssertionError("handler called for empty input")

    assert await BatchDispatcher().run([], process) == []


@pytest.mark.asyncio
async def test_wrong_result_length_raises():
    async def process(chunk: Sequence[int]) -> list[int]:
        return list(chunk)[:-1]

    with pytest.raises(BatchDispatchError, match="returned 9 result"):
        await BatchDispatcher(chunk_size=10, max_jitter=0).run(range(30), process)


@pytest.mark.asyncio
async def test_first_failure_propagates():
    async def process(chunk: Sequence[int]) -> list[int]:
        if chunk[0] == 10:
            raise RuntimeError("chunk failed")
        return list(chunk)

    with pytest.raises(RuntimeError, match="chunk failed"):
        await BatchDispatcher(chunk_size=10, concurrency=2, max_jitter=0).run(
            range(40), process
        )


@pytest.mark.asyncio
async def test_dispatch_runs_a_prepared_job():
    async def process(chunk: Sequence[str]) -> list[str]:
        return [s.upper() for s in chunk]

    job = BatchJob(("a", "b", "c"), chunk_size=2, concurrency=2)

    assert await dispatch(job, process, max_jitter=0) == ["A", "B", "C"]


def test_from_config_uses_configured_sizes():
    config = make_config()
    dispatcher = BatchDispatcher.from_config(config, max_jitter=0)
    assert dispatcher.chunk_size == 100
    assert dispatcher.concurrency == 6


@pytest.mark.asyncio
async def test_generate_many_returns_results_in_request_order():
    adapter = ScriptedAdapter("gemini", [f"answer {i}" for i in range(8)], models=("m",))
    registry = ProviderRegistry(
        make_config(ProviderName.GEMINI), factories_for(gemini=adapter)
    )
    requests = [GenerationRequest(prompt=f"question {i}") for i in range(8)]

    results = await generate_many(
        FallbackOrchestrator(registry), requests, concurrency=3, max_jitter=0
    )

    assert len(results) == 8
    # Outcomes are consumed in call order; every request got exactly one.
    assert sorted(r.content for r in results) == sorted(f"answer {i}" for i in range(8))
    assert [r.prompt for r in adapter.requests] == [f"question {i}" for i in range(8)]
