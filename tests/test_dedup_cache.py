import asyncio

import pytest

from conftest import FakeClock
from feedpipe.config import PipelineConfig
from feedpipe.services.cache import DedupCache, EntryState, MemoryCacheBackend, SQLiteCacheBackend, get_cache_backend
from feedpipe.services.errors import ProducerFailed


class CountingProducer:
    def __init__(self, value="value", error=None, delay=0.01):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_producer_run():
    cache = DedupCache()
    producer = CountingProducer(value={"html": "<p>x</p>"})

    results = await asyncio.gather(*[cache.get_or_compute("k", 60, producer) for _ in range(10)])

    assert producer.calls == 1
    assert all(r == {"html": "<p>x</p>"} for r in results)
    assert cache.stats.shared == 9


@pytest.mark.asyncio
async def test_pending_state_visible_while_producer_runs():
    cache = DedupCache()
    release = asyncio.Event()

    async def producer():
        await release.wait()
        return "done"

    task = asyncio.create_task(cache.get_or_compute("k", 60, producer))
    await asyncio.sleep(0)
    assert cache.state_of("k") is EntryState.PENDING

    release.set()
    assert await task == "done"
    assert cache.state_of("k") is None


@pytest.mark.asyncio
async def test_ready_value_served_until_ttl_expires():
    clock = FakeClock()
    cache = DedupCache(clock=clock)
    producer = CountingProducer(delay=0)

    await cache.get_or_compute("k", 30, producer)
    clock.advance(29)
    await cache.get_or_compute("k", 30, producer)
    assert producer.calls == 1
    assert cache.stats.hits == 1

    clock.advance(2)
    await cache.get_or_compute("k", 30, producer)
    assert producer.calls == 2


@pytest.mark.asyncio
async def test_zero_ttl_never_stores():
    cache = DedupCache()
    producer = CountingProducer(delay=0)

    await cache.get_or_compute("k", 0, producer)
    await cache.get_or_compute("k", 0, producer)

    assert producer.calls == 2


@pytest.mark.asyncio
async def test_failure_reaches_every_waiter_and_is_not_cached():
    cache = DedupCache()
    producer = CountingProducer(error=RuntimeError("upstream down"))

    results = await asyncio.gather(
        *[cache.get_or_compute("k", 60, producer) for _ in range(3)],
        return_exceptions=True,
    )

    assert producer.calls == 1
    assert all(isinstance(r, ProducerFailed) for r in results)
    assert all(isinstance(r.error, RuntimeError) for r in results)
    assert cache.state_of("k") is None

    producer.error = None
    assert await cache.get_or_compute("k", 60, producer) == "value"
    assert producer.calls == 2


@pytest.mark.asyncio
async def test_failure_ttl_keeps_error_for_a_while():
    clock = FakeClock()
    cache = DedupCache(failure_ttl=10, clock=clock)
    producer = CountingProducer(error=ValueError("bad"), delay=0)

    with pytest.raises(ProducerFailed):
        await cache.get_or_compute("k", 60, producer)
    assert cache.state_of("k") is EntryState.FAILED

    with pytest.raises(ProducerFailed):
        await cache.get_or_compute("k", 60, producer)
    assert producer.calls == 1

    clock.advance(11)
    producer.error = None
    assert await cache.get_or_compute("k", 60, producer) == "value"
    assert producer.calls == 2


@pytest.mark.asyncio
async def test_distinct_keys_run_independently():
    cache = DedupCache()
    producer = CountingProducer()

    await asyncio.gather(cache.get_or_compute("a", 60, producer), cache.get_or_compute("b", 60, producer))

    assert producer.calls == 2


@pytest.mark.asyncio
async def test_cancelled_producer_lets_waiter_retry():
    cache = DedupCache()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return "never"

    first = asyncio.create_task(cache.get_or_compute("k", 60, slow))
    await started.wait()
    waiter = asyncio.create_task(cache.get_or_compute("k", 60, CountingProducer(delay=0)))
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    assert await waiter == "value"


@pytest.mark.asyncio
async def test_invalidate_forces_recompute():
    cache = DedupCache()
    producer = CountingProducer(delay=0)

    await cache.get_or_compute("k", 60, producer)
    await cache.invalidate("k")
    await cache.get_or_compute("k", 60, producer)

    assert producer.calls == 2


@pytest.mark.asyncio
async def test_sweep_drops_expired_entries():
    clock = FakeClock()
    backend = MemoryCacheBackend()
    cache = DedupCache(backend, failure_ttl=5, clock=clock)

    await cache.get_or_compute("ok", 10, CountingProducer(delay=0))
    with pytest.raises(ProducerFailed):
        await cache.get_or_compute("bad", 10, CountingProducer(error=KeyError("x"), delay=0))

    clock.advance(20)
    assert await cache.sweep() == 2
    assert len(backend) == 0
    assert cache.state_of("bad") is None


@pytest.mark.asyncio
async def test_memory_backend_evicts_oldest_entry():
    backend = MemoryCacheBackend(max_entries=2)
    await backend.set("a", 1, 100)
    await backend.set("b", 2, 100)
    await backend.set("c", 3, 100)

    assert await backend.get("a", 0) is None
    assert await backend.get("c", 0) == 3
    assert len(backend) == 2


@pytest.mark.asyncio
async def test_sqlite_backend_survives_reopen(tmp_path):
    db_path = str(tmp_path / "cache" / "cache.db")
    backend = SQLiteCacheBackend(db_path)
    await backend.set("https://example.com/a", {"html": "<p>ä</p>", "strategy": "primary"}, 100)
    await backend.close()

    reopened = SQLiteCacheBackend(db_path)
    assert await reopened.get("https://example.com/a", 50) == {"html": "<p>ä</p>", "strategy": "primary"}
    assert await reopened.get("https://example.com/a", 150) is None
    assert await reopened.get("https://example.com/a", 50) is None
    await reopened.close()


@pytest.mark.asyncio
async def test_dedup_cache_over_sqlite_backend(tmp_path):
    clock = FakeClock()
    cache = DedupCache(SQLiteCacheBackend(str(tmp_path / "cache.db")), clock=clock)
    producer = CountingProducer(value={"n": 1})

    await asyncio.gather(cache.get_or_compute("k", 60, producer), cache.get_or_compute("k", 60, producer))
    assert await cache.get_or_compute("k", 60, producer) == {"n": 1}

    assert producer.calls == 1
    await cache.close()


def test_backend_factory(tmp_path):
    memory = get_cache_backend(PipelineConfig(cache_backend="memory", cache_max_entries=3))
    sqlite = get_cache_backend(PipelineConfig(cache_backend="sqlite", cache_db_path=str(tmp_path / "c.db")))

    assert isinstance(memory, MemoryCacheBackend) and memory.max_entries == 3
    assert isinstance(sqlite, SQLiteCacheBackend)
    with pytest.raises(ValueError):
        get_cache_backend(PipelineConfig(cache_backend="redis"))
