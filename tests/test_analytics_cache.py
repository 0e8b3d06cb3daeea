import asyncio

from spendsync.services.analytics_cache import AnalyticsCache, make_key


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class Counter:
    def __init__(self, value="result"):
        self.calls = 0
        self.value = value

    async def __call__(self):
        self.calls += 1
        return f"{self.value}-{self.calls}"


async def test_second_read_is_served_from_cache():
    cache = AnalyticsCache()
    compute = Counter()

    first = await cache.get_or_compute("u1", "summary", {"period": "month"}, compute)
    second = await cache.get_or_compute("u1", "summary", {"period": "month"}, compute)

    assert first == second == "result-1"
    assert compute.calls == 1


async def test_params_are_part_of_the_key():
    cache = AnalyticsCache()
    compute = Counter()

    await cache.get_or_compute("u1", "summary", {"period": "month"}, compute)
    await cache.get_or_compute("u1", "summary", {"period": "week"}, compute)

    assert compute.calls == 2
    assert make_key("u1", "m", {"a": 1, "b": 2}) == make_key("u1", "m", {"b": 2, "a": 1})


async def test_entries_expire_after_ttl():
    clock = Clock()
    cache = AnalyticsCache(ttl_seconds=60, clock=clock)
    compute = Counter()

    await cache.get_or_compute("u1", "summary", None, compute)
    clock.now = 59.9
    await cache.get_or_compute("u1", "summary", None, compute)
    clock.now = 60.0
    await cache.get_or_compute("u1", "summary", None, compute)

    assert compute.calls == 2


async def test_invalidation_is_per_user():
    cache = AnalyticsCache()
    await cache.get_or_compute("u1", "summary", None, Counter())
    await cache.get_or_compute("u1", "by_category", None, Counter())
    await cache.get_or_compute("u2", "summary", None, Counter())

    assert cache.invalidate_user("u1") == 2
    assert len(cache) == 1
    assert cache.get(make_key("u2", "summary"))[0] is True


async def test_result_computed_across_an_invalidation_is_not_stored():
    cache = AnalyticsCache()
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow():
        started.set()
        await release.wait()
        return "stale"

    read = asyncio.ensure_future(cache.get_or_compute("u1", "summary", None, slow))
    await started.wait()
    cache.invalidate_user("u1")
    release.set()

    assert await read == "stale"
    assert len(cache) == 0
