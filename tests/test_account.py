import asyncio

from reclaim_mcp.account import AccountInfoCache
from reclaim_mcp.models import AccountInfo


def test_concurrent_callers_share_one_fetch():
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return AccountInfo(time_zone="Europe/Paris")

    async def run():
        cache = AccountInfoCache(fetch)
        results = await asyncio.gather(*(cache.get() for _ in range(5)))
        again = await cache.get()
        return results, again

    results, again = asyncio.run(run())
    assert calls == 1
    assert all(r is results[0] for r in results)
    assert again is results[0]
    assert again.time_zone == "Europe/Paris"


def test_failed_fetch_yields_none_and_retries_later():
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("network down")
        return AccountInfo(time_zone="UTC")

    async def run():
        cache = AccountInfoCache(fetch)
        first = await asyncio.gather(cache.get(), cache.get())
        second = await cache.get()
        return first, second, cache.value

    first, second, cached = asyncio.run(run())
    assert first == [None, None]
    assert second.time_zone == "UTC"
    assert cached is second
    assert calls == 2
