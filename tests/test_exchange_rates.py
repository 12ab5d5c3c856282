import asyncio

import httpx
import pytest

from app.core.errors import RateUnavailable
from app.utils.exchange_rates import ExchangeRateClient, RateCache


def test_fresh_snapshot_is_reused(rate_cache, rate_service, clock):
    first = asyncio.run(rate_cache.get_rates("USD"))
    clock.advance(hours=23)
    second = asyncio.run(rate_cache.get_rates("usd"))

    assert second is first
    assert rate_service.calls == ["USD"]


def test_snapshot_older_than_a_day_is_refetched(rate_cache, rate_service, clock):
    first = asyncio.run(rate_cache.get_rates())
    clock.advance(hours=25)
    second = asyncio.run(rate_cache.get_rates())

    assert second is not first
    assert second.fetched_at == clock.now
    assert rate_service.calls == ["USD", "USD"]


def test_snapshot_always_quotes_base_at_one(clock):
    async def fetcher(base):
        return {"base": base, "rates": {"EUR": 0.9}}

    snapshot = asyncio.run(RateCache(fetcher, clock=clock).get_rates("USD"))
    assert snapshot.rates["USD"] == 1.0
    assert snapshot.rates["EUR"] == 0.9


def test_failure_without_cache_raises(rate_cache, rate_service):
    rate_service.available = False
    with pytest.raises(RateUnavailable) as exc_info:
        asyncio.run(rate_cache.get_rates())
    assert exc_info.value.stale_snapshot is None
    assert rate_cache.peek() is None


def test_failure_with_cache_hands_back_stale_snapshot(rate_cache, rate_service, clock):
    stale = asyncio.run(rate_cache.get_rates())
    clock.advance(hours=30)
    rate_service.available = False

    with pytest.raises(RateUnavailable) as exc_info:
        asyncio.run(rate_cache.get_rates())

    assert exc_info.value.stale_snapshot is stale
    assert rate_cache.peek() is stale


def test_unexpected_fetch_errors_become_rate_unavailable(clock):
    async def fetcher(base):
        raise httpx.ConnectError("no route to host")

    with pytest.raises(RateUnavailable):
        asyncio.run(RateCache(fetcher, clock=clock).get_rates())


def test_concurrent_callers_share_one_fetch(clock):
    calls = []

    async def scenario():
        gate = asyncio.Event()

        async def fetcher(base):
            calls.append(base)
            await gate.wait()
            return {"base": base, "rates": {"EUR": 0.9}}

        cache = RateCache(fetcher, clock=clock)
        first = asyncio.ensure_future(cache.get_rates("USD"))
        second = asyncio.ensure_future(cache.get_rates("USD"))
        await asyncio.sleep(0)
        gate.set()
        return await asyncio.gather(first, second)

    first, second = asyncio.run(scenario())
    assert first is second
    assert calls == ["USD"]


def test_invalidate_forces_refetch(rate_cache, rate_service):
    asyncio.run(rate_cache.get_rates())
    rate_cache.invalidate("USD")
    asyncio.run(rate_cache.get_rates())
    assert rate_service.calls == ["USD", "USD"]


def _fetch_with(handler):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await ExchangeRateClient(client, "https://rates.test/v4/latest").fetch_latest("USD")

    return asyncio.run(scenario())


def test_client_parses_rate_payload():
    def handler(request):
        assert request.url.path == "/v4/latest/USD"
        return httpx.Response(
            200,
            json={"base": "USD", "rates": {"USD": 1, "EUR": 0.9}, "time_last_updated": 1717200000},
        )

    payload = _fetch_with(handler)
    assert payload == {"base": "USD", "rates": {"USD": 1, "EUR": 0.9}, "timestamp": 1717200000}


def test_client_raises_on_server_error():
    with pytest.raises(RateUnavailable):
        _fetch_with(lambda request: httpx.Response(500, json={"error": "boom"}))


def test_client_raises_on_missing_rates():
    with pytest.raises(RateUnavailable):
        _fetch_with(lambda request: httpx.Response(200, json={"base": "USD"}))


@pytest.mark.parametrize("bad_rates", [{"EUR": None}, {"EUR": "n/a"}, {"BTC2": 0.1}])
def test_malformed_rates_become_rate_unavailable(clock, bad_rates):
    def handler(request):
        return httpx.Response(200, json={"base": "USD", "rates": {"USD": 1, **bad_rates}})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ExchangeRateClient(client, "https://rates.test/v4/latest").fetch_latest
            return await RateCache(fetcher, clock=clock).get_rates("USD")

    with pytest.raises(RateUnavailable):
        asyncio.run(scenario())


def test_malformed_refresh_hands_back_stale_snapshot(clock):
    payloads = [{"EUR": 0.9}, {"EUR": 0.9, "not-a-code": 2.0}]

    async def fetcher(base):
        return {"base": base, "rates": payloads.pop(0)}

    cache = RateCache(fetcher, clock=clock)
    stale = asyncio.run(cache.get_rates())
    clock.advance(hours=25)

    with pytest.raises(RateUnavailable) as exc_info:
        asyncio.run(cache.get_rates())

    assert exc_info.value.stale_snapshot is stale
    assert cache.peek() is stale


def test_cancelled_waiter_does_not_cancel_shared_fetch(clock):
    calls = []

    async def scenario():
        gate = asyncio.Event()

        async def fetcher(base):
            calls.append(base)
            await gate.wait()
            return {"base": base, "rates": {"EUR": 0.9}}

        cache = RateCache(fetcher, clock=clock)
        impatient = asyncio.ensure_future(cache.get_rates("USD"))
        patient = asyncio.ensure_future(cache.get_rates("USD"))
        await asyncio.sleep(0)
        impatient.cancel()
        await asyncio.sleep(0)
        gate.set()
        snapshot = await patient
        return cache, impatient, snapshot

    cache, impatient, snapshot = asyncio.run(scenario())
    assert impatient.cancelled()
    assert snapshot.rates["EUR"] == 0.9
    assert cache.peek("USD") is snapshot
    assert calls == ["USD"]


def test_failed_fetch_with_all_waiters_cancelled_is_still_settled(clock):
    async def scenario():
        gate = asyncio.Event()

        async def fetcher(base):
            await gate.wait()
            raise RateUnavailable("rate service down")

        cache = RateCache(fetcher, clock=clock)
        waiter = asyncio.ensure_future(cache.get_rates("USD"))
        await asyncio.sleep(0)
        shared = cache._pending["USD"]
        waiter.cancel()
        gate.set()
        await asyncio.wait([shared])
        await asyncio.sleep(0)
        return cache, shared, shared._log_traceback

    cache, shared, unretrieved = asyncio.run(scenario())
    assert unretrieved is False
    assert isinstance(shared.exception(), RateUnavailable)
    assert cache._pending == {}
