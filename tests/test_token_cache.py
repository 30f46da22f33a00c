"""Tests for the single-flight token cache."""

import asyncio
import gc
import weakref
from datetime import timedelta

import pytest

from setbuilder.core.time import utcnow
from setbuilder.schemas.oauth import Token
from setbuilder.services.token_cache import TokenCache, _expire_later


def _token(value: str = "tok", expires_in: float = 3600) -> Token:
    return Token(value=value, expires_at=utcnow() + timedelta(seconds=expires_in))


class CountingFetcher:
    """Token fetcher that counts calls and can be slowed down or made to fail."""

    def __init__(self, delay: float = 0.0, expires_in: float = 3600, error: Exception | None = None):
        self.delay = delay
        self.expires_in = expires_in
        self.error = error
        self.calls = 0

    async def __call__(self) -> Token:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return _token(f"tok-{self.calls}", self.expires_in)


@pytest.mark.asyncio
class TestGetOrFetch:
    async def test_fetches_once_then_serves_from_cache(self):
        cache = TokenCache()
        fetch = CountingFetcher()

        first = await cache.get_or_fetch(fetch)
        second = await cache.get_or_fetch(fetch)

        assert first.value == "tok-1"
        assert second is first
        assert fetch.calls == 1
        await cache.aclose()

    async def test_concurrent_callers_share_one_fetch(self):
        cache = TokenCache()
        fetch = CountingFetcher(delay=0.05)

        tokens = await asyncio.gather(*(cache.get_or_fetch(fetch) for _ in range(10)))

        assert fetch.calls == 1
        assert {t.value for t in tokens} == {"tok-1"}
        await cache.aclose()

    async def test_failure_reaches_every_waiter_and_is_not_cached(self):
        cache = TokenCache()
        failing = CountingFetcher(delay=0.02, error=RuntimeError("boom"))

        results = await asyncio.gather(
            *(cache.get_or_fetch(failing) for _ in range(3)), return_exceptions=True
        )

        assert failing.calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.current is None
        assert not cache.is_acquiring

        # No lockout: the next call tries again
        working = CountingFetcher()
        token = await cache.get_or_fetch(working)
        assert token.value == "tok-1"
        assert working.calls == 1
        await cache.aclose()

    async def test_cancelled_caller_does_not_cancel_shared_fetch(self):
        cache = TokenCache()
        fetch = CountingFetcher(delay=0.05)

        doomed = asyncio.create_task(cache.get_or_fetch(fetch))
        survivor = asyncio.create_task(cache.get_or_fetch(fetch))
        await asyncio.sleep(0.01)
        doomed.cancel()

        token = await survivor
        assert token.value == "tok-1"
        assert doomed.cancelled()
        assert fetch.calls == 1
        assert cache.current == token
        await cache.aclose()

    async def test_closed_cache_refuses_work(self):
        cache = TokenCache()
        await cache.aclose()

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch(CountingFetcher())


@pytest.mark.asyncio
class TestExpiry:
    async def test_token_inside_margin_is_not_served(self):
        cache = TokenCache(expiry_margin_seconds=300)
        cache.store(_token(expires_in=100))

        assert cache.current is None
        await cache.aclose()

    async def test_token_outside_margin_is_served(self):
        cache = TokenCache(expiry_margin_seconds=300)
        token = _token(expires_in=3600)
        cache.store(token)

        assert cache.current == token
        await cache.aclose()

    async def test_proactive_expiry_forces_new_fetch(self):
        # Expiry fires 0.1s after caching
        cache = TokenCache(expiry_margin_seconds=3599.9)
        fetch = CountingFetcher(expires_in=3600)

        first = await cache.get_or_fetch(fetch)
        assert (await cache.get_or_fetch(fetch)) is first
        assert fetch.calls == 1

        await asyncio.sleep(0.3)
        assert cache.current is None

        second = await cache.get_or_fetch(fetch)
        assert fetch.calls == 2
        assert second.value == "tok-2"
        await cache.aclose()

    async def test_store_replaces_timer(self):
        cache = TokenCache(expiry_margin_seconds=0)
        cache.store(_token("old"))
        old_timer = cache._expiry_task

        cache.store(_token("new"))
        await asyncio.sleep(0)

        assert old_timer.cancelled()
        assert cache.current.value == "new"
        await cache.aclose()

    async def test_stale_timer_leaves_newer_token_alone(self):
        cache = TokenCache()
        old = _token("old")
        new = _token("new")
        cache.store(new)

        cache._expire(old)

        assert cache.current == new
        await cache.aclose()

    async def test_discarded_cache_cancels_timer(self):
        cache = TokenCache()
        cache.store(_token())
        timer = cache._expiry_task
        del cache
        gc.collect()
        await asyncio.sleep(0)

        assert timer.cancelled()

    async def test_replaced_timer_finalizer_detached(self):
        cache = TokenCache()
        cache.store(_token("old"))
        old_finalizer = cache._expiry_finalizer

        cache.store(_token("new"))

        assert not old_finalizer.alive
        assert cache._expiry_finalizer.alive
        await cache.aclose()
        assert cache._expiry_finalizer is None

    async def test_timer_ignores_discarded_cache(self):
        cache = TokenCache()
        ref = weakref.ref(cache)
        del cache
        gc.collect()

        # Must complete quietly once the cache is gone
        await _expire_later(ref, _token(), 0)
        assert ref() is None


@pytest.mark.asyncio
class TestInvalidate:
    async def test_invalidate_clears_and_cancels_timer(self):
        cache = TokenCache()
        cache.store(_token())
        timer = cache._expiry_task

        assert cache.invalidate() is True
        await asyncio.sleep(0)

        assert cache.current is None
        assert timer.cancelled()

    async def test_invalidate_with_stale_token_is_noop(self):
        cache = TokenCache()
        stale = _token("stale")
        current = _token("current")
        cache.store(current)

        assert cache.invalidate(stale) is False
        assert cache.current == current
        await cache.aclose()

    async def test_invalidate_matching_token(self):
        cache = TokenCache()
        token = _token()
        cache.store(token)

        assert cache.invalidate(token) is True
        assert cache.current is None

    async def test_invalidate_empty_cache(self):
        assert TokenCache().invalidate() is False

    async def test_aclose_cancels_timer(self):
        cache = TokenCache()
        cache.store(_token())
        timer = cache._expiry_task

        await cache.aclose()

        assert timer.cancelled()
        assert cache.current is None
