"""In-memory token cache with single-flight acquisition and proactive expiry.

One cache per credential provider. Concurrent callers that find no usable
token share a single acquisition task instead of each hitting the token
endpoint. A background timer drops the token ``expiry_margin_seconds`` before
the server-side expiry so requests are never started with a token about to
expire mid-flight.
"""

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Callable
from datetime import timedelta

from setbuilder.core.time import utcnow
from setbuilder.schemas.oauth import Token

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_MARGIN_SECONDS = 300.0

TokenFetcher = Callable[[], Awaitable[Token]]


async def _expire_later(cache_ref: "weakref.ref[TokenCache]", token: Token, delay: float) -> None:
    """Drop ``token`` from the cache after ``delay`` seconds.

    Holds only a weak reference so a discarded cache is never kept alive or
    acted upon.
    """
    await asyncio.sleep(delay)
    cache = cache_ref()
    if cache is not None:
        cache._expire(token)


class TokenCache:
    """Holds the current token, the in-flight acquisition and the expiry timer."""

    def __init__(self, expiry_margin_seconds: float = DEFAULT_EXPIRY_MARGIN_SECONDS) -> None:
        self._margin = timedelta(seconds=max(0.0, expiry_margin_seconds))
        self._token: Token | None = None
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Task[Token] | None = None
        self._expiry_task: asyncio.Task[None] | None = None
        # Cancels the pending timer if the cache is discarded without aclose()
        self._expiry_finalizer: weakref.finalize | None = None
        self._closed = False

    @property
    def current(self) -> Token | None:
        """The cached token, or None if absent or inside the expiry margin."""
        token = self._token
        if token is not None and token.is_usable(utcnow(), self._margin):
            return token
        return None

    @property
    def is_acquiring(self) -> bool:
        return self._inflight is not None

    async def get_or_fetch(self, fetch: TokenFetcher) -> Token:
        """Return the cached token, or join/start the single acquisition.

        Cancelling one caller does not cancel the shared acquisition other
        callers are waiting on. A failed acquisition is not remembered; the
        next call starts a new one.
        """
        async with self._lock:
            if self._closed:
                raise RuntimeError("TokenCache is closed")
            token = self.current
            if token is not None:
                return token
            if self._inflight is None:
                self._inflight = asyncio.create_task(self._acquire(fetch))
                self._inflight.add_done_callback(self._acquisition_done)
            task = self._inflight
        return await asyncio.shield(task)

    async def _acquire(self, fetch: TokenFetcher) -> Token:
        token = await fetch()
        self.store(token)
        return token

    def _acquisition_done(self, task: asyncio.Task[Token]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Retrieve the exception so an acquisition nobody awaits anymore
        # (all callers cancelled) does not warn at garbage collection.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Token acquisition failed: %s", type(task.exception()).__name__)

    def store(self, token: Token) -> None:
        """Replace the cached token and reschedule proactive expiry.

        Must be called from a running event loop.
        """
        self._cancel_expiry()
        self._token = token
        if self._closed:
            return
        delay = (token.expires_at - self._margin - utcnow()).total_seconds()
        self._expiry_task = asyncio.get_running_loop().create_task(
            _expire_later(weakref.ref(self), token, max(0.0, delay))
        )
        self._expiry_finalizer = weakref.finalize(self, self._expiry_task.cancel)
        logger.debug("Token cached, proactive expiry in %.0fs", max(0.0, delay))

    def invalidate(self, token: Token | None = None) -> bool:
        """Drop the cached token so the next caller re-acquires one.

        With ``token``, only drops it if it is still the cached one; a stale
        rejection must not evict a newer token. Returns True if a token was
        dropped.
        """
        if self._token is None:
            return False
        if token is not None and self._token != token:
            return False
        self._token = None
        self._cancel_expiry()
        logger.info("Cached token invalidated")
        return True

    def _expire(self, token: Token) -> None:
        if self._token is not None and self._token == token:
            self._token = None
            self._expiry_task = None
            self._detach_finalizer()
            logger.info("Cached token expired, next request will re-acquire")

    def _detach_finalizer(self) -> None:
        if self._expiry_finalizer is not None:
            self._expiry_finalizer.detach()
            self._expiry_finalizer = None

    def _cancel_expiry(self) -> None:
        task = self._expiry_task
        self._expiry_task = None
        self._detach_finalizer()
        if task is not None and not task.done():
            task.cancel()

    async def aclose(self) -> None:
        """Cancel the expiry timer and any in-flight acquisition."""
        self._closed = True
        self._token = None
        pending = [t for t in (self._expiry_task, self._inflight) if t is not None and not t.done()]
        self._cancel_expiry()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight = None
