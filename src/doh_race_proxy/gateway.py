"""Cache in front of the race for GET queries."""
import time
from typing import Awaitable, Callable
from fastapi import BackgroundTasks
from .cache import ResponseCache
from .config import logger, CACHE_TTL
from .global_metrics import GlobalMetrics
from .models import UpstreamResponse


class ResponseCacheGateway:
    """
    Serves repeat GET queries from the cache and fills it after a race.

    Writes happen in a background task so they never delay the client or
    fail its request.
    """

    def __init__(self, cache: ResponseCache, metrics: GlobalMetrics, ttl: int = CACHE_TTL):
        self.cache = cache
        self.metrics = metrics
        self.ttl = ttl

    async def resolve_cached(
        self,
        key,
        resolve: Callable[[], Awaitable[UpstreamResponse]],
        background: BackgroundTasks,
    ) -> UpstreamResponse:
        """
        Return the cached response for ``key`` or race for a fresh one.

        Args:
            key: Normalized request key
            resolve: Runs the race; not called on a cache hit
            background: Post-response task queue of the front-end

        Returns:
            The response to send to the client

        Raises:
            AllUpstreamsFailed: Propagated from ``resolve`` on a miss
        """
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[CACHE] HIT {cached.upstream}")
            self.metrics.record_cache_hit()
            return cached

        start_time = time.time()
        response = await resolve()
        self.metrics.record_cache_miss(time.time() - start_time)

        response = response.with_headers(
            cache_control=f"public, max-age={self.ttl}",
            access_control_allow_origin="*",
        )
        background.add_task(self.store, key, response)
        return response

    async def store(self, key, response: UpstreamResponse):
        """Write a response into the cache, logging instead of raising on failure."""
        try:
            self.cache.set(key, response)
        except Exception as e:
            logger.warning(f"[CACHE] Write failed: {e}")
