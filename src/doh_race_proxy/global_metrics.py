"""Global metrics tracking for the DoH proxy."""
import time
from dataclasses import dataclass, field
from typing import List
from .config import logger


@dataclass
class GlobalMetrics:
    """Tracks global metrics for the DoH proxy."""

    total_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    uncached_queries: int = 0
    race_failures: int = 0
    response_times: List[float] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    last_log_time: float = field(default_factory=time.time)

    def record_cache_hit(self):
        """Record a GET served from the cache."""
        self.total_queries += 1
        self.cache_hits += 1

    def record_cache_miss(self, response_time: float):
        """Record a GET answered by a race, with the race duration."""
        self.total_queries += 1
        self.cache_misses += 1
        self._record_time(response_time)

    def record_uncached(self, response_time: float):
        """Record a POST answered by a race."""
        self.total_queries += 1
        self.uncached_queries += 1
        self._record_time(response_time)

    def record_race_failure(self):
        """Record a query for which every upstream failed."""
        self.total_queries += 1
        self.race_failures += 1

    def _record_time(self, response_time: float):
        self.response_times.append(response_time)
        # Keep list bounded to last 1000 entries
        if len(self.response_times) > 1000:
            self.response_times = self.response_times[-1000:]

    def get_queries_per_minute(self) -> float:
        """Calculate queries per minute since last log."""
        elapsed_minutes = (time.time() - self.last_log_time) / 60.0
        if elapsed_minutes == 0:
            return 0.0
        return self.total_queries / elapsed_minutes

    def get_cache_hit_rate(self) -> float:
        """Cache hits as a percentage of cacheable (GET) queries."""
        cacheable = self.cache_hits + self.cache_misses
        if cacheable == 0:
            return 0.0
        return (self.cache_hits / cacheable) * 100

    def get_mean_response_time(self) -> float:
        """Get mean response time."""
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    def log_stats(self):
        """Log global statistics and reset the interval counters."""
        qpm = self.get_queries_per_minute()
        hit_rate = self.get_cache_hit_rate()

        logger.info("=== Global Metrics ===")

        cache_stats = f"Cache: {self.cache_hits} hits / {self.cache_misses} misses ({hit_rate:.1f}% hit rate)"
        other_stats = f", POST: {self.uncached_queries}, Failed: {self.race_failures}"

        if self.response_times:
            response_stats = (
                f", Race times: min={min(self.response_times):.3f}s, "
                f"mean={self.get_mean_response_time():.3f}s, "
                f"max={max(self.response_times):.3f}s"
            )
        else:
            response_stats = ""

        logger.info(f"Queries/min: {qpm:.1f}, {cache_stats}{other_stats}{response_stats}")

        # Reset counters for next interval
        self.total_queries = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.uncached_queries = 0
        self.race_failures = 0
        self.response_times = []
        self.last_log_time = time.time()
