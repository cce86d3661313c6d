"""Upstream DoH resolver set with per-server race statistics."""
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
from .config import logger


@dataclass
class UpstreamServer:
    """A DoH upstream and what happened to its race attempts."""
    url: str
    successes: int = 0
    failures: int = 0
    cancellations: int = 0
    response_times: List[float] = field(default_factory=list)

    @property
    def total_attempts(self) -> int:
        return self.successes + self.failures + self.cancellations

    @property
    def avg_response_time(self) -> float:
        """Average response time of successful attempts."""
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    @property
    def failure_rate(self) -> float:
        """Failed attempts as a percentage of attempts that finished."""
        finished = self.successes + self.failures
        if finished == 0:
            return 0.0
        return (self.failures / finished) * 100

    def record_success(self, response_time: float):
        """Record an attempt that returned a success status."""
        self.successes += 1
        self.response_times.append(response_time)
        # Keep list bounded
        if len(self.response_times) > 100:
            self.response_times = self.response_times[-100:]

    def record_failure(self):
        """Record a transport error or non-success status."""
        self.failures += 1

    def record_cancelled(self):
        """Record an attempt cancelled because another upstream won or time ran out."""
        self.cancellations += 1


class UpstreamManager:
    """
    Holds the configured upstream set.

    The set is fixed at construction and every race queries all of it;
    the statistics are only reported, never used to pick servers.
    """

    def __init__(self, upstream_urls: Sequence[str]):
        """
        Initialize the upstream manager.

        Args:
            upstream_urls: DoH server URLs in configured order
        """
        if not upstream_urls:
            raise ValueError("At least one upstream URL must be provided")

        self.servers: Tuple[UpstreamServer, ...] = tuple(UpstreamServer(url=url) for url in upstream_urls)
        logger.info(f"Initialized upstream set with {len(self.servers)} servers: {list(upstream_urls)}")

    @property
    def urls(self) -> Tuple[str, ...]:
        return tuple(server.url for server in self.servers)

    def get_stats(self) -> List[dict]:
        """
        Get statistics for all upstream servers.

        Returns:
            List of dictionaries containing server statistics
        """
        stats = []
        for server in self.servers:
            stats.append({
                'url': server.url,
                'successes': server.successes,
                'failures': server.failures,
                'cancellations': server.cancellations,
                'failure_rate': f"{server.failure_rate:.1f}%",
                'avg_response_time': f"{server.avg_response_time:.3f}s",
            })
        return stats

    def log_stats(self):
        """Log statistics for all upstream servers."""
        logger.info("=== Upstream Race Statistics ===")
        for stat in self.get_stats():
            logger.info(
                f"{stat['url']} - "
                f"Successes: {stat['successes']}, "
                f"Failures: {stat['failures']} ({stat['failure_rate']}), "
                f"Cancelled: {stat['cancellations']}, "
                f"Avg Response Time: {stat['avg_response_time']}"
            )
