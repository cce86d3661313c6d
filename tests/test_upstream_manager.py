"""Unit tests for the upstream manager module."""
import pytest
from dataclasses import fields
from doh_race_proxy.upstream_manager import UpstreamServer, UpstreamManager


class TestUpstreamServer:
    """Tests for UpstreamServer class."""

    def test_server_initialization(self):
        """Test that a server is initialized with correct defaults."""
        server = UpstreamServer(url="https://1.1.1.1/dns-query")

        assert server.url == "https://1.1.1.1/dns-query"
        assert server.total_attempts == 0
        assert server.failures == 0
        assert len(server.response_times) == 0
        assert server.avg_response_time == 0.0
        assert server.failure_rate == 0.0

    def test_record_success(self):
        server = UpstreamServer(url="https://1.1.1.1/dns-query")

        server.record_success(0.150)

        assert server.successes == 1
        assert server.total_attempts == 1
        assert server.response_times == [0.150]
        assert server.avg_response_time == pytest.approx(0.150)

    def test_record_failure(self):
        server = UpstreamServer(url="https://1.1.1.1/dns-query")

        server.record_success(0.1)
        server.record_failure()

        assert server.failures == 1
        assert server.failure_rate == pytest.approx(50.0)

    def test_cancellations_excluded_from_failure_rate(self):
        server = UpstreamServer(url="https://1.1.1.1/dns-query")

        server.record_cancelled()
        server.record_cancelled()
        server.record_failure()

        assert server.cancellations == 2
        assert server.total_attempts == 3
        assert server.failure_rate == 100.0

    def test_response_times_bounded(self):
        server = UpstreamServer(url="https://1.1.1.1/dns-query")

        for i in range(150):
            server.record_success(float(i))

        assert len(server.response_times) == 100
        assert server.response_times[0] == 50.0

    def test_server_fields(self):
        """Test that a server tracks only attempt outcomes and timings."""
        names = {f.name for f in fields(UpstreamServer)}

        assert names == {"url", "successes", "failures", "cancellations", "response_times"}


class TestUpstreamManager:
    """Tests for UpstreamManager class."""

    def test_initialization_preserves_order(self):
        urls = ["https://1.1.1.1/dns-query", "https://8.8.8.8/dns-query", "https://9.9.9.9/dns-query"]

        manager = UpstreamManager(urls)

        assert manager.urls == tuple(urls)
        assert isinstance(manager.servers, tuple)

    def test_initialization_empty_list_raises(self):
        with pytest.raises(ValueError, match="At least one upstream URL must be provided"):
            UpstreamManager([])

    def test_get_stats(self):
        manager = UpstreamManager(["https://1.1.1.1/dns-query", "https://8.8.8.8/dns-query"])
        manager.servers[0].record_success(0.1)
        manager.servers[1].record_failure()
        manager.servers[1].record_cancelled()

        stats = manager.get_stats()

        assert stats[0] == {
            'url': "https://1.1.1.1/dns-query",
            'successes': 1,
            'failures': 0,
            'cancellations': 0,
            'failure_rate': "0.0%",
            'avg_response_time': "0.100s",
        }
        assert stats[1]['failures'] == 1
        assert stats[1]['cancellations'] == 1
        assert stats[1]['failure_rate'] == "100.0%"

    def test_log_stats(self, caplog):
        manager = UpstreamManager(["https://1.1.1.1/dns-query"])
        manager.servers[0].record_success(0.2)

        with caplog.at_level("INFO", logger="doh-race"):
            manager.log_stats()

        assert "Upstream Race Statistics" in caplog.text
        assert "https://1.1.1.1/dns-query - Successes: 1" in caplog.text
