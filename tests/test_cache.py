"""Unit tests for the response cache module."""
import time
import pytest
from unittest.mock import patch
from doh_race_proxy.cache import ResponseCache, cache_key
from doh_race_proxy.errors import CacheWriteFailed
from doh_race_proxy.models import UpstreamResponse


def make_response(body=b"test_dns_response"):
    return UpstreamResponse(
        status_code=200,
        headers=(("content-type", "application/dns-message"),),
        content=body,
        upstream="https://1.1.1.1/dns-query",
    )


KEY = cache_key("GET", "https://proxy.example/dns-query?dns=AAAB")


class TestCacheKey:
    """Tests for request normalization."""

    def test_query_parameter_order_ignored(self):
        assert cache_key("GET", "https://p.example/dns-query?dns=AA&ct=x") == \
            cache_key("GET", "https://p.example/dns-query?ct=x&dns=AA")

    def test_host_and_scheme_case_ignored(self):
        assert cache_key("get", "HTTPS://P.Example/dns-query?dns=AA") == \
            cache_key("GET", "https://p.example/dns-query?dns=AA")

    def test_different_queries_differ(self):
        assert cache_key("GET", "https://p.example/dns-query?dns=AA") != \
            cache_key("GET", "https://p.example/dns-query?dns=AB")

    def test_paths_differ(self):
        assert cache_key("GET", "https://p.example/?dns=AA") != \
            cache_key("GET", "https://p.example/dns-query?dns=AA")


class TestResponseCache:
    """Tests for the ResponseCache class."""

    def test_cache_initialization(self):
        cache = ResponseCache()
        assert cache._cache == {}
        assert cache.ttl == 300

    @patch('doh_race_proxy.cache.CACHE_ENABLED', True)
    def test_set_and_get_valid_entry(self):
        cache = ResponseCache()
        response = make_response()

        cache.set(KEY, response)

        assert cache.get(KEY) is response

    @patch('doh_race_proxy.cache.CACHE_ENABLED', True)
    def test_entry_expires_after_ttl(self):
        cache = ResponseCache(ttl=300)
        cache.set(KEY, make_response())

        expiry = cache._cache[KEY][1]
        assert time.time() + 299 < expiry <= time.time() + 300

        with patch('doh_race_proxy.cache.time.time', return_value=expiry + 1):
            assert cache.get(KEY) is None
        assert KEY not in cache._cache  # Removed lazily

    @patch('doh_race_proxy.cache.CACHE_ENABLED', True)
    def test_get_nonexistent_entry(self):
        cache = ResponseCache()
        assert cache.get(cache_key("GET", "https://p.example/?dns=none")) is None

    @patch('doh_race_proxy.cache.CACHE_ENABLED', False)
    def test_cache_disabled_get(self):
        cache = ResponseCache()
        cache._cache[KEY] = (make_response(), time.time() + 300)

        assert cache.get(KEY) is None

    @patch('doh_race_proxy.cache.CACHE_ENABLED', False)
    def test_cache_disabled_set(self):
        cache = ResponseCache()
        cache.set(KEY, make_response())

        assert cache._cache == {}

    @patch('doh_race_proxy.cache.CACHE_ENABLED', True)
    def test_full_cache_prunes_expired_entries(self):
        cache = ResponseCache(max_entries=1)
        cache._cache["stale"] = (make_response(), time.time() - 1)

        cache.set(KEY, make_response())

        assert "stale" not in cache._cache
        assert KEY in cache._cache

    @patch('doh_race_proxy.cache.CACHE_ENABLED', True)
    def test_full_cache_rejects_write(self):
        cache = ResponseCache(max_entries=1)
        cache._cache["fresh"] = (make_response(), time.time() + 300)

        with pytest.raises(CacheWriteFailed):
            cache.set(KEY, make_response())

    @patch('doh_race_proxy.cache.CACHE_ENABLED', True)
    def test_full_cache_allows_overwrite(self):
        cache = ResponseCache(max_entries=1)
        cache.set(KEY, make_response(b"old"))

        cache.set(KEY, make_response(b"new"))

        assert cache.get(KEY).content == b"new"

    def test_prune_expired_entries(self):
        cache = ResponseCache()
        cache._cache["expired1"] = (make_response(), time.time() - 1)
        cache._cache["expired2"] = (make_response(), time.time() - 1)
        cache._cache["valid"] = (make_response(), time.time() + 300)

        cache.prune()

        assert "expired1" not in cache._cache
        assert "expired2" not in cache._cache
        assert "valid" in cache._cache
        assert len(cache) == 1
