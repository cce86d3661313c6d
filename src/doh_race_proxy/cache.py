"""In-memory response cache with a fixed freshness window."""
import time
from typing import Hashable, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit
from .config import logger, CACHE_ENABLED, CACHE_TTL, CACHE_MAX_ENTRIES
from .errors import CacheWriteFailed
from .models import UpstreamResponse


def cache_key(method: str, url: str) -> Tuple[Hashable, ...]:
    """
    Normalize a request into a cache key.

    Scheme and host are lower-cased and query parameters sorted, so
    ``?dns=AAA&ct=x`` and ``?ct=x&dns=AAA`` share an entry.
    """
    parts = urlsplit(url)
    params = tuple(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return (method.upper(), parts.scheme.lower(), parts.netloc.lower(), parts.path, params)


class ResponseCache:
    """In-Memory Cache of full response snapshots."""

    def __init__(self, ttl: int = CACHE_TTL, max_entries: int = CACHE_MAX_ENTRIES):
        self.ttl = ttl
        self.max_entries = max_entries
        self._cache = {}

    def __len__(self):
        return len(self._cache)

    def get(self, key) -> Optional[UpstreamResponse]:
        """Retrieve a cached response if still fresh."""
        if not CACHE_ENABLED:
            return None
        entry = self._cache.get(key)
        if entry:
            response, expiry = entry
            if time.time() < expiry:
                return response
            else:
                del self._cache[key]  # Lazy cleanup
        return None

    def set(self, key, response: UpstreamResponse):
        """
        Cache a response for the freshness window.

        Raises:
            CacheWriteFailed: If the cache is full of fresh entries
        """
        if not CACHE_ENABLED:
            return
        if key not in self._cache and len(self._cache) >= self.max_entries:
            self.prune()
            if len(self._cache) >= self.max_entries:
                raise CacheWriteFailed(f"Cache full ({self.max_entries} entries)")
        self._cache[key] = (response, time.time() + self.ttl)

    def prune(self):
        """Cleanup expired keys periodically."""
        now = time.time()
        keys_to_remove = [k for k, v in self._cache.items() if now > v[1]]
        for k in keys_to_remove:
            del self._cache[k]
        if keys_to_remove:
            logger.debug(f"Pruned {len(keys_to_remove)} expired cache entries")
