"""Configuration module for doh-race-proxy."""
import os
import logging
from typing import Tuple
from urllib.parse import urlparse

# --- Configuration ---
LISTEN_PORT = int(os.getenv('LISTEN_PORT', 8053))
LISTEN_HOST = os.getenv('LISTEN_HOST', '0.0.0.0')
TLS_CERTFILE = os.getenv('TLS_CERTFILE', '')
TLS_KEYFILE = os.getenv('TLS_KEYFILE', '')

DEFAULT_UPSTREAMS = (
    'https://cloudflare-dns.com/dns-query,'
    'https://dns.google/dns-query,'
    'https://dns.quad9.net/dns-query'
)

QUERY_PATH = os.getenv('QUERY_PATH', '/dns-query')
RACE_TIMEOUT = float(os.getenv('RACE_TIMEOUT', 2.0))
CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
CACHE_TTL = int(os.getenv('CACHE_TTL', 300))
CACHE_MAX_ENTRIES = int(os.getenv('CACHE_MAX_ENTRIES', 10000))
FORWARD_CLIENT_IP = os.getenv('FORWARD_CLIENT_IP', 'true').lower() == 'true'
BOOTSTRAP_DNS = os.getenv('BOOTSTRAP_DNS', '1.1.1.1').strip()
MAX_CONNECTIONS = int(os.getenv('MAX_CONNECTIONS', 100))
STATS_INTERVAL = int(os.getenv('STATS_INTERVAL', 300))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

DNS_MESSAGE_TYPE = "application/dns-message"


def parse_upstreams(value: str) -> Tuple[str, ...]:
    """
    Parse a comma-separated list of DoH upstream URLs.

    Args:
        value: Raw value, e.g. ``"https://1.1.1.1/dns-query,https://dns.google/dns-query"``

    Returns:
        Tuple of URLs in configured order

    Raises:
        ValueError: If an entry is not an http(s) URL with a host
    """
    urls = tuple(url.strip() for url in value.split(',') if url.strip())
    for url in urls:
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https') or not parsed.hostname:
            raise ValueError(f"Invalid DoH upstream URL: {url!r}")
    return urls


# DOH_UPSTREAM can be a single URL or comma-separated list of URLs
DOH_UPSTREAMS = parse_upstreams(os.getenv('DOH_UPSTREAM', DEFAULT_UPSTREAMS))

# --- Logging Setup ---
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger("doh-race")
