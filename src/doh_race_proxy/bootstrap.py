"""Resolve upstream hostnames through a bootstrap DNS server."""
import ipaddress
import socket
import time
from typing import Dict, Optional, Tuple
import anyio.to_thread
import httpcore
import httpx
from dnslib import DNSRecord, QTYPE
from .config import logger, BOOTSTRAP_DNS, MAX_CONNECTIONS

# Bounds on how long a bootstrap answer is reused
MIN_TTL = 60
MAX_TTL = 3600
FAILURE_TTL = 30


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


def resolve_hostname_to_ip(hostname: str, bootstrap_dns: str = BOOTSTRAP_DNS) -> Optional[Tuple[str, int]]:
    """
    Resolve a hostname to an IPv4 address by querying the bootstrap DNS server over UDP.

    Blocking; run it off the event loop.

    Args:
        hostname: The hostname to resolve (e.g., 'cloudflare-dns.com')
        bootstrap_dns: The DNS server to query

    Returns:
        ``(ip, ttl)`` of the first A record, or None if resolution failed
    """
    logger.debug(f"Resolving '{hostname}' via {bootstrap_dns}...")

    q = DNSRecord.question(hostname, "A")

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(5.0)
            sock.sendto(q.pack(), (bootstrap_dns, 53))
            response_data, _ = sock.recvfrom(4096)

        response = DNSRecord.parse(response_data)
        if response.header.id != q.header.id:
            logger.warning(f"Bootstrap answer for {hostname} has mismatched ID, ignoring.")
            return None
        for rr in response.rr:
            if rr.rtype == QTYPE.A:
                ip = str(rr.rdata)
                logger.debug(f"Resolved {hostname} -> {ip} (TTL {rr.ttl})")
                return ip, rr.ttl

        logger.warning(f"Could not resolve {hostname} via bootstrap.")
        return None

    except Exception as e:
        logger.error(f"Bootstrap resolution failed for {hostname}: {e}")
        return None


class BootstrapNetworkBackend(httpcore.AsyncNetworkBackend):
    """
    Network backend that connects to bootstrap-resolved addresses.

    The TCP connection goes to the resolved IP while TLS still uses the
    original hostname for SNI, since DoH certificates rarely cover IPs.
    """

    def __init__(self, bootstrap_dns: str = BOOTSTRAP_DNS):
        self.bootstrap_dns = bootstrap_dns
        self._dns_cache: Dict[str, Tuple[str, float]] = {}  # hostname -> (address, expiry)
        self._default_backend = httpcore.AnyIOBackend()

    async def lookup(self, host: str) -> str:
        """Address to connect to for ``host``; the host itself if resolution fails."""
        if is_ip_address(host):
            return host

        cached = self._dns_cache.get(host)
        if cached and time.time() < cached[1]:
            return cached[0]

        result = await anyio.to_thread.run_sync(resolve_hostname_to_ip, host, self.bootstrap_dns)
        if result:
            address, ttl = result
            ttl = max(MIN_TTL, min(ttl, MAX_TTL))
            logger.info(f"Cached DNS: {host} -> {address}")
        else:
            # Fall back to the system resolver for a while
            address, ttl = host, FAILURE_TTL
        self._dns_cache[host] = (address, time.time() + ttl)
        return address

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options=None,
    ):
        address = await self.lookup(host)
        stream = await self._default_backend.connect_tcp(
            host=address,
            port=port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )
        return SNIPreservingStream(stream, host)

    async def connect_unix_socket(self, path: str, timeout: Optional[float] = None, socket_options=None):
        return await self._default_backend.connect_unix_socket(
            path=path,
            timeout=timeout,
            socket_options=socket_options,
        )

    async def sleep(self, seconds: float):
        return await self._default_backend.sleep(seconds)


class SNIPreservingStream(httpcore.AsyncNetworkStream):
    """Stream wrapper that supplies the original hostname when TLS starts."""

    def __init__(self, stream: httpcore.AsyncNetworkStream, original_hostname: str):
        self._stream = stream
        self._original_hostname = original_hostname

    async def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        return await self._stream.read(max_bytes, timeout)

    async def write(self, buffer: bytes, timeout: Optional[float] = None) -> None:
        return await self._stream.write(buffer, timeout)

    async def aclose(self) -> None:
        return await self._stream.aclose()

    async def start_tls(self, ssl_context, server_hostname: Optional[str] = None, timeout: Optional[float] = None):
        if server_hostname is None:
            server_hostname = self._original_hostname
        new_stream = await self._stream.start_tls(ssl_context, server_hostname=server_hostname, timeout=timeout)
        return SNIPreservingStream(new_stream, self._original_hostname)

    def get_extra_info(self, info: str):
        return self._stream.get_extra_info(info)


class BootstrapTransport(httpx.AsyncHTTPTransport):
    """
    httpx transport whose connection pool resolves hosts via bootstrap DNS.

    Request handling and httpcore-to-httpx error mapping are inherited;
    only the pool's network backend differs.
    """

    def __init__(
        self,
        bootstrap_dns: str = BOOTSTRAP_DNS,
        http2: bool = True,
        limits: Optional[httpx.Limits] = None,
        verify=True,
    ):
        if limits is None:
            limits = httpx.Limits(max_connections=MAX_CONNECTIONS, max_keepalive_connections=MAX_CONNECTIONS)
        # Parent __init__ skipped: its pool would sit on the default backend.
        # The inherited request and close methods only read ``_pool``.
        self.network_backend = BootstrapNetworkBackend(bootstrap_dns=bootstrap_dns)
        self._pool = httpcore.AsyncConnectionPool(
            ssl_context=httpx.create_ssl_context(verify=verify),
            max_connections=limits.max_connections,
            max_keepalive_connections=limits.max_keepalive_connections,
            keepalive_expiry=limits.keepalive_expiry,
            http1=True,
            http2=http2,
            network_backend=self.network_backend,
        )


def build_transport(
    bootstrap_dns: str = BOOTSTRAP_DNS,
    max_connections: int = MAX_CONNECTIONS,
) -> httpx.AsyncHTTPTransport:
    """Outbound transport: bootstrap-resolving if a bootstrap server is configured."""
    limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections)
    if not bootstrap_dns:
        logger.info("No bootstrap DNS configured, using the system resolver")
        return httpx.AsyncHTTPTransport(http2=True, limits=limits)
    logger.info(f"Resolving upstream hostnames via bootstrap DNS {bootstrap_dns}")
    return BootstrapTransport(bootstrap_dns=bootstrap_dns, http2=True, limits=limits)
