"""DoH upstream racing: first success wins, losers are cancelled."""
import asyncio
import time
from typing import Dict
import httpx
from .config import logger, RACE_TIMEOUT, DNS_MESSAGE_TYPE
from .errors import AllUpstreamsFailed, UpstreamAttemptFailed
from .models import DoHQuery, UpstreamResponse
from .upstream_manager import UpstreamManager, UpstreamServer

# Not forwarded: httpx has already decoded and de-chunked the body
SKIPPED_RESPONSE_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "transfer-encoding",
    "content-length",
    "content-encoding",
})


def build_headers(query: DoHQuery) -> Dict[str, str]:
    """Outbound headers for one attempt."""
    headers = {
        "Content-Type": DNS_MESSAGE_TYPE,
        "Accept": DNS_MESSAGE_TYPE,
    }
    headers.update(query.forward_headers)
    return headers


async def attempt_upstream(
    client: httpx.AsyncClient,
    server: UpstreamServer,
    query: DoHQuery,
    timeout: float = RACE_TIMEOUT,
) -> UpstreamResponse:
    """
    Send the query to one upstream.

    Args:
        client: Shared HTTP client
        server: Upstream to query
        query: The inbound query
        timeout: Per-request timeout; the race deadline normally cancels first

    Returns:
        The upstream's response if its status is 2xx

    Raises:
        UpstreamAttemptFailed: On transport errors or non-success status
    """
    start_time = time.time()
    try:
        resp = await client.request(
            query.method,
            server.url + query.url_suffix,
            content=query.content,
            headers=build_headers(query),
            timeout=timeout,
        )
    except asyncio.CancelledError:
        server.record_cancelled()
        raise
    except httpx.HTTPError as e:
        server.record_failure()
        raise UpstreamAttemptFailed(server.url, f"{type(e).__name__}: {e}") from e

    if not resp.is_success:
        server.record_failure()
        raise UpstreamAttemptFailed(server.url, f"HTTP {resp.status_code}")

    server.record_success(time.time() - start_time)
    headers = tuple(
        (k, v) for k, v in resp.headers.items()
        if k.lower() not in SKIPPED_RESPONSE_HEADERS
    )
    return UpstreamResponse(
        status_code=resp.status_code,
        headers=headers,
        content=resp.content,
        upstream=server.url,
    )


async def race_doh(
    client: httpx.AsyncClient,
    query: DoHQuery,
    upstream_manager: UpstreamManager,
    timeout: float = RACE_TIMEOUT,
) -> UpstreamResponse:
    """
    Race the query across every configured upstream.

    All attempts start together. The first attempt observed to succeed wins
    and every other attempt is cancelled; failed attempts are dropped
    silently. If several attempts finish in the same wake-up, whichever is
    iterated first wins; no upstream is preferred.

    All attempt tasks have finished (or been cancelled and awaited) by the
    time this returns or raises.

    Args:
        client: Shared HTTP client
        query: The inbound query
        upstream_manager: The upstream set to race
        timeout: Deadline for the whole race, in seconds

    Returns:
        The winning upstream's response

    Raises:
        AllUpstreamsFailed: If every attempt failed or the deadline passed
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    # Task handle is the attempt's cancellation token
    attempts = {
        asyncio.create_task(attempt_upstream(client, server, query, timeout)): server
        for server in upstream_manager.servers
    }
    pending = set(attempts)

    try:
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                exc = task.exception()
                if exc is None:
                    winner = task.result()
                    logger.debug(f"[RACE] {winner.upstream} won ({winner.status_code})")
                    return winner
                logger.debug(f"[RACE] Discarded attempt: {exc}")

        if pending:
            logger.warning(f"[RACE] No upstream answered within {timeout:.2f}s")
        else:
            logger.warning(f"[RACE] All {len(attempts)} upstreams failed")
        raise AllUpstreamsFailed("All upstreams failed")

    finally:
        for task in attempts:
            task.cancel()
        await asyncio.gather(*attempts, return_exceptions=True)
