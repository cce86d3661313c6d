"""Process runtime: outbound client, housekeeping tasks and the uvicorn server."""
import asyncio
from contextlib import asynccontextmanager
import httpx
import uvicorn
from fastapi import FastAPI
from .app import create_app
from .bootstrap import build_transport
from .config import (
    logger, LISTEN_HOST, LISTEN_PORT, TLS_CERTFILE, TLS_KEYFILE, LOG_LEVEL,
    DOH_UPSTREAMS, BOOTSTRAP_DNS, MAX_CONNECTIONS, RACE_TIMEOUT, STATS_INTERVAL,
)
from .upstream_manager import UpstreamManager


async def stats_task(upstream_manager, global_metrics, interval: int = STATS_INTERVAL):
    """
    Periodically logs statistics about upstream servers and global metrics.

    Args:
        upstream_manager: Manager for upstream servers
        global_metrics: Global metrics tracker
        interval: Seconds between log blocks
    """
    while True:
        await asyncio.sleep(interval)
        upstream_manager.log_stats()
        global_metrics.log_stats()


async def cleaner_task(cache):
    """
    Runs periodically to clean up the cache.

    Args:
        cache: Response cache instance
    """
    while True:
        await asyncio.sleep(60)
        cache.prune()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared upstream client and run housekeeping for the app's lifetime."""
    transport = build_transport(BOOTSTRAP_DNS, MAX_CONNECTIONS)
    async with httpx.AsyncClient(transport=transport, timeout=RACE_TIMEOUT) as client:
        app.state.client = client
        tasks = [
            asyncio.create_task(cleaner_task(app.state.cache)),
            asyncio.create_task(stats_task(app.state.upstream_manager, app.state.metrics)),
        ]
        try:
            yield
        finally:
            logger.info("Cancelling background tasks...")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            app.state.client = None


def build_config(app: FastAPI) -> uvicorn.Config:
    """uvicorn settings; TLS is enabled only when both certificate and key are set."""
    tls = {}
    if TLS_CERTFILE and TLS_KEYFILE:
        tls = {"ssl_certfile": TLS_CERTFILE, "ssl_keyfile": TLS_KEYFILE}
    elif TLS_CERTFILE or TLS_KEYFILE:
        logger.warning("Both TLS_CERTFILE and TLS_KEYFILE are required for HTTPS. Serving plain HTTP.")
    return uvicorn.Config(
        app,
        host=LISTEN_HOST,
        port=LISTEN_PORT,
        log_level=LOG_LEVEL.lower(),
        **tls,
    )


async def main():
    """Main server entry point."""
    logger.info(f"Initializing with upstream URLs: {list(DOH_UPSTREAMS)}")

    app = create_app(upstream_manager=UpstreamManager(DOH_UPSTREAMS), lifespan=lifespan)
    config = build_config(app)
    scheme = "https" if config.ssl_certfile else "http"
    logger.info(f"DoH proxy listening on {scheme}://{LISTEN_HOST}:{LISTEN_PORT}")

    # uvicorn installs its own SIGINT/SIGTERM handlers and runs the lifespan shutdown
    server = uvicorn.Server(config)
    await server.serve()
