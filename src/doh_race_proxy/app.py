"""FastAPI front-end serving RFC 8484 DoH on ``/`` and the query path."""
import time
from typing import Optional, Tuple
import httpx
from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.datastructures import Headers as RequestHeaders
from .cache import ResponseCache, cache_key
from .classifier import ALLOWED_METHODS, classify
from .config import logger, QUERY_PATH, RACE_TIMEOUT, FORWARD_CLIENT_IP, DOH_UPSTREAMS
from .errors import AllUpstreamsFailed, MethodNotAllowed, RouteNotFound
from .gateway import ResponseCacheGateway
from .global_metrics import GlobalMetrics
from .models import DoHQuery, Headers, QueryMode, UpstreamResponse
from .resolver import race_doh
from .upstream_manager import UpstreamManager

# Routed to the classifier, which rejects everything but GET and POST
ROUTED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

# Propagated on POST for EDNS Client Subnet-aware upstreams
CLIENT_IP_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For")


def client_ip_headers(headers: RequestHeaders) -> Headers:
    """Pick the client IP headers present on an inbound request."""
    return tuple(
        (name, headers[name]) for name in CLIENT_IP_HEADERS if name in headers
    )


def to_response(upstream: UpstreamResponse) -> Response:
    """Build the outgoing response from a snapshot, byte-for-byte."""
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=dict(upstream.headers),
    )


def create_app(
    upstream_manager: Optional[UpstreamManager] = None,
    cache: Optional[ResponseCache] = None,
    metrics: Optional[GlobalMetrics] = None,
    client: Optional[httpx.AsyncClient] = None,
    lifespan=None,
    race_timeout: float = RACE_TIMEOUT,
    query_path: str = QUERY_PATH,
    forward_client_ip: bool = FORWARD_CLIENT_IP,
) -> FastAPI:
    """
    Create the DoH proxy application.

    Args:
        upstream_manager: Upstream set; built from DOH_UPSTREAMS if omitted
        cache: GET response cache
        metrics: Global metrics tracker
        client: Outbound HTTP client; otherwise ``lifespan`` must set
            ``app.state.client`` before requests are served
        lifespan: Optional lifespan context manager
        race_timeout: Deadline for each race in seconds
        query_path: Accepted query path besides ``/``
        forward_client_ip: Propagate client IP headers on POST

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="doh-race-proxy",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.state.upstream_manager = upstream_manager or UpstreamManager(DOH_UPSTREAMS)
    app.state.cache = cache if cache is not None else ResponseCache()
    app.state.metrics = metrics or GlobalMetrics()
    app.state.gateway = ResponseCacheGateway(app.state.cache, app.state.metrics)
    app.state.client = client

    @app.exception_handler(RouteNotFound)
    async def route_not_found(request: Request, exc: RouteNotFound) -> Response:
        return PlainTextResponse("Not Found", status_code=exc.status_code)

    @app.exception_handler(MethodNotAllowed)
    async def method_not_allowed(request: Request, exc: MethodNotAllowed) -> Response:
        return PlainTextResponse(
            "Method Not Allowed",
            status_code=exc.status_code,
            headers={"Allow": ", ".join(ALLOWED_METHODS)},
        )

    @app.exception_handler(AllUpstreamsFailed)
    async def all_upstreams_failed(request: Request, exc: AllUpstreamsFailed) -> Response:
        request.app.state.metrics.record_race_failure()
        return PlainTextResponse("All upstreams failed", status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def unrouted_method(request: Request, exc: StarletteHTTPException) -> Response:
        # Verbs outside ROUTED_METHODS are refused by the router; classify them like the rest
        if exc.status_code != 405:
            return await http_exception_handler(request, exc)
        try:
            classify(request.method, request.url.path, query_path)
        except RouteNotFound as not_found:
            return await route_not_found(request, not_found)
        except MethodNotAllowed as not_allowed:
            return await method_not_allowed(request, not_allowed)
        return await http_exception_handler(request, exc)

    @app.api_route("/{path:path}", methods=ROUTED_METHODS, include_in_schema=False)
    async def doh_query(request: Request, background_tasks: BackgroundTasks) -> Response:
        """
        Handle GET and POST DoH queries.

        GET goes through the cache gateway; POST always races.
        """
        mode = classify(request.method, request.url.path, query_path)
        state = request.app.state

        if mode is QueryMode.GET:
            query = DoHQuery(mode, query_string=request.url.query)
            key = cache_key(mode.value, str(request.url))
            upstream = await state.gateway.resolve_cached(
                key,
                lambda: race_doh(state.client, query, state.upstream_manager, race_timeout),
                background_tasks,
            )
            return to_response(upstream)

        body = await request.body()
        forward_headers: Tuple = ()
        if forward_client_ip:
            forward_headers = client_ip_headers(request.headers)
        query = DoHQuery(mode, body=body, forward_headers=forward_headers)

        start_time = time.time()
        upstream = await race_doh(state.client, query, state.upstream_manager, race_timeout)
        state.metrics.record_uncached(time.time() - start_time)
        logger.debug(f"[UPSTREAM] POST {len(body)} bytes -> {upstream.upstream}")
        return to_response(upstream)

    return app
