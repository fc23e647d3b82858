"""lm-proxy - FastAPI application.

A single catch-all route: buffer the inbound request, hand it to the
ProxyService, and turn the failures we can't recover from into plain-text
error responses. If the client hangs up while the upstream is still
thinking, the upstream call is cancelled.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.requests import ClientDisconnect

from .config import Config
from .errors import ClientGoneError, InboundReadError, ProxyError
from .proxy import ProxyService, create_client

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def create_app(config: Config, client: httpx.AsyncClient | None = None) -> FastAPI:
    """Build the proxy app.

    The lifespan owns the shared httpx client unless one is passed in, in
    which case the caller is responsible for closing it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_client = client is None
        http_client = create_client() if owned_client else client
        app.state.proxy = ProxyService(http_client, config)
        logger.info(
            f"Proxy configured: upstream={config.upstream_url} listen={config.listen_addr}"
        )
        yield
        if owned_client:
            await http_client.aclose()

    app = FastAPI(
        title="lm-proxy",
        description="A proxy server for forwarding HTTP requests to upstream APIs",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def handle_request(request: Request, path: str) -> Response:
        """Proxy any request to the configured upstream."""
        proxy: ProxyService = request.app.state.proxy

        try:
            body_bytes = await read_body(request)
            return await unless_disconnected(
                request,
                proxy.forward_request(
                    method=request.method,
                    path_and_query=path_and_query(request),
                    headers=request.headers.raw,
                    body=body_bytes,
                ),
            )
        except ProxyError as e:
            return PlainTextResponse(str(e), status_code=e.status_code)

    return app


async def read_body(request: Request) -> bytes:
    """Buffer the full request body."""
    try:
        return await request.body()
    except ClientDisconnect as e:
        logger.warning(f"Client disconnected while sending {request.method} {request.url.path}")
        raise InboundReadError("client disconnected") from e


async def wait_for_disconnect(request: Request) -> None:
    """Return once the ASGI server reports the client gone.

    Only safe after the body has been read: any further receive() blocks
    until http.disconnect.
    """
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def unless_disconnected(request: Request, forwarding) -> Response:
    """Await forwarding, abandoning it if the client hangs up first.

    Raises:
        ClientGoneError: the client disconnected and forwarding was cancelled.
    """
    forward = asyncio.ensure_future(forwarding)
    disconnect = asyncio.ensure_future(wait_for_disconnect(request))
    try:
        await asyncio.wait({forward, disconnect}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        forward.cancel()
        raise
    finally:
        disconnect.cancel()

    # A finished forward wins even if the client left at the same moment,
    # so an opened upstream stream always ends up owned by a response
    if forward.done():
        return forward.result()

    forward.cancel()
    try:
        await forward
    except asyncio.CancelledError:
        pass
    logger.info(f"Client disconnected, abandoned {request.method} {request.url.path}")
    raise ClientGoneError("upstream call abandoned")


def path_and_query(request: Request) -> str:
    """The request target exactly as the client sent it (still percent-encoded)."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


# For `uvicorn lm_proxy.app:app`; the CLI builds its own from its options
app = create_app(Config.from_env())
