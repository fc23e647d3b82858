"""HTTP proxy logic for forwarding requests upstream and watching for usage.

One upstream call per inbound call. The response goes back one of three ways:

- streaming: text/event-stream bodies are mirrored chunk by chunk, and on
  tracked paths each chunk is sniffed for usage on its way through
- buffered: tracked, non-streaming bodies are read whole so the JSON can be
  inspected, then the original bytes are returned
- passthrough: everything else is piped through untouched

Bodies are read with aiter_raw() so content-encoding survives end to end.
A compressed buffered body is decoded on a copy for inspection only.
"""

import logging
from typing import AsyncIterator, Iterable

import httpx
import logfire
from starlette.responses import Response, StreamingResponse

from .config import Config
from .errors import UpstreamError
from .headers import filter_hop_by_hop_headers
from .metrics import MetricsReporter
from .models import (
    Usage,
    is_usage_tracked_path,
    parse_usage_from_sse_chunk,
    try_parse_usage_from_body,
)

logger = logging.getLogger(__name__)

# httpx owns these on the way out; the caller's values describe the wrong hop
CLIENT_MANAGED_HEADERS = frozenset({"host", "content-length"})

# Sent by httpx unless the caller sent its own. Dropped so the upstream sees
# only what the caller asked for (notably, no surprise compression).
CLIENT_DEFAULT_HEADERS = ("accept", "accept-encoding", "connection", "user-agent")


def create_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the shared HTTP client used for upstream and metrics calls."""
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(300.0, connect=10.0),  # Long timeout for LLM responses
        transport=transport,
    )
    for name in CLIENT_DEFAULT_HEADERS:
        client.headers.pop(name, None)
    return client


def is_event_stream(response: httpx.Response) -> bool:
    return "text/event-stream" in response.headers.get("content-type", "")


def _encode_headers(pairs: Iterable[tuple[str, str]]) -> list[tuple[bytes, bytes]]:
    return [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in pairs]


def decoded_body(upstream: httpx.Response, body: bytes) -> bytes:
    """Undo content-encoding on a copy of body, for inspection only.

    Falls back to the raw bytes when the encoding is unknown or the data
    doesn't decode.
    """
    encoding = upstream.headers.get("content-encoding")
    if not encoding:
        return body
    try:
        # httpx decodes bytes content eagerly using the response headers
        return httpx.Response(200, headers={"content-encoding": encoding}, content=body).content
    except httpx.DecodingError:
        return body


def _apply_headers(response: Response, upstream: httpx.Response) -> Response:
    """Replace Starlette's generated headers with the upstream's own.

    Starlette's defaults (content-length for buffered bodies) are kept only
    where the upstream didn't send that header itself.
    """
    raw_headers = _encode_headers(filter_hop_by_hop_headers(upstream.headers.raw))
    present = {name for name, _ in raw_headers}
    raw_headers.extend(h for h in response.raw_headers if h[0] not in present)
    response.raw_headers = raw_headers
    return response


class ProxyService:
    """Proxy service that forwards requests to the upstream API.

    Holds no per-request state; one instance serves every request and the
    httpx client it wraps is shared with the metrics reporter.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: Config,
        reporter: MetricsReporter | None = None,
    ):
        self.client = client
        self.config = config
        self.reporter = reporter or MetricsReporter(client, config.metrics_url)

    async def forward_request(
        self,
        method: str,
        path_and_query: str,
        headers: Iterable[tuple[str | bytes, str | bytes]],
        body: bytes,
    ) -> Response:
        """Forward a request to upstream and track usage if applicable.

        Raises:
            UpstreamError: the upstream couldn't be reached, or failed while
                a buffered body was being read.
        """
        path = path_and_query.partition("?")[0]
        tracking_usage = is_usage_tracked_path(path)
        upstream_url = self.config.upstream_url_for_path(path_and_query)

        filtered_headers = filter_hop_by_hop_headers(headers)

        with logfire.span(
            "proxy.forward {method} {path}",
            method=method,
            path=path,
            tracking_usage=tracking_usage,
        ) as span:
            upstream_response = await self.send_upstream_request(
                method, upstream_url, filtered_headers, body
            )
            span.set_attribute("http.status_code", upstream_response.status_code)

        if is_event_stream(upstream_response):
            return self.handle_streaming_response(upstream_response, tracking_usage)
        elif tracking_usage:
            return await self.handle_non_streaming_tracked_response(upstream_response)
        else:
            return self.handle_passthrough_response(upstream_response)

    async def send_upstream_request(
        self,
        method: str,
        url: str,
        headers: list[tuple[str, str]],
        body: bytes,
    ) -> httpx.Response:
        """Issue the upstream call. The returned response body is still unread."""
        # Bytes, so values that aren't ASCII go out exactly as they came in
        raw_headers = _encode_headers(
            (k, v) for k, v in headers if k.lower() not in CLIENT_MANAGED_HEADERS
        )
        try:
            request = self.client.build_request(
                method,
                url,
                headers=raw_headers,
                content=body or None,
            )
            return await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Upstream request failed: {method} {url}: {e}")
            raise UpstreamError(str(e)) from e

    async def handle_non_streaming_tracked_response(
        self,
        upstream_response: httpx.Response,
    ) -> Response:
        try:
            body = b"".join([chunk async for chunk in upstream_response.aiter_raw()])
        except httpx.HTTPError as e:
            logger.error(f"Failed reading upstream body: {e}")
            raise UpstreamError(str(e)) from e
        finally:
            await upstream_response.aclose()

        self.record_usage(try_parse_usage_from_body(decoded_body(upstream_response, body)))

        response = Response(content=body, status_code=upstream_response.status_code)
        return _apply_headers(response, upstream_response)

    def handle_streaming_response(
        self,
        upstream_response: httpx.Response,
        tracking_usage: bool,
    ) -> Response:
        response = StreamingResponse(
            self.mirror_chunks(upstream_response, sniff_usage=tracking_usage),
            status_code=upstream_response.status_code,
        )
        return _apply_headers(response, upstream_response)

    def handle_passthrough_response(self, upstream_response: httpx.Response) -> Response:
        response = StreamingResponse(
            self.mirror_chunks(upstream_response, sniff_usage=False),
            status_code=upstream_response.status_code,
        )
        return _apply_headers(response, upstream_response)

    async def mirror_chunks(
        self,
        upstream_response: httpx.Response,
        sniff_usage: bool,
    ) -> AsyncIterator[bytes]:
        """Yield upstream chunks one-for-one, as they arrive.

        Upstream read errors propagate to the consumer. The upstream response
        is closed however iteration ends, including a caller disconnect.
        """
        try:
            async for chunk in upstream_response.aiter_raw():
                if sniff_usage:
                    self.record_usage(parse_usage_from_sse_chunk(chunk))
                yield chunk
        finally:
            await upstream_response.aclose()

    def record_usage(self, usage: Usage | None) -> None:
        """Log usage and hand the total to the reporter, if there is one."""
        if usage is None:
            return
        logger.info(f"[USAGE] {usage.log_format()}")
        if usage.total_tokens is not None:
            self.reporter.report(usage.total_tokens)
