"""Shared fixtures: a scripted upstream behind httpx.MockTransport."""

import json

import httpx
import logfire
import pytest

from lm_proxy.config import Config
from lm_proxy.proxy import ProxyService, create_client

# Keep spans local and quiet during tests
logfire.configure(send_to_logfire=False, console=False)

UPSTREAM_URL = "http://upstream.test/v1"
METRICS_URL = "http://metrics.test/metrics"


class FakeUpstream:
    """Records every request and answers with whatever the test scripted.

    `routes` maps a URL path to either an httpx.Response or a callable
    taking the request. Anything unscripted gets a 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return unread(httpx.Response(404, text="not found"))
        if callable(route):
            route = route(request)
            if hasattr(route, "__await__"):
                route = await route
        return unread(route)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def unread(response: httpx.Response) -> httpx.Response:
    """Return a copy of response whose body hasn't been consumed yet.

    httpx reads bytes content eagerly, which would make aiter_raw() on the
    proxy side raise StreamConsumed. A real network response is never pre-read.
    """
    if not response.is_stream_consumed:
        return response
    return httpx.Response(
        response.status_code,
        headers=response.headers,
        stream=httpx.ByteStream(response.content),
    )


def json_response(status: int, payload, **headers) -> httpx.Response:
    return httpx.Response(
        status,
        content=json.dumps(payload).encode(),
        headers={"content-type": "application/json", **headers},
    )


async def read_body(response) -> bytes:
    """Drain a Starlette Response or StreamingResponse."""
    if hasattr(response, "body_iterator"):
        return b"".join([chunk async for chunk in response.body_iterator])
    return response.body


def header_dict(response) -> dict[str, str]:
    return {k.decode(): v.decode() for k, v in response.raw_headers}


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http_client(upstream):
    return create_client(transport=httpx.MockTransport(upstream))


@pytest.fixture
def config() -> Config:
    return Config(upstream_url=UPSTREAM_URL, metrics_url=METRICS_URL)


@pytest.fixture
def proxy(http_client, config) -> ProxyService:
    return ProxyService(http_client, config)
