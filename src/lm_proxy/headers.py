"""Hop-by-hop header filtering.

These headers describe a single connection, not the message, so they are
dropped both on the way upstream and on the way back to the caller.
"""

import logging
from typing import Iterable

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# RFC 9110 token characters
_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789"
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
)


def is_hop_by_hop_header(name: str) -> bool:
    """Check if a header is hop-by-hop and should not be forwarded."""
    return name.lower() in HOP_BY_HOP_HEADERS


def _header_name(name: str | bytes) -> str | None:
    if isinstance(name, bytes):
        try:
            name = name.decode("ascii")
        except UnicodeDecodeError:
            return None
    if not name or not set(name) <= _TOKEN_CHARS:
        return None
    return name


def _header_value(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


def filter_hop_by_hop_headers(
    headers: Iterable[tuple[str | bytes, str | bytes]],
) -> list[tuple[str, str]]:
    """Return the header pairs that are safe to forward.

    Accepts str or raw bytes pairs (Starlette and httpx both expose the
    latter). Order and repeated names are preserved. A name that isn't a
    valid header token is dropped instead of failing the request.
    """
    filtered = []
    for raw_name, raw_value in headers:
        name = _header_name(raw_name)
        if name is None:
            logger.debug(f"Dropping malformed header name: {raw_name!r}")
            continue
        if is_hop_by_hop_header(name):
            continue
        filtered.append((name, _header_value(raw_value)))
    return filtered
