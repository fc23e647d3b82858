"""lm-proxy - a transparent reverse proxy that meters LLM token usage."""

from .app import create_app
from .config import Config
from .errors import InboundReadError, ProxyError, UpstreamError
from .headers import filter_hop_by_hop_headers, is_hop_by_hop_header
from .metrics import MetricsReporter
from .models import (
    Usage,
    is_usage_tracked_path,
    parse_usage_from_sse_chunk,
    try_parse_usage_from_body,
    try_parse_usage_from_chunk,
)
from .proxy import ProxyService, create_client

__all__ = [
    # Serving
    "create_app",
    "Config",
    "ProxyService",
    "create_client",
    # Errors
    "ProxyError",
    "InboundReadError",
    "UpstreamError",
    # Lower-level components
    "filter_hop_by_hop_headers",
    "is_hop_by_hop_header",
    "is_usage_tracked_path",
    "MetricsReporter",
    "Usage",
    "parse_usage_from_sse_chunk",
    "try_parse_usage_from_body",
    "try_parse_usage_from_chunk",
]
__version__ = "0.1.0"
