"""Failures that keep the proxy from fulfilling a request."""


class ProxyError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code = 500
    prefix = "Proxy error"

    def __str__(self) -> str:
        return f"{self.prefix}: {super().__str__()}"


class InboundReadError(ProxyError):
    """The client went away (or sent garbage) while we buffered its body."""

    status_code = 400
    prefix = "Failed to read body"


class UpstreamError(ProxyError):
    """The upstream couldn't be reached or dropped the connection."""

    status_code = 502


class ClientGoneError(ProxyError):
    """The client hung up before the upstream answered."""

    # nginx's "client closed request"; nobody is left to read it
    status_code = 499
    prefix = "Client closed request"
