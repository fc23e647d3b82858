"""Tests for hop-by-hop header filtering."""

import pytest

from lm_proxy.headers import HOP_BY_HOP_HEADERS, filter_hop_by_hop_headers, is_hop_by_hop_header


class TestIsHopByHop:
    @pytest.mark.parametrize("name", sorted(HOP_BY_HOP_HEADERS))
    def test_excluded_names(self, name):
        assert is_hop_by_hop_header(name)
        assert is_hop_by_hop_header(name.upper())

    @pytest.mark.parametrize("name", ["content-type", "authorization", "x-request-id", "te-x"])
    def test_end_to_end_headers(self, name):
        assert not is_hop_by_hop_header(name)


class TestFilterHopByHopHeaders:
    def test_strips_excluded_headers_any_case(self):
        headers = [
            ("Connection", "keep-alive"),
            ("Keep-Alive", "timeout=5"),
            ("TE", "trailers"),
            ("Transfer-Encoding", "chunked"),
            ("Upgrade", "h2c"),
            ("Proxy-Authorization", "Basic abc"),
            ("Proxy-Authenticate", "Basic"),
            ("Trailers", "x"),
            ("Authorization", "Bearer secret-token"),
            ("Content-Type", "application/json"),
        ]

        assert filter_hop_by_hop_headers(headers) == [
            ("Authorization", "Bearer secret-token"),
            ("Content-Type", "application/json"),
        ]

    def test_accepts_raw_bytes(self):
        headers = [(b"connection", b"close"), (b"x-custom-header", b"custom-value")]
        assert filter_hop_by_hop_headers(headers) == [("x-custom-header", "custom-value")]

    def test_preserves_repeated_headers_in_order(self):
        headers = [("set-cookie", "a=1"), ("connection", "close"), ("set-cookie", "b=2")]
        assert filter_hop_by_hop_headers(headers) == [("set-cookie", "a=1"), ("set-cookie", "b=2")]

    def test_drops_malformed_names(self):
        headers = [
            (b"\xff\xfebad", b"value"),
            ("bad name", "value"),
            ("", "value"),
            ("x-ok", "fine"),
        ]
        assert filter_hop_by_hop_headers(headers) == [("x-ok", "fine")]

    def test_non_ascii_values_survive(self):
        headers = [(b"x-label", "caf\xe9".encode("latin-1"))]
        assert filter_hop_by_hop_headers(headers) == [("x-label", "caf\xe9")]

    def test_idempotent(self):
        headers = [
            ("Connection", "keep-alive"),
            ("x-a", "1"),
            ("TRANSFER-ENCODING", "chunked"),
            ("x-b", "2"),
        ]
        once = filter_hop_by_hop_headers(headers)
        assert filter_hop_by_hop_headers(once) == once
        assert not any(is_hop_by_hop_header(name) for name, _ in once)

    def test_empty(self):
        assert filter_hop_by_hop_headers([]) == []
