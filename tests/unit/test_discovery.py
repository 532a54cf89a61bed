"""Unit tests for tunnel public URL discovery."""

import httpx
import pytest

from cc_remote.tunnel import TunnelDiscovery, match_tunnel, parse_local_port
from cc_remote.utils.logging import DiscoveryTimeoutError

API_URL = "http://127.0.0.1:4040/api/tunnels"


def tunnel(addr, public_url, proto="https"):
    return {"public_url": public_url, "proto": proto, "config": {"addr": addr}}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def make_discovery(handler, clock=None):
    clock = clock or FakeClock()
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TunnelDiscovery(API_URL, client=client, clock=clock, sleep=clock.sleep), clock


class TestParseLocalPort:
    """Test local address parsing."""

    @pytest.mark.parametrize(
        "addr,expected",
        [
            ("http://localhost:7681", 7681),
            ("https://127.0.0.1:8443", 8443),
            ("localhost:7681", 7681),
            ("7681", 7681),
            (7681, 7681),
            ("localhost", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse(self, addr, expected):
        assert parse_local_port(addr) == expected


class TestMatchTunnel:
    """Test tunnel selection."""

    def test_selects_tunnel_for_port(self):
        tunnels = [
            tunnel("http://localhost:3000", "https://other.ngrok.app"),
            tunnel("http://localhost:7681", "https://mine.ngrok.app"),
        ]
        assert match_tunnel(tunnels, 7681) == "https://mine.ngrok.app"

    def test_ignores_plain_http_tunnel(self):
        tunnels = [
            tunnel("http://localhost:7681", "http://mine.ngrok.app", proto="http"),
            tunnel("http://localhost:7681", "https://mine.ngrok.app"),
        ]
        assert match_tunnel(tunnels, 7681) == "https://mine.ngrok.app"

    def test_url_used_verbatim_after_trimming(self):
        tunnels = [tunnel("7681", "  https://Mixed-Case.ngrok.app/path/ \n")]
        assert match_tunnel(tunnels, 7681) == "https://Mixed-Case.ngrok.app/path/"

    def test_no_match(self):
        assert match_tunnel([tunnel("localhost:3000", "https://x.ngrok.app")], 7681) is None
        assert match_tunnel([{"public_url": "https://x.ngrok.app"}], 7681) is None
        assert match_tunnel(["garbage"], 7681) is None


class TestTunnelDiscovery:
    """Test cases for TunnelDiscovery."""

    def test_lookup_unreachable_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        discovery, _ = make_discovery(handler)
        assert discovery.lookup(7681) is None

    def test_lookup_error_status_returns_none(self):
        discovery, _ = make_discovery(lambda request: httpx.Response(502))
        assert discovery.lookup(7681) is None

    def test_lookup_invalid_json_returns_none(self):
        discovery, _ = make_discovery(lambda request: httpx.Response(200, text="<html>"))
        assert discovery.lookup(7681) is None

    def test_lookup_missing_tunnels_key_returns_none(self):
        discovery, _ = make_discovery(lambda request: httpx.Response(200, json={}))
        assert discovery.lookup(7681) is None

    def test_discovers_url_after_empty_polls(self):
        """Test success after N polls without a matching tunnel."""
        responses = [
            "unreachable",
            {"tunnels": []},
            {"tunnels": [tunnel("localhost:3000", "https://other.ngrok.app")]},
            {"tunnels": [tunnel("http://localhost:7681", "https://abc123.ngrok.app")]},
        ]
        requests = []

        def handler(request):
            requests.append(request)
            payload = responses.pop(0)
            if payload == "unreachable":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=payload)

        discovery, clock = make_discovery(handler)

        url = discovery.discover_public_url(7681, timeout=30.0, interval=1.0)

        assert url == "https://abc123.ngrok.app"
        assert len(requests) == 4
        assert str(requests[0].url) == API_URL
        assert clock.now == pytest.approx(3.0)

    def test_times_out_at_deadline(self):
        """Test that a never-matching endpoint times out at the deadline."""
        discovery, clock = make_discovery(
            lambda request: httpx.Response(200, json={"tunnels": []})
        )

        with pytest.raises(DiscoveryTimeoutError) as exc_info:
            discovery.discover_public_url(7681, timeout=10.0, interval=1.5)

        assert clock.now >= 10.0
        assert clock.now == pytest.approx(10.0)
        assert exc_info.value.local_port == 7681
        assert exc_info.value.timeout == 10.0
        assert exc_info.value.attempts == 8

    def test_close_releases_client(self):
        discovery, _ = make_discovery(lambda request: httpx.Response(200, json={}))
        discovery.close()
        assert discovery._client is None
