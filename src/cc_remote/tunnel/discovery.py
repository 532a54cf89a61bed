"""
Tunnel public URL discovery.

The tunnel provider exposes a local status API listing its active tunnels.
Discovery polls that API until a tunnel bound to the session's local port
reports a public HTTPS URL.
"""

import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

import httpx

from ..utils.logging import DiscoveryTimeoutError, LogContext, get_logger
from .polling import poll_until

logger = get_logger(__name__, LogContext.TUNNEL)

REQUEST_TIMEOUT = 2.0


def parse_local_port(addr: Any) -> int | None:
    """Extract the port from a tunnel's local address.

    Accepts ``http://localhost:7681``, ``localhost:7681`` and ``7681``.
    """
    if addr is None:
        return None
    text = str(addr).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    if "://" not in text:
        text = f"tcp://{text}"
    try:
        return urlsplit(text).port
    except ValueError:
        return None


def match_tunnel(tunnels: list[dict[str, Any]], local_port: int) -> str | None:
    """Select the public HTTPS URL of the tunnel bound to ``local_port``.

    Args:
        tunnels: Tunnel entries from the status API
        local_port: Port the tunnel forwards to

    Returns:
        The public URL, whitespace-trimmed, or None if no tunnel matches
    """
    for tunnel in tunnels:
        if not isinstance(tunnel, dict):
            continue
        config = tunnel.get("config") or {}
        addr = config.get("addr") if isinstance(config, dict) else None
        if parse_local_port(addr) != local_port:
            continue
        public_url = str(tunnel.get("public_url") or "").strip()
        if public_url.startswith("https://") and len(public_url) > len("https://"):
            return public_url
    return None


class TunnelDiscovery:
    """Polls the tunnel provider's local status endpoint."""

    def __init__(
        self,
        api_url: str,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize tunnel discovery.

        Args:
            api_url: URL of the status endpoint returning ``{"tunnels": [...]}``
            client: Optional httpx client (tests inject a mock transport)
            clock: Monotonic time source
            sleep: Sleep function used between polls
        """
        self.api_url = api_url
        self._client = client
        self._clock = clock
        self._sleep = sleep

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=REQUEST_TIMEOUT)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def fetch_tunnels(self) -> list[dict[str, Any]]:
        """Fetch the list of active tunnels.

        Raises:
            httpx.HTTPError: If the endpoint is unreachable or returns an error
            ValueError: If the response is not the expected JSON document
        """
        response = self.client.get(self.api_url)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict) or not isinstance(
            payload.get("tunnels"), list
        ):
            raise ValueError("status response has no 'tunnels' list")
        return payload["tunnels"]

    def lookup(self, local_port: int) -> str | None:
        """Make one attempt at finding the public URL.

        Unreachable endpoints and missing tunnels are both transient, so
        every failure here returns None.
        """
        try:
            tunnels = self.fetch_tunnels()
        except httpx.TransportError as e:
            logger.debug("Tunnel status endpoint unreachable", error=str(e))
            return None
        except httpx.HTTPStatusError as e:
            logger.debug(
                "Tunnel status endpoint returned an error",
                status_code=e.response.status_code,
            )
            return None
        except ValueError as e:
            logger.debug("Tunnel status response not understood", error=str(e))
            return None

        url = match_tunnel(tunnels, local_port)
        if url is None:
            logger.debug(
                "No tunnel bound to local port yet",
                local_port=local_port,
                tunnel_count=len(tunnels),
            )
        return url

    def discover_public_url(
        self, local_port: int, timeout: float, interval: float = 1.0
    ) -> str:
        """Poll until the tunnel for ``local_port`` reports its public URL.

        Raises:
            DiscoveryTimeoutError: If no URL is observed within ``timeout``
        """
        logger.info(
            "Waiting for tunnel public URL",
            local_port=local_port,
            timeout=timeout,
            api_url=self.api_url,
        )
        try:
            result = poll_until(
                lambda: self.lookup(local_port),
                interval=interval,
                timeout=timeout,
                clock=self._clock,
                sleep=self._sleep,
            )
        except DiscoveryTimeoutError as e:
            logger.warning(
                "Tunnel public URL not discovered",
                local_port=local_port,
                timeout=timeout,
                attempts=e.attempts,
            )
            raise DiscoveryTimeoutError(
                f"No public URL for local port {local_port} after {timeout:g}s "
                f"({e.attempts} attempts against {self.api_url})",
                local_port=local_port,
                timeout=timeout,
                attempts=e.attempts,
            )

        logger.info(
            "Tunnel public URL discovered",
            local_port=local_port,
            public_url=result.value,
            attempts=result.attempts,
            elapsed=round(result.elapsed, 3),
        )
        return result.value
