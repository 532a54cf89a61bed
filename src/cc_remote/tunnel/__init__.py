"""Tunnel provider integration."""

from .discovery import TunnelDiscovery, match_tunnel, parse_local_port
from .polling import PollResult, poll_until

__all__ = [
    "PollResult",
    "TunnelDiscovery",
    "match_tunnel",
    "parse_local_port",
    "poll_until",
]
