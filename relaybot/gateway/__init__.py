"""HTTP gateway."""

from relaybot.gateway.server import Gateway

__all__ = ["Gateway"]
