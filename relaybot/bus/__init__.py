"""Message types and envelopes."""

from relaybot.bus.events import (
    AGENT_REQUEST_RESPONSE,
    AgentAction,
    AgentMessageType,
    BotEnvelope,
    BotMessageType,
    RequestSpec,
)

__all__ = [
    "AGENT_REQUEST_RESPONSE",
    "AgentAction",
    "AgentMessageType",
    "BotEnvelope",
    "BotMessageType",
    "RequestSpec",
]
