"""Agent backends and the bridge factory."""

import httpx

from relaybot.agents.base import AgentBridge
from relaybot.agents.connector import RestConnector
from relaybot.agents.poller import InboundPoller, PollerRegistry
from relaybot.config.schema import Config
from relaybot.session.store import SessionStore

__all__ = [
    "AgentBridge",
    "InboundPoller",
    "PollerRegistry",
    "RestConnector",
    "create_agent_bridge",
]


def create_agent_bridge(
    config: Config,
    store: SessionStore,
    pollers: PollerRegistry,
    client: httpx.AsyncClient | None = None,
    impl: str | None = None,
) -> AgentBridge:
    """Return the bridge named by *impl* (defaults to ``config.agent.impl``)."""
    name = impl or config.agent.impl
    if name == "mock":
        from relaybot.agents.mock import MockAgentBridge
        return MockAgentBridge(config.mock.base_url)
    if name == "live":
        from relaybot.agents.live import LiveAgentBridge
        return LiveAgentBridge(
            config.live,
            store,
            pollers,
            client=client,
            timeout=config.agent.timeout,
        )
    raise ValueError(f"Unknown agent implementation: {name}")
