"""Mock agent backend that speaks the bot-side format directly."""

from typing import Any

from loguru import logger

from relaybot.agents.base import AgentBridge
from relaybot.bus.events import AgentAction, RequestSpec

DEFAULT_BASE_URL = "http://localhost:4445/agent/api/chat/v1/"


class MockAgentBridge(AgentBridge):
    """Passes payloads through unchanged and posts them to ``{base_url}{action}``."""

    name = "mock"

    def __init__(self, base_url: str = DEFAULT_BASE_URL):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"

    async def to_agent_shape(self, payload: dict[str, Any], action: AgentAction) -> dict[str, Any]:
        return dict(payload)

    async def from_agent_shape(self, event: dict[str, Any]) -> dict[str, Any] | None:
        return event or None

    async def build_call(self, payload: dict[str, Any], action: AgentAction) -> RequestSpec:
        return RequestSpec(url=f"{self.base_url}{AgentAction(action).value}", json=payload)

    async def on_call_result(
        self,
        payload: dict[str, Any],
        result: Any,
        action: AgentAction,
        status_code: int,
    ) -> None:
        logger.debug("Mock agent answered {} with {}", AgentAction(action).value, status_code)
